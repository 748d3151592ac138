from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, DateTime, MetaData
from datetime import datetime

# Deterministic constraint names so PostgreSQL and SQLite schemas line up
metadata = MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
})

Base = declarative_base(metadata=metadata)


class BaseModel(Base):
    """Common columns for every social core table"""
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id}>"
