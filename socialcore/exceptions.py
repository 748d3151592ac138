import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Type
import logging

from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import status

logger = logging.getLogger(__name__)


class SocialCoreError(Exception):
    """Base class for every error the social core raises to its callers"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "social_core_error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class ValidationError(SocialCoreError):
    """Invalid input"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class SelfFollowError(ValidationError):
    """You cannot follow yourself"""
    code = "self_follow"


class NotFoundError(SocialCoreError):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class DuplicateActionError(SocialCoreError):
    """Action already performed"""
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_action"


class AlreadyRetweetedError(DuplicateActionError):
    """Post already retweeted"""
    code = "already_retweeted"


class BlockedError(SocialCoreError):
    """Action not allowed between these users"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "blocked"


class NotAuthorizedError(SocialCoreError):
    """Not authorized to perform this action"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_authorized"


class InvalidStateError(SocialCoreError):
    """Request has already been handled"""
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class TransientStoreError(SocialCoreError):
    """Store temporarily unavailable, retry later"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transient_store_error"


@asynccontextmanager
async def store_errors(
    db: AsyncSession,
    action: str,
    duplicate_error: Type[SocialCoreError] = DuplicateActionError,
) -> AsyncIterator[None]:
    """Roll back on failure and translate store errors into the social core taxonomy"""
    try:
        yield
    except SocialCoreError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Constraint violation while {action}: {e.orig}")
        raise duplicate_error() from e
    except (OperationalError, InterfaceError, asyncio.TimeoutError) as e:
        await db.rollback()
        logger.error(f"Store unavailable while {action}: {e}")
        raise TransientStoreError() from e
    except Exception as e:
        logger.error(f"Error {action}: {e}")
        await db.rollback()
        raise
