from slowapi import Limiter
from slowapi.util import get_remote_address

from socialcore.config import settings

# Applied to write endpoints with @limiter.limit(settings.rate_limit)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
