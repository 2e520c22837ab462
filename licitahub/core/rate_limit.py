from slowapi import Limiter
from slowapi.util import get_remote_address

from licitahub.core.config import settings

# Shared by main.py (exception handler) and the routes that carry limits
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
