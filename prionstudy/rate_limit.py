from slowapi import Limiter
from slowapi.util import get_remote_address
from prionstudy.config import get_settings

settings = get_settings()

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

submit_limit = limiter.limit(settings.submit_rate_limit)
panel_limit = limiter.limit(settings.panel_rate_limit)
