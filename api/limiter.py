"""
api/limiter.py -- The one slowapi Limiter shared by every ExpiryWatch route.

Routes that cause outbound traffic (WHOIS, TLS handshakes, SMTP, the test
account API) carry per-route limits so a client cannot use the service to
fan out lookups or mail. Limits are keyed by client IP.

api/main.py mounts SlowAPIMiddleware and sets app.state.limiter to this
instance; route modules decorate handlers with @limiter.limit(). A second
Limiter would keep its own counters and its limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)
