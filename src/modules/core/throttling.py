"""Per-IP admission control for anonymous read endpoints.

``PublicReadThrottle`` is DRF's cache-backed sliding-window throttle: the
request history of each client IP lives in the Django cache (Redis in
production), so every worker process shares one window per caller and
idle keys expire with the cache entry.
"""

from __future__ import annotations

import structlog
from rest_framework.settings import api_settings
from rest_framework.throttling import SimpleRateThrottle

logger = structlog.get_logger(__name__)


class PublicReadThrottle(SimpleRateThrottle):
    """Fixed capacity per sliding window, keyed by client IP.

    The IP comes from DRF's ``get_ident`` (honours ``NUM_PROXIES`` and
    ``X-Forwarded-For``).  Authenticated callers are keyed the same way:
    the order-status and catalog endpoints are anonymous.  Rejections
    surface as DRF ``Throttled`` → ``429`` with a ``Retry-After`` header,
    and rejected requests are not added to the history.
    """

    scope = "public"

    def get_rate(self) -> str:
        # Resolved per instance; api_settings reloads on setting changes.
        return api_settings.DEFAULT_THROTTLE_RATES[self.scope]

    def get_cache_key(self, request, view) -> str:
        return self.cache_format % {"scope": self.scope, "ident": self.get_ident(request)}

    def throttle_failure(self) -> bool:
        logger.warning("rate_limit.rejected", cache_key=self.key, limit=self.num_requests)
        return False
