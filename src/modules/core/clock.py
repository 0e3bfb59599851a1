"""Civil-time clock for persisted timestamps.

Orders are stamped in the store's fixed offset (``ORDER_TIME_ZONE``,
UTC-3 by default) rather than UTC, so every writer goes through
``local_now`` instead of relying on database auto-timestamps.
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone


@lru_cache(maxsize=None)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_now() -> datetime:
    """Return an aware ``datetime`` in the configured civil offset."""
    return timezone.now().astimezone(_zone(settings.ORDER_TIME_ZONE))
