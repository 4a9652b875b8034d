"""
utils/clock.py
--------------
Single source of "now" for the dashboard.
Capture it once per logical pass and pass it down explicitly.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from config import DASHBOARD_TIMEZONE

DASHBOARD_TZ = ZoneInfo(DASHBOARD_TIMEZONE)


def now() -> datetime:
    """Current wall-clock time, timezone-aware, in the dashboard timezone."""
    return datetime.now(DASHBOARD_TZ)
