"""
security/rate_limiter.py
-------------------------
Rate limiting middleware: caps the number of commands an operator can
send within a sliding time window.
"""

import time
from collections import defaultdict
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)


class SlidingWindowLimiter:
    """
    Per-user sliding window of request timestamps.

    Args:
        max_hits: Requests allowed inside one window.
        window_seconds: Window length.
        clock: Returns the current time in seconds (injectable for tests).
    """

    def __init__(self, max_hits: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[int, list[float]] = defaultdict(list)

    def allow(self, user_id: int) -> bool:
        """Record a request and return False if the user is over the limit."""
        now = self._clock()
        cutoff = now - self.window_seconds
        hits = [t for t in self._hits[user_id] if t > cutoff]
        if len(hits) >= self.max_hits:
            self._hits[user_id] = hits
            return False
        hits.append(now)
        self._hits[user_id] = hits
        return True


_limiter = SlidingWindowLimiter(RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS)


def rate_limited(func: Callable):
    """
    Decorator that enforces rate limiting per user.

    Configuration (via .env):
        RATE_LIMIT_MESSAGES: Max messages per window (default: 30).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if not _limiter.allow(user.id):
            logger.warning(f"⚠️ Rate limit hit for user {user.id}")
            await update.message.reply_text("⚠️ Muitos comandos seguidos. Aguarde um pouco.")
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
