"""
security/auth.py
-----------------
Authentication middleware for the dashboard bot.
The dashboard holds client credentials and billing data, so only the
operators listed in ALLOWED_USER_IDS may use it.
"""

from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import ALLOWED_USER_IDS
from utils.logger import get_logger

logger = get_logger(__name__)


def is_allowed(user_id: int, allowed: list[int] = ALLOWED_USER_IDS) -> bool:
    """An empty whitelist allows everyone (dev mode)."""
    return not allowed or user_id in allowed


def authorized_only(func: Callable):
    """
    Decorator that restricts a handler to whitelisted operators.

    Usage:
        @authorized_only
        async def my_handler(update, context):
            ...
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if not is_allowed(user.id):
            logger.warning(
                f"🚫 Unauthorized access attempt: user_id={user.id}, "
                f"username={user.username}"
            )
            await update.message.reply_text("⛔ Este painel é privado.")
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
