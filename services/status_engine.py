"""
services/status_engine.py
-------------------------
Pure, time-dependent status computation for project payments.

Nothing here touches the store or reads the clock: every function takes the
reference instant ``now`` explicitly, so one recompute pass uses one ``now``.

Rules:
    - A paid one-off payment stays paid forever.
    - A paid recurring payment rolls over to 'overdue' once the current
      day-of-month reaches ``recurring_day`` in a month other than the one
      it was paid in.
    - An unpaid recurring payment is 'overdue' from ``recurring_day`` onward
      in every month, 'pending' before it. ``due_date`` is display only.
    - An unpaid one-off payment is 'overdue' from ``due_date`` (inclusive).

``recurring_day`` is never clamped in the comparison: a day of 31 cannot be
reached in a 30-day month, so that cycle stays 'pending'.
"""

from datetime import date, datetime, tzinfo
from typing import Optional

from dateutil.relativedelta import relativedelta

from errors import InvalidPaymentDateError
from models.payment import Payment, PaymentStatus


# ── Conversions ───────────────────────────────────────────

def parse_due_date(value: str) -> date:
    """
    Parse an ISO calendar date (YYYY-MM-DD).

    Raises:
        InvalidPaymentDateError: If the value is missing or malformed.
    """
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidPaymentDateError("due_date", value)


def from_epoch_ms(value: int, tz: Optional[tzinfo] = None) -> datetime:
    """
    Convert epoch milliseconds into a datetime in ``tz``.
    With ``tz=None`` the result is naive local time, matching a naive ``now``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidPaymentDateError("paid_at", value)
    try:
        return datetime.fromtimestamp(value / 1000, tz=tz)
    except (ValueError, OverflowError, OSError):
        raise InvalidPaymentDateError("paid_at", value)


def to_epoch_ms(moment: datetime) -> int:
    """Convert a datetime into epoch milliseconds."""
    return int(round(moment.timestamp() * 1000))


# ── Status ────────────────────────────────────────────────

def evaluate_status(payment: Payment, now: datetime) -> str:
    """
    Compute the current status of a payment without mutating it.

    Args:
        payment: The payment as last persisted (its ``status`` is read only
            to know whether it was paid).
        now: The reference instant for this pass.

    Returns:
        'pending', 'paid' or 'overdue'.

    Raises:
        InvalidPaymentDateError: If ``due_date`` or ``paid_at`` is malformed.
    """
    today = now.date()

    if payment.status == PaymentStatus.PAID:
        if not payment.is_recurring or not payment.recurring_day or payment.paid_at is None:
            return PaymentStatus.PAID

        paid = from_epoch_ms(payment.paid_at, now.tzinfo)
        new_cycle = (today.year, today.month) != (paid.year, paid.month)
        if today.day >= payment.recurring_day and new_cycle:
            return PaymentStatus.OVERDUE
        return PaymentStatus.PAID

    if payment.is_recurring and payment.recurring_day:
        if today.day >= payment.recurring_day:
            return PaymentStatus.OVERDUE
        return PaymentStatus.PENDING

    if today >= parse_due_date(payment.due_date):
        return PaymentStatus.OVERDUE
    return PaymentStatus.PENDING


# ── Due-date math ─────────────────────────────────────────

def occurrence_in_month(year: int, month: int, day: int) -> date:
    """
    The given day-of-month in (year, month), clamped to the month's last day.
    Only used to compute stored due dates, never to decide status.

    Known limitation: clamping means a day-31 payment shows a February due
    date of the 28th/29th, while its status still waits for a 31st that
    never comes in that month. Day-of-month overflow into the next month
    is not reproduced.
    """
    return date(year, month, 1) + relativedelta(day=day)


def next_cycle_due_date(recurring_day: int, now: datetime) -> str:
    """
    Due date of the cycle after the one containing ``now``: ``recurring_day``
    in the month following now's month (December rolls into January).
    """
    following = date(now.year, now.month, 1) + relativedelta(months=1)
    return occurrence_in_month(following.year, following.month, recurring_day).isoformat()


def initial_due_date(recurring_day: int, today: date) -> str:
    """
    First due date for a newly created recurring payment: this month's
    occurrence if the day has not come yet, next month's otherwise.
    """
    if today.day >= recurring_day:
        following = date(today.year, today.month, 1) + relativedelta(months=1)
        return occurrence_in_month(following.year, following.month, recurring_day).isoformat()
    return occurrence_in_month(today.year, today.month, recurring_day).isoformat()


def days_until_due(payment: Payment, now: datetime) -> int:
    """Whole days from now's date to ``due_date``; negative once it has passed."""
    return (parse_due_date(payment.due_date) - now.date()).days
