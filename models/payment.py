"""
models/payment.py
-----------------
Domain model for scheduled project payments (one-off or monthly-recurring).
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from config import DEFAULT_CURRENCY
from errors import PaymentValidationError


class PaymentStatus:
    """Allowed values of ``Payment.status``."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"

    ALL = (PENDING, PAID, OVERDUE)


@dataclass
class Payment:
    """
    Represents a payment or contract instalment tied to a project.

    Attributes:
        project_id: The owning project (lookup only).
        title: Short human label.
        due_date: Next due date as an ISO string (YYYY-MM-DD). Computed for
            recurring payments and advanced each time they are paid.
        amount: Optional amount, display only.
        currency: ISO currency code, display only.
        is_recurring: Whether the obligation repeats every month.
        recurring_day: Day of month (1-31) on which a recurring payment is due.
        status: Cached result of the status engine ('pending' | 'paid' | 'overdue').
        paid_at: Epoch milliseconds of the last "mark as paid".
        notes: Free text.
        id: Store primary key (None for new records).
        created_at: Epoch milliseconds, set by the store.
    """
    project_id: int
    title: str
    due_date: str
    amount: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    is_recurring: bool = False
    recurring_day: Optional[int] = None
    status: str = PaymentStatus.PENDING
    paid_at: Optional[int] = None
    notes: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[int] = None

    def is_paid(self) -> bool:
        """True if the cached status is 'paid'."""
        return self.status == PaymentStatus.PAID

    def __str__(self) -> str:
        kind = f"todo dia {self.recurring_day}" if self.is_recurring else "avulso"
        value = f"{self.amount:.2f} {self.currency}" if self.amount is not None else "-"
        return f"{self.title}: {value} ({kind}) - vence {self.due_date} [{self.status}]"


def validate_payment(payment: Payment) -> Payment:
    """
    Reject malformed payments before they reach the engine or the store.

    Returns:
        The same payment, with the title stripped.

    Raises:
        PaymentValidationError: With a user-facing message.
    """
    title = (payment.title or "").strip()
    if not title:
        raise PaymentValidationError("O título do pagamento é obrigatório.")
    payment.title = title

    if payment.is_recurring:
        if payment.recurring_day is None:
            raise PaymentValidationError("Pagamento recorrente precisa do dia do mês.")
        if isinstance(payment.recurring_day, bool) or not isinstance(payment.recurring_day, int):
            raise PaymentValidationError("O dia do mês precisa ser um número inteiro.")
        if not 1 <= payment.recurring_day <= 31:
            raise PaymentValidationError("O dia do mês precisa estar entre 1 e 31.")

    try:
        date.fromisoformat(payment.due_date)
    except (TypeError, ValueError):
        raise PaymentValidationError(
            f"Data de vencimento inválida: {payment.due_date!r} (use AAAA-MM-DD)."
        )

    if payment.status not in PaymentStatus.ALL:
        raise PaymentValidationError(f"Status desconhecido: {payment.status!r}.")
    if payment.status == PaymentStatus.PAID and payment.paid_at is None:
        raise PaymentValidationError("Pagamento marcado como pago sem data de pagamento.")

    if payment.amount is not None and payment.amount < 0:
        raise PaymentValidationError("O valor não pode ser negativo.")

    return payment
