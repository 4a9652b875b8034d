"""
errors.py
---------
Exception types shared by the payment core, the repositories and the bot.
"""

from typing import Optional


class PaymentValidationError(ValueError):
    """Input rejected at the point of entry (form/command)."""


class InvalidPaymentDateError(ValueError):
    """A stored date or timestamp that cannot be interpreted."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r}")


class PaymentNotFoundError(LookupError):
    """A payment id that is not part of the loaded set."""

    def __init__(self, payment_id):
        self.payment_id = payment_id
        super().__init__(f"Payment #{payment_id} not found")


class StoreError(RuntimeError):
    """
    A failed Entity Store operation.

    Attributes:
        operation: Name of the store call that failed ('update', 'create', ...).
    """

    def __init__(self, operation: str, detail: Optional[str] = None):
        self.operation = operation
        message = f"Store operation '{operation}' failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
