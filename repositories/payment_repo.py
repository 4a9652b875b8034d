"""
repositories/payment_repo.py
----------------------------
Data access layer for project payments (the Entity Store for payments).
All SQL queries related to the `project_payments` table live here.

Boundary translation:
    due_date    DATE         <-> ISO string (YYYY-MM-DD)
    paid_at     TIMESTAMPTZ  <-> epoch milliseconds
    created_at  TIMESTAMPTZ  <-> epoch milliseconds
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Callable, Optional

from psycopg2 import sql

from db.connection import get_connection, release_connection
from db.notifications import PaymentSubscription
from models.payment import Payment
from services.status_engine import from_epoch_ms, to_epoch_ms
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "id", "project_id", "title", "due_date", "amount", "currency",
    "is_recurring", "recurring_day", "status", "paid_at", "notes", "created_at",
)

# Columns a partial update may touch
_UPDATABLE = frozenset({
    "title", "due_date", "amount", "currency", "is_recurring",
    "recurring_day", "status", "paid_at", "notes",
})


def _ms_to_timestamp(value: Optional[int]) -> Optional[datetime]:
    return from_epoch_ms(value, timezone.utc) if value is not None else None


def _timestamp_to_ms(value: Optional[datetime]) -> Optional[int]:
    return to_epoch_ms(value) if value is not None else None


class PaymentRepository:
    """Repository for CRUD and subscribe operations on project_payments."""

    # ── CREATE ────────────────────────────────────────────

    def create(self, payment: Payment) -> int:
        """
        Insert a new payment.

        Args:
            payment: The Payment to persist (its id/created_at are ignored).

        Returns:
            The id assigned by the store. `payment.id` and
            `payment.created_at` are populated as well.
        """
        query = """
            INSERT INTO project_payments
                (project_id, title, due_date, amount, currency, is_recurring,
                 recurring_day, status, paid_at, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (
                    payment.project_id, payment.title, payment.due_date,
                    payment.amount, payment.currency, payment.is_recurring,
                    payment.recurring_day, payment.status,
                    _ms_to_timestamp(payment.paid_at), payment.notes,
                ))
                row = cur.fetchone()
                payment.id = row[0]
                payment.created_at = _timestamp_to_ms(row[1])
            conn.commit()
            logger.info(f"Created payment '{payment.title}' #{payment.id} for project {payment.project_id}")
            return payment.id
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to create payment: {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get_by_project_id(self, project_id: int) -> list[Payment]:
        """
        Get all payments of a project, ordered by due date ascending.

        Args:
            project_id: The owning project.

        Returns:
            List of Payment objects.
        """
        query = (
            f"SELECT {', '.join(_COLUMNS)} FROM project_payments "
            "WHERE project_id = %s ORDER BY due_date ASC, id ASC;"
        )
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (project_id,))
                return [self._row_to_payment(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def get_all(self) -> list[Payment]:
        """Get every payment across projects, ordered by due date ascending."""
        query = f"SELECT {', '.join(_COLUMNS)} FROM project_payments ORDER BY due_date ASC, id ASC;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query)
                return [self._row_to_payment(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """Fetch a single payment by ID."""
        query = f"SELECT {', '.join(_COLUMNS)} FROM project_payments WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (payment_id,))
                row = cur.fetchone()
                return self._row_to_payment(row) if row else None
        finally:
            release_connection(conn)

    # ── UPDATE ────────────────────────────────────────────

    def update(self, payment_id: int, fields: dict) -> None:
        """
        Partial update: only the supplied fields change.

        Args:
            payment_id: The payment to update.
            fields: Column -> new value, using the model's representation
                (ISO date strings, epoch milliseconds).

        Raises:
            ValueError: If a field is not updatable.
        """
        if not fields:
            return
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update payment fields: {sorted(unknown)}")

        values = dict(fields)
        if "paid_at" in values:
            values["paid_at"] = _ms_to_timestamp(values["paid_at"])

        names = sorted(values)
        query = sql.SQL("UPDATE project_payments SET {} WHERE id = %s;").format(
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(name)) for name in names
            )
        )
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, [values[name] for name in names] + [payment_id])
            conn.commit()
            logger.info(f"Updated payment #{payment_id}: {', '.join(names)}")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update payment #{payment_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── DELETE ────────────────────────────────────────────

    def delete(self, payment_id: int) -> bool:
        """Delete a payment by ID."""
        query = "DELETE FROM project_payments WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(query, (payment_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted payment #{payment_id}")
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete payment #{payment_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── SUBSCRIBE ─────────────────────────────────────────

    def subscribe(
        self,
        project_id: Optional[int],
        callback: Callable[[list[Payment]], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_lost: Optional[Callable[[Exception], None]] = None,
    ) -> PaymentSubscription:
        """
        Push the full, freshly read payment list to `callback` on every
        change of the project's payments (all payments if project_id is None).
        `on_lost` is called once if the listening connection drops.

        Returns:
            The started subscription; call `close()` to unsubscribe.
        """
        if project_id is None:
            fetch = self.get_all
        else:
            def fetch() -> list[Payment]:
                return self.get_by_project_id(project_id)
        return PaymentSubscription(project_id, fetch, callback, loop=loop, on_lost=on_lost).start()

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _row_to_payment(row: tuple) -> Payment:
        """Convert a database row tuple to a Payment domain object."""
        due = row[3]
        return Payment(
            id=row[0],
            project_id=row[1],
            title=row[2],
            due_date=due.isoformat() if isinstance(due, date) else due,
            amount=float(row[4]) if row[4] is not None else None,
            currency=row[5],
            is_recurring=bool(row[6]),
            recurring_day=row[7],
            status=row[8],
            paid_at=_timestamp_to_ms(row[9]),
            notes=row[10],
            created_at=_timestamp_to_ms(row[11]),
        )
