"""
services/payment_controller.py
------------------------------
Lifecycle of a project's payments: periodic status recompute and the
"mark as paid" transition.

The controller owns the in-memory copy of one project's payments. The store
stays the source of truth: every realtime snapshot replaces the copy
wholesale, and local changes are applied only after the store confirms the
write.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

import psycopg2

from config import PERSIST_STATUS_CHANGES
from errors import InvalidPaymentDateError, PaymentNotFoundError, StoreError
from models.payment import Payment, PaymentStatus
from services.status_engine import evaluate_status, next_cycle_due_date, to_epoch_ms
from utils.logger import get_logger

logger = get_logger(__name__)


def refresh_all(payments: list[Payment], now: datetime) -> list[Payment]:
    """
    Recompute every status at one instant. Returns new records; the input
    list and its `due_date`/`paid_at` values are left untouched.
    """
    return [replace(p, status=evaluate_status(p, now)) for p in payments]


def mark_as_paid_fields(payment: Payment, now: datetime) -> dict:
    """
    The partial update that marks a payment paid at `now`.
    Recurring payments also move `due_date` to the next cycle.
    """
    fields = {"status": PaymentStatus.PAID, "paid_at": to_epoch_ms(now)}
    if payment.is_recurring and payment.recurring_day:
        fields["due_date"] = next_cycle_due_date(payment.recurring_day, now)
    return fields


class PaymentLifecycleController:
    """
    Owns the loaded payments of one project.

    Responsibilities:
        - Keep the cache in sync with the store (load + realtime snapshots).
        - Recompute statuses on every tick, optionally persisting changes.
        - Perform the authoritative "mark as paid" transition.
    """

    def __init__(self, project_id: Optional[int], repo, persist_status_changes: bool = PERSIST_STATUS_CHANGES):
        self.project_id = project_id
        self.repo = repo
        self.persist_status_changes = persist_status_changes
        self._payments: list[Payment] = []
        # Last status known to be stored, per payment id
        self._stored_status: dict[int, str] = {}
        self._subscription = None
        self._loop = None
        self._lost = False

    @property
    def payments(self) -> tuple[Payment, ...]:
        """Read-only snapshot of the cached payments."""
        return tuple(self._payments)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def subscription_lost(self) -> bool:
        """True once the realtime channel dropped and until `reconnect` succeeds."""
        return self._lost

    # ── Store sync ────────────────────────────────────────

    def load(self) -> None:
        """
        Read the project's payments (every payment for the global view)
        from the store into the cache.

        Raises:
            StoreError: If the store read fails; the cache is left unchanged.
        """
        operation = "get_all" if self.project_id is None else "get_by_project_id"
        try:
            if self.project_id is None:
                snapshot = self.repo.get_all()
            else:
                snapshot = self.repo.get_by_project_id(self.project_id)
        except psycopg2.Error as e:
            logger.error(f"Failed to load payments of project {self.project_id}: {e}")
            raise StoreError(operation, str(e)) from e
        self.apply_snapshot(snapshot)

    def apply_snapshot(self, payments: list[Payment]) -> None:
        """Replace the cache with a fresh store snapshot."""
        self._payments = list(payments)
        self._stored_status = {p.id: p.status for p in self._payments}
        logger.debug(f"Project {self.project_id}: cache replaced with {len(self._payments)} payments")

    def start(self, loop=None) -> None:
        """
        Subscribe to realtime changes of the project's payments.

        Raises:
            StoreError: If the subscription cannot be opened.
        """
        if self._subscription is not None:
            return
        try:
            self._subscription = self.repo.subscribe(
                self.project_id, self.apply_snapshot, loop=loop, on_lost=self._on_subscription_lost,
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to subscribe to project {self.project_id}: {e}")
            raise StoreError("subscribe", str(e)) from e
        self._loop = loop
        self._lost = False

    def reconnect(self) -> None:
        """
        Reload the cache and re-open a dropped realtime channel.

        Raises:
            StoreError: If the reload or the subscription fails.
        """
        self.load()
        self.start(loop=self._loop)
        logger.info(f"Project {self.project_id}: realtime channel restored")

    def _on_subscription_lost(self, error: Exception) -> None:
        logger.warning(f"Project {self.project_id}: realtime channel lost, cache may be stale: {error}")
        self._subscription = None
        self._lost = True

    def close(self) -> None:
        """Dispose of the realtime subscription. Safe to call twice."""
        self._lost = False
        if self._subscription is None:
            return
        subscription, self._subscription = self._subscription, None
        subscription.close()

    # ── Reads ─────────────────────────────────────────────

    def get(self, payment_id: int) -> Payment:
        """
        Raises:
            PaymentNotFoundError: If the id is not in the cache.
        """
        for p in self._payments:
            if p.id == payment_id:
                return p
        raise PaymentNotFoundError(payment_id)

    def displayed(self, now: datetime) -> list[Payment]:
        """Payments with their status as of `now`, for rendering."""
        return refresh_all(self._payments, now)

    # ── Periodic recompute ────────────────────────────────

    def tick(self, now: datetime) -> list[Payment]:
        """
        One recompute pass at `now`.

        Records whose dates cannot be read keep their cached status. When
        `persist_status_changes` is on, statuses that differ from the stored
        ones are written back; failed writes are logged and retried on the
        next tick.

        Returns:
            The payments whose cached status changed during this pass.
        """
        refreshed = []
        changed = []
        for p in self._payments:
            try:
                status = evaluate_status(p, now)
            except InvalidPaymentDateError as e:
                logger.warning(f"Skipping payment #{p.id} in project {self.project_id}: {e}")
                refreshed.append(p)
                continue
            if status != p.status:
                p = replace(p, status=status)
                changed.append(p)
            refreshed.append(p)
        self._payments = refreshed

        if self.persist_status_changes:
            self._persist_statuses()
        return changed

    def _persist_statuses(self) -> None:
        for p in self._payments:
            if p.id is None or self._stored_status.get(p.id) == p.status:
                continue
            try:
                self.repo.update(p.id, {"status": p.status})
            except psycopg2.Error as e:
                logger.warning(f"Background status write for payment #{p.id} failed, retrying next tick: {e}")
                continue
            self._stored_status[p.id] = p.status

    # ── Mark as paid ──────────────────────────────────────

    def mark_as_paid(self, payment_id: int, now: datetime) -> dict:
        """
        Mark a payment paid at `now` and write it to the store.

        A payment that is already paid for the current cycle is left alone
        and an empty dict is returned.

        Returns:
            The fields written to the store.

        Raises:
            PaymentNotFoundError: If the id is not loaded.
            StoreError: If the write fails; the cached record is unchanged.
        """
        payment = self.get(payment_id)
        if evaluate_status(payment, now) == PaymentStatus.PAID:
            logger.info(f"Payment #{payment_id} already paid for this cycle, nothing to do")
            return {}

        fields = mark_as_paid_fields(payment, now)
        try:
            self.repo.update(payment_id, fields)
        except psycopg2.Error as e:
            logger.error(f"Failed to mark payment #{payment_id} as paid: {e}")
            raise StoreError("update", str(e)) from e

        self._replace(replace(payment, **fields))
        self._stored_status[payment_id] = PaymentStatus.PAID
        logger.info(f"Payment #{payment_id} marked as paid: {fields}")
        return fields

    def _replace(self, updated: Payment) -> None:
        self._payments = [updated if p.id == updated.id else p for p in self._payments]


def load_controller(project_id: int, repo, persist_status_changes: Optional[bool] = None) -> PaymentLifecycleController:
    """Build and load a controller without a realtime subscription."""
    if persist_status_changes is None:
        persist_status_changes = PERSIST_STATUS_CHANGES
    controller = PaymentLifecycleController(project_id, repo, persist_status_changes)
    controller.load()
    return controller
