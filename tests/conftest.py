"""Pytest configuration and shared fixtures for OpsBoard tests.

Provides in-memory stand-ins for the payment and project repositories and
helpers for building fixed, timezone-aware instants, so the status engine and
the lifecycle controller can be exercised without a database or a clock.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import psycopg2
import pytest

from models.payment import Payment, PaymentStatus
from models.project import Project


def at(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> datetime:
    """A fixed UTC instant."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def make_payment(**overrides) -> Payment:
    """A valid one-off payment; override any field."""
    fields = dict(
        id=1,
        project_id=1,
        title="Hospedagem",
        due_date="2024-05-30",
        amount=120.0,
        currency="BRL",
        is_recurring=False,
        recurring_day=None,
        status=PaymentStatus.PENDING,
        paid_at=None,
        created_at=ms(at(2024, 1, 1)),
    )
    fields.update(overrides)
    return Payment(**fields)


# =============================================================================
# Fake Entity Store
# =============================================================================


class FakeSubscription:
    def __init__(self, project_id, callback, on_lost=None):
        self.project_id = project_id
        self.callback = callback
        self.on_lost = on_lost
        self.closed = False
        self.fail_close = False

    def push(self, snapshot):
        if not self.closed:
            self.callback(snapshot)

    def drop(self):
        """Simulate the listening connection going away."""
        self.closed = True
        if self.on_lost is not None:
            self.on_lost(psycopg2.OperationalError("server closed the connection"))

    def close(self):
        if self.fail_close:
            raise psycopg2.InterfaceError("connection already closed")
        self.closed = True


class FakePaymentRepository:
    """In-memory payment store with the PaymentRepository interface."""

    def __init__(self, payments=()):
        self.rows: dict[int, Payment] = {p.id: replace(p) for p in payments}
        self.updates: list[tuple[int, dict]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.fail_updates = False
        self.fail_reads = False
        self.fail_subscribe = False
        self._next_id = max(self.rows, default=0) + 1

    def _check_read(self):
        if self.fail_reads:
            raise psycopg2.OperationalError("connection lost")

    def get_by_project_id(self, project_id):
        self._check_read()
        rows = [replace(p) for p in self.rows.values() if p.project_id == project_id]
        return sorted(rows, key=lambda p: (p.due_date, p.id))

    def get_all(self):
        self._check_read()
        return sorted((replace(p) for p in self.rows.values()), key=lambda p: (p.due_date, p.id))

    def get_by_id(self, payment_id):
        self._check_read()
        row = self.rows.get(payment_id)
        return replace(row) if row else None

    def create(self, payment):
        payment.id = self._next_id
        payment.created_at = ms(at(2024, 1, 1))
        self._next_id += 1
        self.rows[payment.id] = replace(payment)
        return payment.id

    def update(self, payment_id, fields):
        if self.fail_updates:
            raise psycopg2.OperationalError("connection lost")
        self.updates.append((payment_id, dict(fields)))
        self.rows[payment_id] = replace(self.rows[payment_id], **fields)

    def delete(self, payment_id):
        return self.rows.pop(payment_id, None) is not None

    def subscribe(self, project_id, callback, loop=None, on_lost=None):
        if self.fail_subscribe:
            raise psycopg2.OperationalError("LISTEN failed")
        sub = FakeSubscription(project_id, callback, on_lost)
        self.subscriptions.append(sub)
        return sub

    def push(self, project_id):
        """Simulate the realtime channel delivering a fresh snapshot."""
        for sub in self.subscriptions:
            if sub.project_id is None:
                sub.push(self.get_all())
            elif sub.project_id == project_id:
                sub.push(self.get_by_project_id(project_id))


class FakeProjectRepository:
    def __init__(self, projects=()):
        self.rows = {p.id: p for p in projects}
        self.fail_reads = False

    def add(self, project):
        project.id = max(self.rows, default=0) + 1
        self.rows[project.id] = project
        return project

    def get_all(self):
        return list(self.rows.values())

    def get_by_id(self, project_id):
        if self.fail_reads:
            raise psycopg2.OperationalError("connection lost")
        return self.rows.get(project_id)


@pytest.fixture
def payment_repo():
    return FakePaymentRepository()


@pytest.fixture
def project_repo():
    return FakeProjectRepository([Project(id=1, name="Loja Online", client_name="ACME")])
