"""PaymentSubscription tests with a fake LISTEN connection and event loop."""

from __future__ import annotations

import json
from types import SimpleNamespace

import psycopg2
import pytest

from db.notifications import PaymentSubscription


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query):
        if self.conn.fail_listen:
            raise psycopg2.OperationalError("LISTEN failed")
        self.conn.executed.append(query)


class FakeConnection:
    def __init__(self, fail_listen=False):
        self.notifies = []
        self.executed = []
        self.closed = False
        self.fail_listen = fail_listen
        self.fail_poll = False
        self.polls = 0

    def cursor(self):
        return FakeCursor(self)

    def fileno(self):
        if self.closed:
            raise psycopg2.InterfaceError("connection already closed")
        return 17

    def poll(self):
        if self.fail_poll:
            raise psycopg2.OperationalError("server closed the connection unexpectedly")
        self.polls += 1

    def close(self):
        self.closed = True

    def notify(self, payload):
        self.notifies.append(SimpleNamespace(channel="project_payments_changed", payload=payload))


class FakeLoop:
    def __init__(self):
        self.readers = {}

    def add_reader(self, fd, callback):
        self.readers[fd] = callback

    def remove_reader(self, fd):
        self.readers.pop(fd, None)

    def fire(self):
        for callback in list(self.readers.values()):
            callback()


def _subscription(project_id=1, snapshot=("snap",), conn=None, on_lost=None):
    conn = conn or FakeConnection()
    loop = FakeLoop()
    received = []
    reads = []

    def fetch():
        reads.append(1)
        return list(snapshot)

    sub = PaymentSubscription(
        project_id, fetch, received.append, loop=loop, connect=lambda: conn, on_lost=on_lost,
    )
    return sub, conn, loop, received, reads


def test_start_listens_and_registers_reader():
    sub, conn, loop, _, _ = _subscription()

    assert sub.start() is sub

    assert sub.active
    assert len(conn.executed) == 1
    assert 17 in loop.readers


def test_relevant_notification_delivers_one_snapshot():
    sub, conn, loop, received, reads = _subscription()
    sub.start()
    conn.notify(json.dumps({"project_id": 1, "op": "UPDATE"}))
    conn.notify(json.dumps({"project_id": 1, "op": "INSERT"}))

    loop.fire()

    assert received == [["snap"]]
    assert len(reads) == 1
    assert conn.notifies == []


def test_other_projects_are_ignored():
    sub, conn, loop, received, _ = _subscription()
    sub.start()
    conn.notify(json.dumps({"project_id": 2, "op": "DELETE"}))

    loop.fire()

    assert received == []


def test_global_subscription_takes_every_project():
    sub, conn, loop, received, _ = _subscription(project_id=None)
    sub.start()
    conn.notify(json.dumps({"project_id": 2, "op": "DELETE"}))

    loop.fire()

    assert received == [["snap"]]


def test_unreadable_payload_triggers_reread():
    sub, conn, loop, received, _ = _subscription()
    sub.start()
    conn.notify("not json")

    loop.fire()

    assert received == [["snap"]]


def test_failed_snapshot_read_is_skipped():
    conn = FakeConnection()
    loop = FakeLoop()
    received = []

    def fetch():
        raise psycopg2.OperationalError("gone")

    sub = PaymentSubscription(1, fetch, received.append, loop=loop, connect=lambda: conn)
    sub.start()
    conn.notify(json.dumps({"project_id": 1, "op": "UPDATE"}))

    loop.fire()

    assert received == []
    assert sub.active


def test_close_is_idempotent_and_stops_delivery():
    sub, conn, loop, received, _ = _subscription()
    sub.start()

    sub.close()
    sub.close()

    assert conn.closed
    assert loop.readers == {}
    assert not sub.active
    with pytest.raises(RuntimeError):
        sub.start()


def test_failed_listen_closes_the_connection():
    conn = FakeConnection(fail_listen=True)
    sub, _, loop, _, _ = _subscription(conn=conn)

    with pytest.raises(psycopg2.OperationalError):
        sub.start()

    assert conn.closed
    assert loop.readers == {}
    assert not sub.active


def test_dropped_connection_tears_down_and_reports_once():
    errors = []
    sub, conn, loop, received, _ = _subscription(on_lost=errors.append)
    sub.start()
    conn.fail_poll = True
    conn.notify(json.dumps({"project_id": 1, "op": "UPDATE"}))

    loop.fire()

    assert not sub.active
    assert loop.readers == {}
    assert conn.closed
    assert received == []
    assert len(errors) == 1
    assert isinstance(errors[0], psycopg2.OperationalError)

    loop.fire()
    sub.close()

    assert len(errors) == 1


def test_connection_closed_by_the_server_is_detected():
    errors = []
    sub, conn, loop, _, _ = _subscription(on_lost=errors.append)
    sub.start()
    conn.closed = True
    callback = loop.readers[17]

    callback()

    assert loop.readers == {}
    assert not sub.active
    assert len(errors) == 1


def test_close_after_connection_died_does_not_raise():
    sub, conn, loop, _, _ = _subscription()
    sub.start()
    conn.closed = True

    sub.close()

    assert loop.readers == {}
    assert not sub.active
