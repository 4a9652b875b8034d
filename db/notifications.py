"""
db/notifications.py
-------------------
Realtime push for project payments, built on PostgreSQL LISTEN/NOTIFY.

A subscription owns one dedicated connection registered with the asyncio
event loop (``loop.add_reader``), so notifications are handled on the same
single thread as the bot. Every relevant notification re-reads the full
snapshot and hands it to the callback; subscribers replace their state
wholesale, they never merge.
"""

import asyncio
import json
from typing import Callable, Optional

import psycopg2
from psycopg2 import sql

from config import PAYMENTS_CHANNEL
from db.connection import open_listen_connection
from utils.logger import get_logger

logger = get_logger(__name__)


class PaymentSubscription:
    """
    Listens for payment changes of one project (or all projects when
    ``project_id`` is None) and pushes full snapshots to ``callback``.

    If the listening connection drops, the subscription tears itself down
    and calls ``on_lost`` with the error; it never comes back on its own.

    Usage:
        sub = PaymentSubscription(7, fetch_snapshot, on_snapshot)
        sub.start()
        ...
        sub.close()
    """

    def __init__(
        self,
        project_id: Optional[int],
        fetch_snapshot: Callable[[], list],
        callback: Callable[[list], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        connect: Callable = open_listen_connection,
        channel: str = PAYMENTS_CHANNEL,
        on_lost: Optional[Callable[[Exception], None]] = None,
    ):
        self.project_id = project_id
        self._fetch_snapshot = fetch_snapshot
        self._callback = callback
        self._loop = loop
        self._connect = connect
        self._channel = channel
        self._on_lost = on_lost
        self._conn = None
        self._fd: Optional[int] = None
        self._closed = False

    @property
    def active(self) -> bool:
        return self._conn is not None and not self._closed

    def start(self) -> "PaymentSubscription":
        """
        Open the listening connection and register it with the event loop.

        Raises:
            psycopg2.Error: If the connection or LISTEN fails.
            RuntimeError: If the subscription was closed, or no loop was
                given and none is running.
        """
        if self._closed:
            raise RuntimeError("Subscription already closed.")
        if self._conn is not None:
            return self

        loop = self._loop or asyncio.get_running_loop()
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("LISTEN {};").format(sql.Identifier(self._channel)))
            fd = conn.fileno()
            loop.add_reader(fd, self._on_readable)
        except Exception:
            conn.close()
            raise

        self._loop = loop
        self._conn = conn
        self._fd = fd
        logger.info(f"Subscribed to '{self._channel}' for project {self._scope()}")
        return self

    def close(self) -> None:
        """Unregister from the loop and close the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.info(f"Unsubscribed from '{self._channel}' for project {self._scope()}")

    def _release(self) -> None:
        conn, self._conn = self._conn, None
        fd, self._fd = self._fd, None
        if conn is None:
            return
        try:
            if fd is not None:
                self._loop.remove_reader(fd)
        finally:
            if not conn.closed:
                conn.close()

    def _lost(self, error: Exception) -> None:
        """Tear down after the connection dropped and tell the owner."""
        logger.error(f"Lost '{self._channel}' connection for project {self._scope()}: {error}")
        self._closed = True
        try:
            self._release()
        except psycopg2.Error as e:
            logger.warning(f"Closing dropped connection for project {self._scope()} failed: {e}")
        if self._on_lost is not None:
            self._on_lost(error)

    # ── Event loop callback ───────────────────────────────

    def _on_readable(self) -> None:
        """Drain pending notifications; deliver one snapshot if any is relevant."""
        if not self.active:
            return
        if self._conn.closed:
            self._lost(psycopg2.InterfaceError("connection already closed"))
            return
        try:
            self._conn.poll()
        except psycopg2.Error as e:
            self._lost(e)
            return

        relevant = False
        while self._conn.notifies:
            notify = self._conn.notifies.pop(0)
            if self._concerns(notify.payload):
                relevant = True

        if relevant:
            self._deliver()

    def _concerns(self, payload: str) -> bool:
        if self.project_id is None:
            return True
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            # Unknown payload counts as relevant
            logger.warning(f"Unreadable payment notification payload: {payload!r}")
            return True
        return data.get("project_id") == self.project_id

    def _deliver(self) -> None:
        try:
            snapshot = self._fetch_snapshot()
        except psycopg2.Error as e:
            logger.error(f"Failed to read payments snapshot for project {self._scope()}: {e}")
            return
        self._callback(snapshot)

    def _scope(self) -> str:
        return "*" if self.project_id is None else str(self.project_id)
