"""
services/payment_board.py
-------------------------
Registry of open project payment views.

Each watched project gets exactly one PaymentLifecycleController, which owns
that project's payments and its realtime subscription. The key None holds the
global view over every project. The periodic refresh job ticks every open
controller with a single captured `now`, first restoring any view whose
realtime channel dropped.
"""

from datetime import datetime
from typing import Optional

from config import PERSIST_STATUS_CHANGES
from errors import StoreError
from models.payment import Payment
from services.payment_controller import PaymentLifecycleController
from utils.logger import get_logger

logger = get_logger(__name__)


class PaymentBoard:
    """Opens, ticks and tears down per-project payment controllers."""

    def __init__(self, repo, persist_status_changes: bool = PERSIST_STATUS_CHANGES):
        self.repo = repo
        self.persist_status_changes = persist_status_changes
        self._controllers: dict[int, PaymentLifecycleController] = {}

    @property
    def project_ids(self) -> list[int]:
        """Watched project ids; the global view is not listed."""
        return sorted(pid for pid in self._controllers if pid is not None)

    def get(self, project_id: Optional[int]) -> Optional[PaymentLifecycleController]:
        """The open controller for a project, if any."""
        return self._controllers.get(project_id)

    def open(self, project_id: Optional[int], loop=None) -> PaymentLifecycleController:
        """
        Load a project's payments (all payments when project_id is None)
        and subscribe to their changes.
        Re-opening an open project returns the existing controller.

        Raises:
            StoreError: If loading or subscribing fails.
        """
        controller = self._controllers.get(project_id)
        if controller is not None:
            return controller

        controller = PaymentLifecycleController(
            project_id, self.repo, persist_status_changes=self.persist_status_changes,
        )
        controller.load()
        try:
            controller.start(loop=loop)
        except StoreError:
            controller.close()
            raise
        self._controllers[project_id] = controller
        logger.info(f"Opened payments view for project {project_id}")
        return controller

    def close(self, project_id: Optional[int]) -> bool:
        """
        Tear down a project's view. Returns False if it was not open.
        The view is forgotten even if closing its subscription raises.
        """
        controller = self._controllers.pop(project_id, None)
        if controller is None:
            return False
        controller.close()
        logger.info(f"Closed payments view for project {project_id}")
        return True

    def close_all(self) -> None:
        """Tear down every view; one failing close does not stop the others."""
        for project_id in list(self._controllers):
            try:
                self.close(project_id)
            except Exception as e:
                logger.error(f"Closing payments view of project {project_id} failed: {e}")

    def tick_all(self, now: datetime) -> dict[int, list[Payment]]:
        """
        Recompute every open view at `now`.

        Returns:
            Project id -> payments whose status changed (only non-empty entries).
        """
        changes: dict[int, list[Payment]] = {}
        for project_id, controller in list(self._controllers.items()):
            try:
                if controller.subscription_lost:
                    controller.reconnect()
                changed = controller.tick(now)
            except Exception as e:
                logger.error(f"Status refresh failed for project {project_id}: {e}")
                continue
            if changed:
                changes[project_id] = changed
                logger.info(
                    f"Project {project_id}: "
                    + ", ".join(f"#{p.id} -> {p.status}" for p in changed)
                )
        return changes
