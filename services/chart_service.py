"""
services/chart_service.py
-------------------------
Generates a chart of a project's payment amounts grouped by status.
Uses matplotlib and returns PNG images as BytesIO buffers.
"""

import io
from datetime import datetime
from typing import Optional

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt

from errors import InvalidPaymentDateError
from models.payment import PaymentStatus
from repositories.payment_repo import PaymentRepository
from services.status_engine import evaluate_status
from utils import clock
from utils.logger import get_logger

logger = get_logger(__name__)

plt.rcParams["font.family"] = "DejaVu Sans"
plt.rcParams["figure.facecolor"] = "#1a1a2e"
plt.rcParams["text.color"] = "#e0e0e0"
plt.rcParams["axes.facecolor"] = "#1a1a2e"

_STATUS_COLORS = {
    PaymentStatus.PENDING: "#F7DC6F",
    PaymentStatus.PAID: "#82E0AA",
    PaymentStatus.OVERDUE: "#FF6B6B",
}
_STATUS_LABELS = {
    PaymentStatus.PENDING: "Pendente",
    PaymentStatus.PAID: "Pago",
    PaymentStatus.OVERDUE: "Vencido",
}


def totals_by_status(payments, now: datetime) -> dict[str, float]:
    """Sum of amounts per evaluated status; unreadable records are left out."""
    totals = {status: 0.0 for status in PaymentStatus.ALL}
    for p in payments:
        if p.amount is None:
            continue
        try:
            totals[evaluate_status(p, now)] += p.amount
        except InvalidPaymentDateError:
            continue
    return totals


class ChartService:
    """Generates visual charts for project payments."""

    def __init__(self, repo=None):
        self.repo = repo or PaymentRepository()

    def generate_status_bar(self, project_id: int, title: str = "",
                            now: Optional[datetime] = None) -> io.BytesIO | None:
        """
        Bar chart of payment amounts per status (pending, overdue, paid).

        Returns:
            BytesIO buffer with PNG image, or None if there is nothing to plot.
        """
        now = now or clock.now()
        totals = totals_by_status(self.repo.get_by_project_id(project_id), now)
        if not any(totals.values()):
            return None

        order = [PaymentStatus.OVERDUE, PaymentStatus.PENDING, PaymentStatus.PAID]
        amounts = [totals[s] for s in order]

        fig, ax = plt.subplots(figsize=(8, 5))
        bars = ax.bar(
            range(len(order)), amounts,
            color=[_STATUS_COLORS[s] for s in order],
            edgecolor="#1a1a2e",
            linewidth=1.5,
            width=0.6,
            zorder=3,
        )

        for bar, amount in zip(bars, amounts):
            if amount > 0:
                ax.text(
                    bar.get_x() + bar.get_width() / 2, bar.get_height(),
                    f"{amount:,.2f}",
                    ha="center", va="bottom",
                    color="#e0e0e0", fontsize=10, fontweight="bold",
                )

        ax.set_xticks(range(len(order)))
        ax.set_xticklabels([_STATUS_LABELS[s] for s in order], fontsize=10, color="#e0e0e0")
        ax.set_title(
            f"Pagamentos por status{f' - {title}' if title else ''}\n{now.strftime('%d/%m/%Y')}",
            fontsize=13, fontweight="bold", pad=15,
        )

        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        ax.spines["left"].set_color("#444")
        ax.spines["bottom"].set_color("#444")
        ax.tick_params(colors="#e0e0e0")
        ax.grid(axis="y", alpha=0.2, color="#888")
        ax.set_axisbelow(True)

        plt.tight_layout()

        buf = io.BytesIO()
        fig.savefig(buf, format="png", dpi=150, bbox_inches="tight",
                    facecolor=fig.get_facecolor())
        buf.seek(0)
        plt.close(fig)

        logger.info(f"Generated status chart for project {project_id}")
        return buf
