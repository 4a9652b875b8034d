"""
services/export_service.py
--------------------------
Generates CSV and Excel exports of a project's payment schedule.
Statuses are evaluated at export time, not read from the stored cache.
"""

import io
from datetime import datetime
from typing import Optional

import pandas as pd

from errors import InvalidPaymentDateError
from repositories.payment_repo import PaymentRepository
from services.status_engine import evaluate_status, from_epoch_ms
from utils import clock
from utils.logger import get_logger

logger = get_logger(__name__)


class ExportService:
    """Generates downloadable payment schedules in CSV and Excel formats."""

    def __init__(self, repo=None):
        self.repo = repo or PaymentRepository()

    def build_frame(self, project_id: int, now: Optional[datetime] = None) -> pd.DataFrame:
        """
        One row per payment of the project, ordered by due date.

        Args:
            project_id: The project to export.
            now: Instant used to evaluate statuses.
        """
        now = now or clock.now()
        payments = self.repo.get_by_project_id(project_id)

        data = []
        for p in payments:
            try:
                status = evaluate_status(p, now)
            except InvalidPaymentDateError:
                status = "invalid"
            paid_at = (
                from_epoch_ms(p.paid_at, now.tzinfo).strftime("%Y-%m-%d %H:%M")
                if p.paid_at is not None else ""
            )
            data.append({
                "Título": p.title,
                "Vencimento": p.due_date,
                "Valor": p.amount,
                "Moeda": p.currency,
                "Status": status,
                "Recorrente": "sim" if p.is_recurring else "não",
                "Dia": p.recurring_day or "",
                "Pago em": paid_at,
                "Observações": p.notes or "",
            })

        return pd.DataFrame(data, columns=[
            "Título", "Vencimento", "Valor", "Moeda", "Status",
            "Recorrente", "Dia", "Pago em", "Observações",
        ])

    def export_csv(self, project_id: int, now: Optional[datetime] = None) -> io.BytesIO:
        """
        Export a project's payments as a CSV file.

        Returns:
            A BytesIO buffer containing the CSV data.
        """
        df = self.build_frame(project_id, now)
        buffer = io.BytesIO()
        df.to_csv(buffer, index=False, encoding="utf-8-sig")
        buffer.seek(0)
        logger.info(f"Exported {len(df)} payments as CSV for project {project_id}")
        return buffer

    def export_excel(self, project_id: int, now: Optional[datetime] = None) -> io.BytesIO:
        """
        Export a project's payments as an Excel (.xlsx) file, with a
        summary sheet of amounts per status and currency.

        Returns:
            A BytesIO buffer containing the Excel data.
        """
        df = self.build_frame(project_id, now)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Pagamentos", index=False)

            if not df.empty:
                summary = df.groupby(["Status", "Moeda"])["Valor"].sum().reset_index()
                summary.columns = ["Status", "Moeda", "Total"]
                summary.to_excel(writer, sheet_name="Resumo", index=False)

        buffer.seek(0)
        logger.info(f"Exported {len(df)} payments as Excel for project {project_id}")
        return buffer
