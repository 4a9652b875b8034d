"""
handlers/export_handler.py
---------------------------
Handles payment schedule exports (CSV, Excel).
Delegates to ExportService.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.payment_handler import current_project
from services.export_service import ExportService
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils import clock
from utils.logger import get_logger

logger = get_logger(__name__)
export_service = ExportService()


async def _send_export(update: Update, context: ContextTypes.DEFAULT_TYPE, kind: str) -> None:
    project_id = current_project(context, context.args)
    if project_id is None:
        await update.message.reply_text(f"⚠️ Uso: /export_{kind} <projeto>\nExemplo: /export_{kind} 3")
        return

    now = clock.now()
    await update.message.reply_text("📄 Preparando o arquivo...")

    try:
        if kind == "csv":
            buffer = export_service.export_csv(project_id, now)
            filename = f"pagamentos_{project_id}_{now:%Y%m%d}.csv"
        else:
            buffer = export_service.export_excel(project_id, now)
            filename = f"pagamentos_{project_id}_{now:%Y%m%d}.xlsx"
        await update.message.reply_document(
            document=buffer,
            filename=filename,
            caption=f"📊 Pagamentos do projeto #{project_id}",
        )
    except Exception as e:
        logger.error(f"{kind.upper()} export failed for project {project_id}: {e}")
        await update.message.reply_text("❌ Falha na exportação. Tente de novo.")


@authorized_only
@rate_limited
async def export_csv_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_csv [projeto] - send the project's payments as CSV."""
    await _send_export(update, context, "csv")


@authorized_only
@rate_limited
async def export_excel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_excel [projeto] - send the project's payments as Excel."""
    await _send_export(update, context, "excel")
