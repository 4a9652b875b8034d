"""
handlers/chart_handler.py
--------------------------
Handles chart generation commands.
Delegates to ChartService and sends images to the user.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.payment_handler import current_project, payment_service
from services.chart_service import ChartService
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)
chart_service = ChartService()


@authorized_only
@rate_limited
async def chart_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /chart [projeto] - bar chart of payment amounts per status.

    Usage:
        /chart     → selected project
        /chart 3   → project #3
    """
    project_id = current_project(context, context.args)
    if project_id is None:
        await update.message.reply_text("⚠️ Uso: /chart <projeto>")
        return

    project = payment_service.project_repo.get_by_id(project_id)
    if project is None:
        await update.message.reply_text(f"⚠️ O projeto #{project_id} não existe.")
        return

    buf = chart_service.generate_status_bar(project_id, title=project.name)
    if buf:
        await update.message.reply_photo(photo=buf, caption=f"📊 {project.name} - pagamentos por status")
    else:
        await update.message.reply_text("📭 Nenhum pagamento com valor neste projeto.")
