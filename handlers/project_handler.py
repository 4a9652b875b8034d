"""
handlers/project_handler.py
---------------------------
Project listing/creation and the watched project views.

/watch opens a live payments view for a project: its payments are kept in
memory, refreshed every minute and replaced on every realtime change.
/unwatch tears the view down.
"""

from telegram import Update
from telegram.ext import ContextTypes

from errors import StoreError
from handlers.payment_handler import current_project, payment_service
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)


@authorized_only
@rate_limited
async def projects_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /projects - list all projects."""
    await update.message.reply_text(payment_service.list_projects())


@authorized_only
@rate_limited
async def add_project_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /add_project nome [| cliente].
    Example: /add_project Loja Online | ACME Ltda
    """
    if not context.args:
        await update.message.reply_text("⚠️ Uso: /add_project <nome> [| cliente]")
        return
    parts = [p.strip() for p in " ".join(context.args).split("|", 1)]
    client = parts[1] if len(parts) > 1 else None
    await update.message.reply_text(payment_service.add_project(parts[0], client))


@authorized_only
@rate_limited
async def watch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /watch <projeto> - select a project and open its live view."""
    project_id = current_project(context, context.args)
    if project_id is None:
        await update.message.reply_text("⚠️ Uso: /watch <projeto>\nExemplo: /watch 3")
        return

    if payment_service.project_repo.get_by_id(project_id) is None:
        await update.message.reply_text(f"⚠️ O projeto #{project_id} não existe.")
        return

    try:
        payment_service.board.open(project_id)
    except StoreError as e:
        logger.error(f"Opening view of project {project_id} failed: {e}")
        await update.message.reply_text("❌ Falha ao abrir o painel do projeto. Tente de novo.")
        return

    context.user_data["project_id"] = project_id
    await update.message.reply_text(
        f"👁️ Acompanhando o projeto #{project_id}.\n\n"
        + payment_service.list_payments(project_id)
    )


@authorized_only
@rate_limited
async def unwatch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /unwatch [projeto] - close a project's live view."""
    project_id = current_project(context, context.args)
    if project_id is None:
        await update.message.reply_text("⚠️ Uso: /unwatch <projeto>")
        return

    closed = payment_service.board.close(project_id)
    if context.user_data.get("project_id") == project_id:
        context.user_data.pop("project_id", None)
    if closed:
        await update.message.reply_text(f"🙈 Projeto #{project_id} não é mais acompanhado.")
    else:
        await update.message.reply_text(f"ℹ️ O projeto #{project_id} não estava sendo acompanhado.")
