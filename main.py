"""
main.py
-------
Entry point for the OpsBoard Telegram bot.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Configure and start the Telegram bot with all handlers.
    - Schedule the periodic payment status refresh of watched projects.
    - Tear down realtime subscriptions and the pool on shutdown.
"""

from telegram import BotCommand
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters,
)

from config import STATUS_REFRESH_INTERVAL_SECONDS, TELEGRAM_BOT_TOKEN
from db.connection import init_pool, close_pool
from db.init_db import create_tables
from handlers.start_handler import start_command, help_command, myid_command
from handlers.project_handler import (
    projects_command,
    add_project_command,
    watch_command,
    unwatch_command,
)
from handlers.payment_handler import (
    payment_service,
    payments_command,
    due_command,
    add_payment_command,
    paid_command,
    edit_payment_command,
    delete_payment_command,
    handle_text_message,
)
from handlers.export_handler import export_csv_command, export_excel_command
from handlers.chart_handler import chart_command
from utils import clock
from utils.logger import get_logger

logger = get_logger(__name__)


async def refresh_payment_views(context) -> None:
    """
    Scheduled job: recompute payment statuses of every watched project.
    Runs every STATUS_REFRESH_INTERVAL_SECONDS; one `now` per pass.
    """
    payment_service.board.tick_all(clock.now())


async def set_bot_commands(application: Application) -> None:
    """Register bot commands menu in Telegram on startup."""
    commands = [
        BotCommand("start", "🚀 Iniciar"),
        BotCommand("help", "📖 Ajuda"),
        BotCommand("projects", "📁 Projetos"),
        BotCommand("add_project", "➕ Novo projeto"),
        BotCommand("watch", "👁️ Acompanhar projeto"),
        BotCommand("unwatch", "🙈 Parar de acompanhar"),
        BotCommand("payments", "💰 Pagamentos do projeto"),
        BotCommand("due", "📅 Vencimentos de todos os projetos"),
        BotCommand("add_payment", "➕ Novo pagamento"),
        BotCommand("paid", "✅ Marcar como pago"),
        BotCommand("edit_payment", "✏️ Editar pagamento"),
        BotCommand("delete_payment", "🗑️ Excluir pagamento"),
        BotCommand("export_csv", "📄 Exportar CSV"),
        BotCommand("export_excel", "📊 Exportar Excel"),
        BotCommand("chart", "📈 Gráfico por status"),
        BotCommand("myid", "🆔 Seu ID"),
    ]
    await application.bot.set_my_commands(commands)
    logger.info("Bot commands menu registered successfully.")


async def close_payment_views(application: Application) -> None:
    """Dispose of every realtime subscription before the loop stops."""
    payment_service.board.close_all()
    logger.info("Closed all payment views.")


def main() -> None:
    """Initialize and run the bot."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build the Telegram application ─────────────────
    logger.info("Starting Telegram bot...")
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .post_init(set_bot_commands)
        .post_shutdown(close_payment_views)
        .build()
    )

    # ── 3. Register command handlers ──────────────────────
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("myid", myid_command))
    app.add_handler(CommandHandler("projects", projects_command))
    app.add_handler(CommandHandler("add_project", add_project_command))
    app.add_handler(CommandHandler("watch", watch_command))
    app.add_handler(CommandHandler("unwatch", unwatch_command))
    app.add_handler(CommandHandler("payments", payments_command))
    app.add_handler(CommandHandler("due", due_command))
    app.add_handler(CommandHandler("add_payment", add_payment_command))
    app.add_handler(CommandHandler("paid", paid_command))
    app.add_handler(CommandHandler("edit_payment", edit_payment_command))
    app.add_handler(CommandHandler("delete_payment", delete_payment_command))
    app.add_handler(CommandHandler("export_csv", export_csv_command))
    app.add_handler(CommandHandler("export_excel", export_excel_command))
    app.add_handler(CommandHandler("chart", chart_command))

    # ── 4. Register text message handler (catch-all) ──────
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text_message))

    # ── 5. Schedule the status refresh ────────────────────
    job_queue = app.job_queue
    if job_queue:
        job_queue.run_repeating(
            refresh_payment_views,
            interval=STATUS_REFRESH_INTERVAL_SECONDS,
            first=STATUS_REFRESH_INTERVAL_SECONDS,
            name="payment_status_refresh",
        )
        logger.info(f"Scheduled payment status refresh every {STATUS_REFRESH_INTERVAL_SECONDS}s")
    else:
        logger.warning("JobQueue unavailable; install python-telegram-bot[job-queue] for status refresh")

    # ── 6. Start polling ──────────────────────────────────
    logger.info("🚀 OpsBoard is running! Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True, allowed_updates=["message"])

    # ── 7. Cleanup on shutdown ────────────────────────────
    close_pool()
    logger.info("OpsBoard stopped.")


if __name__ == "__main__":
    main()
