"""
handlers/start_handler.py
--------------------------
Handles /start, /help and /myid.
"""

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)

HELP_TEXT = """
🧭 *OpsBoard - painel da consultoria*

*📁 Projetos:*
/projects - listar projetos
/add\\_project - criar projeto
/watch - acompanhar um projeto ao vivo
/unwatch - parar de acompanhar

*💰 Pagamentos:*
/payments - pagamentos do projeto
/due - vencimentos de todos os projetos (🚨 = urgente)
/add\\_payment - adicionar pagamento
/paid - marcar como pago (ex: /paid 12)
/edit\\_payment - editar pagamento
/delete\\_payment - excluir pagamento

*📊 Relatórios:*
/export\\_csv - exportar CSV
/export\\_excel - exportar Excel
/chart - gráfico por status

Com um projeto selecionado, escreva em texto livre:
• "hospedagem 120 todo dia 4"
• "segunda parcela 3500 dia 30/05"
"""


@authorized_only
@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command - show welcome message."""
    user = update.effective_user
    logger.info(f"User {user.id} ({user.first_name}) started the bot.")

    await update.message.reply_text(
        f"Olá {user.first_name}! 👋\n"
        f"Eu acompanho os projetos e pagamentos da consultoria.\n\n"
        f"Digite /help para ver os comandos.",
    )


@authorized_only
@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command - show all available commands."""
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


@authorized_only
async def myid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /myid command - show user's Telegram ID for whitelisting."""
    user = update.effective_user
    await update.message.reply_text(
        f"🆔 Seu ID: `{user.id}`\n"
        f"Adicione-o em `ALLOWED_USER_IDS` no arquivo `.env`.",
        parse_mode="Markdown",
    )
