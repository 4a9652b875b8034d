"""
handlers/payment_handler.py
---------------------------
Handles project payment interactions.
Supports structured commands (no AI) and AI-parsed free text inside the
currently selected project.
"""

import re
from datetime import datetime
from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from errors import StoreError
from services.payment_service import PaymentService
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)
payment_service = PaymentService()

_RECURRING_RE = re.compile(r"^(?:todo\s+)?dia\s+(\d{1,2})$|^mensal\s+(\d{1,2})$", re.IGNORECASE)

# Portuguese field names accepted by /edit_payment
_EDIT_KEYS = {
    "titulo": "title", "título": "title",
    "valor": "amount",
    "moeda": "currency",
    "vencimento": "due_date",
    "dia": "recurring_day",
    "obs": "notes",
}


def parse_date_arg(text: str) -> Optional[str]:
    """Accept YYYY-MM-DD or DD/MM/YYYY and return an ISO date string."""
    text = text.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_amount(text: str) -> Optional[float]:
    """'1.500,50' / '1500.50' / '-' -> float or None."""
    text = text.strip()
    if not text or text == "-":
        return None
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    text = re.sub(r"[^\d.]", "", text)
    if not text:
        raise ValueError("empty amount")
    return float(text)


def parse_manual(text: str) -> Optional[dict]:
    """
    Parse the structured payment format:
      projeto | título | valor | vencimento [| moeda]
    where vencimento is a date (2024-05-30, 30/05/2024) or "dia N" for a
    monthly payment.

    Examples:
      3 | Hospedagem | 120 | dia 4
      3 | Segunda parcela | 3500 | 30/05/2024 | USD
    """
    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 4:
        return None

    try:
        project_id = int(parts[0].lstrip("#"))
        amount = parse_amount(parts[2])
    except ValueError:
        return None

    title = parts[1]
    when = parts[3]
    parsed = {
        "project_id": project_id,
        "title": title,
        "amount": amount,
        "currency": parts[4].upper() if len(parts) >= 5 and parts[4] else None,
        "is_recurring": False,
        "recurring_day": None,
        "due_date": None,
    }

    match = _RECURRING_RE.match(when)
    if match:
        parsed["is_recurring"] = True
        parsed["recurring_day"] = int(match.group(1) or match.group(2))
        return parsed

    due = parse_date_arg(when)
    if due is None:
        return None
    parsed["due_date"] = due
    return parsed


def parse_edit_fields(text: str) -> Optional[dict]:
    """
    Parse '/edit_payment' assignments separated by '|':
      valor=150 | dia=10 | titulo=Hospedagem | avulso
    'avulso' turns a monthly payment into a one-off one; 'dia=N' makes it monthly.
    """
    fields: dict = {}
    for part in (p.strip() for p in text.split("|")):
        if not part:
            continue
        if part.lower() == "avulso":
            fields["is_recurring"] = False
            continue
        if "=" not in part:
            return None
        key, value = (s.strip() for s in part.split("=", 1))
        name = _EDIT_KEYS.get(key.lower())
        if name is None:
            return None
        try:
            if name == "amount":
                fields[name] = parse_amount(value)
            elif name == "recurring_day":
                fields[name] = int(value)
                fields["is_recurring"] = True
            elif name == "due_date":
                fields[name] = parse_date_arg(value) or value
            elif name == "currency":
                fields[name] = value.upper()
            else:
                fields[name] = value
        except ValueError:
            return None
    return fields or None


def _parse_id(args: list[str]) -> Optional[int]:
    if not args:
        return None
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return None


def current_project(context: ContextTypes.DEFAULT_TYPE, args: list[str]) -> Optional[int]:
    """Project id from the first argument, else the chat's selected project."""
    project_id = _parse_id(args)
    if project_id is None:
        project_id = context.user_data.get("project_id")
    return project_id


@authorized_only
@rate_limited
async def payments_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /payments [projeto] - list a project's payments with live status."""
    project_id = current_project(context, context.args)
    if project_id is None:
        await update.message.reply_text("⚠️ Uso: /payments <projeto>\nExemplo: /payments 3")
        return
    try:
        msg = payment_service.list_payments(project_id)
    except Exception as e:
        logger.error(f"Listing payments of project {project_id} failed: {e}")
        msg = "❌ Falha ao carregar os pagamentos. Tente de novo."
    await update.message.reply_text(msg)


@authorized_only
@rate_limited
async def add_payment_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /add_payment - add a new payment.

    Structured format (no AI):
        /add_payment projeto | título | valor | vencimento [| moeda]

    Examples:
        /add_payment 3 | Hospedagem | 120 | dia 4
        /add_payment 3 | Segunda parcela | 3500 | 30/05/2024
    """
    if not context.args:
        await update.message.reply_text(
            "📝 *Adicionar pagamento*\n\n"
            "*Formato:*\n"
            "`/add_payment projeto | título | valor | vencimento [| moeda]`\n\n"
            "*Exemplos:*\n"
            "• `/add_payment 3 | Hospedagem | 120 | dia 4`\n"
            "• `/add_payment 3 | Segunda parcela | 3500 | 30/05/2024`\n"
            "• `/add_payment 3 | Domínio | 15 | 2024-09-01 | USD`\n\n"
            "*Vencimento:* uma data, ou `dia N` para mensal",
            parse_mode="Markdown",
        )
        return

    text = " ".join(context.args)
    parsed = parse_manual(text)
    project_id = context.user_data.get("project_id")

    if parsed:
        result = payment_service.add_payment(**parsed)
    elif project_id is not None:
        # Fallback to AI parsing inside the selected project
        result = payment_service.add_from_text(project_id, text)
    else:
        result = {"success": False, "message": "⚠️ Formato inválido. Veja /add_payment."}

    await update.message.reply_text(result["message"])


@authorized_only
@rate_limited
async def paid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /paid <id> - mark a payment as paid."""
    payment_id = _parse_id(context.args)
    if payment_id is None:
        await update.message.reply_text("⚠️ Uso: /paid <número do pagamento>\nExemplo: /paid 12")
        return
    await update.message.reply_text(payment_service.mark_paid(payment_id))


@authorized_only
@rate_limited
async def edit_payment_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /edit_payment <id> campo=valor | ... - edit a payment.
    Example: /edit_payment 12 valor=150 | dia=10
    """
    payment_id = _parse_id(context.args)
    fields = parse_edit_fields(" ".join(context.args[1:])) if payment_id is not None else None
    if fields is None:
        await update.message.reply_text(
            "⚠️ Uso: /edit_payment <número> campo=valor | ...\n"
            "Campos: titulo, valor, moeda, vencimento, dia, obs, avulso\n"
            "Exemplo: /edit_payment 12 valor=150 | dia=10"
        )
        return
    result = payment_service.edit_payment(payment_id, fields)
    await update.message.reply_text(result["message"])


@authorized_only
@rate_limited
async def delete_payment_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_payment <id> - delete a payment."""
    payment_id = _parse_id(context.args)
    if payment_id is None:
        await update.message.reply_text("⚠️ Uso: /delete_payment <número>\nExemplo: /delete_payment 12")
        return
    await update.message.reply_text(payment_service.delete_payment(payment_id))


@authorized_only
@rate_limited
async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Free text inside a selected project is parsed as a new payment."""
    project_id = context.user_data.get("project_id")
    if project_id is None:
        await update.message.reply_text("📁 Selecione um projeto com /watch <projeto> primeiro.")
        return
    result = payment_service.add_from_text(project_id, update.message.text)
    await update.message.reply_text(result["message"])


@authorized_only
@rate_limited
async def due_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /due - open payments of every project, urgent ones flagged."""
    try:
        payment_service.board.open(None)
    except StoreError as e:
        logger.warning(f"Global payments view unavailable, reading once: {e}")
    try:
        msg = payment_service.list_due()
    except Exception as e:
        logger.error(f"Listing due payments failed: {e}")
        msg = "❌ Falha ao carregar os vencimentos. Tente de novo."
    await update.message.reply_text(msg)
