"""
services/payment_service.py
---------------------------
Business logic behind the payment commands of the dashboard bot.
Orchestrates validation, the status engine, the lifecycle controllers and
the repositories, and renders user-facing messages.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

import psycopg2

from ai.gemini_parser import parse_payment
from config import DEFAULT_CURRENCY
from errors import InvalidPaymentDateError, PaymentNotFoundError, PaymentValidationError, StoreError
from models.payment import Payment, PaymentStatus, validate_payment
from models.project import Project
from repositories.payment_repo import PaymentRepository
from repositories.project_repo import ProjectRepository
from services.payment_board import PaymentBoard
from services.payment_controller import load_controller
from services.status_engine import days_until_due, evaluate_status, initial_due_date, parse_due_date
from utils import clock
from utils.logger import get_logger

logger = get_logger(__name__)

_STATUS_ICONS = {
    PaymentStatus.PENDING: "⏳",
    PaymentStatus.PAID: "✅",
    PaymentStatus.OVERDUE: "🔴",
}

# Unpaid payments due within this many days are flagged as urgent
URGENT_WITHIN_DAYS = 7

_EDITABLE = frozenset({
    "title", "due_date", "amount", "currency", "is_recurring", "recurring_day", "notes",
})


def _valid_day(day) -> bool:
    return isinstance(day, int) and not isinstance(day, bool) and 1 <= day <= 31


def _format_due(payment: Payment, now: datetime) -> str:
    """'30/05/2024 (em 3 dias)' style label."""
    try:
        due = parse_due_date(payment.due_date)
        days = days_until_due(payment, now)
    except InvalidPaymentDateError:
        return f"{payment.due_date} (data inválida)"
    if payment.is_paid():
        suffix = ""
    elif days == 0:
        suffix = " (hoje)"
    elif days > 0:
        suffix = f" (em {days} dias)"
    else:
        suffix = f" (há {-days} dias)"
    return f"{due.strftime('%d/%m/%Y')}{suffix}"


class PaymentService:
    """
    Handles all business logic for project payments.

    Responsibilities:
        - Create/edit payments with validated input and engine-derived status.
        - Render payment listings with status evaluated at render time.
        - Mark payments as paid through the project's lifecycle controller.
    """

    def __init__(self, board: Optional[PaymentBoard] = None, payment_repo=None, project_repo=None):
        self.repo = payment_repo or PaymentRepository()
        self.project_repo = project_repo or ProjectRepository()
        self.board = board or PaymentBoard(self.repo)

    # ── Projects ──────────────────────────────────────────

    def add_project(self, name: str, client_name: Optional[str] = None) -> str:
        """Create a project and return a confirmation message."""
        name = (name or "").strip()
        if not name:
            return "⚠️ Informe o nome do projeto."
        try:
            project = self.project_repo.add(Project(name=name, client_name=client_name or None))
        except psycopg2.Error:
            return "❌ Falha ao criar o projeto. Tente de novo."
        return f"📁 Projeto criado: #{project.id} {project.name}"

    def list_projects(self) -> str:
        """Formatted list of all projects."""
        projects = self.project_repo.get_all()
        if not projects:
            return "📭 Nenhum projeto cadastrado. Use /add_project <nome>."
        lines = ["📁 Projetos:\n"]
        for p in projects:
            watched = " 👁️" if self.board.get(p.id) else ""
            lines.append(f"  {p}{watched}")
        return "\n".join(lines)

    # ── Create ────────────────────────────────────────────

    def add_payment(
        self,
        project_id: int,
        title: str,
        due_date: Optional[str] = None,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        is_recurring: bool = False,
        recurring_day: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Validate and persist a new payment.

        Recurring payments get their first due date computed from
        `recurring_day`; the initial status always comes from the engine.

        Returns:
            Dict with 'success' (bool) and 'message' (str).
        """
        now = now or clock.now()

        try:
            project = self.project_repo.get_by_id(project_id)
        except psycopg2.Error as e:
            logger.error(f"Reading project {project_id} failed: {e}")
            return {"success": False, "message": "❌ Falha ao criar o pagamento: não consegui ler o projeto. Tente de novo."}
        if project is None:
            return {"success": False, "message": f"⚠️ O projeto #{project_id} não existe."}

        if is_recurring and _valid_day(recurring_day):
            due_date = initial_due_date(recurring_day, now.date())
        elif not is_recurring:
            recurring_day = None

        payment = Payment(
            project_id=project_id,
            title=title,
            due_date=due_date or now.date().isoformat(),
            amount=amount,
            currency=(currency or DEFAULT_CURRENCY).upper(),
            is_recurring=bool(is_recurring),
            recurring_day=recurring_day,
            notes=notes,
        )
        try:
            validate_payment(payment)
        except PaymentValidationError as e:
            return {"success": False, "message": f"⚠️ {e}"}

        payment.status = evaluate_status(payment, now)

        try:
            self.repo.create(payment)
        except psycopg2.Error:
            return {"success": False, "message": "❌ Falha ao criar o pagamento. Tente de novo."}

        return {"success": True, "message": self._created_message(payment, now)}

    def add_from_text(self, project_id: int, text: str, now: Optional[datetime] = None) -> dict:
        """
        Parse a free-text description with Gemini and save it as a payment.

        Returns:
            Dict with 'success' and 'message'.
        """
        now = now or clock.now()
        parsed = parse_payment(text, now.date())

        if "error" in parsed:
            return {"success": False, "message": f"🤔 {parsed.get('question', 'Tente de novo.')}"}

        try:
            amount = parsed.get("amount")
            day = parsed.get("recurring_day")
            return self.add_payment(
                project_id=project_id,
                title=parsed["title"],
                due_date=parsed.get("due_date"),
                amount=float(amount) if amount is not None else None,
                currency=parsed.get("currency"),
                is_recurring=bool(parsed.get("is_recurring")),
                recurring_day=int(day) if day is not None else None,
                now=now,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Validation error for parsed payment: {e}, parsed: {parsed}")
            return {"success": False, "message": "🤔 Não consegui entender. Use /add_payment."}

    # ── Edit ──────────────────────────────────────────────

    def edit_payment(self, payment_id: int, fields: dict, now: Optional[datetime] = None) -> dict:
        """
        Apply an edit and recompute the status through the engine.
        Callers never set `status`, `paid_at` or `created_at` directly.

        Returns:
            Dict with 'success' and 'message'.
        """
        now = now or clock.now()
        unknown = set(fields) - _EDITABLE
        if unknown:
            return {"success": False, "message": f"⚠️ Campos não editáveis: {', '.join(sorted(unknown))}"}

        try:
            current = self.repo.get_by_id(payment_id)
        except psycopg2.Error as e:
            logger.error(f"Reading payment #{payment_id} failed: {e}")
            return {"success": False, "message": f"❌ Falha ao editar o pagamento #{payment_id}: não consegui lê-lo. Tente de novo."}
        if current is None:
            return {"success": False, "message": f"⚠️ O pagamento #{payment_id} não existe."}

        updated = replace(current, **fields)
        schedule_changed = (
            updated.is_recurring != current.is_recurring
            or updated.recurring_day != current.recurring_day
        )
        if not updated.is_recurring:
            updated.recurring_day = None
        elif schedule_changed and _valid_day(updated.recurring_day):
            updated.due_date = initial_due_date(updated.recurring_day, now.date())

        try:
            validate_payment(updated)
        except PaymentValidationError as e:
            return {"success": False, "message": f"⚠️ {e}"}

        updated.status = evaluate_status(updated, now)
        changes = {
            name: getattr(updated, name)
            for name in _EDITABLE | {"status"}
            if getattr(updated, name) != getattr(current, name)
        }
        if not changes:
            return {"success": True, "message": f"ℹ️ Nada mudou no pagamento #{payment_id}."}

        try:
            self.repo.update(payment_id, changes)
        except psycopg2.Error:
            return {"success": False, "message": f"❌ Falha ao editar o pagamento #{payment_id}. Tente de novo."}

        return {"success": True, "message": f"✏️ Pagamento #{payment_id} atualizado:\n  {updated}"}

    # ── Read ──────────────────────────────────────────────

    def list_payments(self, project_id: int, now: Optional[datetime] = None) -> str:
        """
        Formatted list of a project's payments, status evaluated at `now`.
        Uses the open view's cache when the project is watched.
        """
        now = now or clock.now()
        project = self.project_repo.get_by_id(project_id)
        if project is None:
            return f"⚠️ O projeto #{project_id} não existe."

        controller = self.board.get(project_id)
        payments = list(controller.payments) if controller else self.repo.get_by_project_id(project_id)
        if not payments:
            return f"📭 Nenhum pagamento em {project.name}."

        lines = [f"💰 Pagamentos - {project.name}\n"]
        if controller and controller.subscription_lost:
            lines.insert(0, "⚠️ Atualização em tempo real interrompida; os dados podem estar desatualizados.\n")
        open_totals: dict[str, float] = {}
        for p in payments:
            try:
                status = evaluate_status(p, now)
            except InvalidPaymentDateError:
                lines.append(f"  ⚠️ #{p.id} {p.title}: data inválida ({p.due_date})")
                continue
            shown = replace(p, status=status)
            value = f"{p.amount:.2f} {p.currency}" if p.amount is not None else "sem valor"
            recurring = f" 🔁 dia {p.recurring_day}" if p.is_recurring else ""
            lines.append(
                f"  {_STATUS_ICONS[status]} #{p.id} {p.title}: {value} "
                f"- vence {_format_due(shown, now)}{recurring}"
            )
            if status != PaymentStatus.PAID and p.amount is not None:
                open_totals[p.currency] = open_totals.get(p.currency, 0.0) + p.amount

        if open_totals:
            totals = ", ".join(f"{v:.2f} {c}" for c, v in sorted(open_totals.items()))
            lines.append(f"\n💶 Em aberto: {totals}")
        return "\n".join(lines)

    def list_due(self, now: Optional[datetime] = None) -> str:
        """
        Open payments across every project, soonest first. Anything overdue
        or due within URGENT_WITHIN_DAYS days is flagged as urgent.
        Uses the global view's cache when it is open.
        """
        now = now or clock.now()
        controller = self.board.get(None)
        payments = list(controller.payments) if controller else self.repo.get_all()
        names = {p.id: p.name for p in self.project_repo.get_all()}

        lines = ["📅 Próximos vencimentos - todos os projetos\n"]
        if controller and controller.subscription_lost:
            lines.insert(0, "⚠️ Atualização em tempo real interrompida; os dados podem estar desatualizados.\n")
        header = len(lines)
        urgent = 0
        for p in sorted(payments, key=lambda p: (p.due_date or "", p.id or 0)):
            project = names.get(p.project_id, f"#{p.project_id}")
            try:
                status = evaluate_status(p, now)
                days = days_until_due(p, now)
            except InvalidPaymentDateError:
                lines.append(f"  ⚠️ #{p.id} {p.title} [{project}]: data inválida ({p.due_date})")
                continue
            if status == PaymentStatus.PAID:
                continue
            is_urgent = status == PaymentStatus.OVERDUE or days < URGENT_WITHIN_DAYS
            if is_urgent:
                urgent += 1
            flag = "🚨" if is_urgent else _STATUS_ICONS[status]
            value = f"{p.amount:.2f} {p.currency}" if p.amount is not None else "sem valor"
            lines.append(
                f"  {flag} #{p.id} {p.title} [{project}]: {value} "
                f"- vence {_format_due(replace(p, status=status), now)}"
            )

        if len(lines) == header:
            return "🎉 Nenhum pagamento em aberto."
        lines.append(f"\n🚨 Urgentes: {urgent}")
        return "\n".join(lines)

    # ── Mark as paid / delete ─────────────────────────────

    def mark_paid(self, payment_id: int, now: Optional[datetime] = None) -> str:
        """Mark a payment paid through its project's controller."""
        now = now or clock.now()
        try:
            payment = self.repo.get_by_id(payment_id)
        except psycopg2.Error:
            return f"❌ Falha ao ler o pagamento #{payment_id}. Tente de novo."
        if payment is None:
            return f"⚠️ O pagamento #{payment_id} não existe."

        try:
            controller = self.board.get(payment.project_id)
            if controller is None:
                controller = load_controller(
                    payment.project_id, self.repo, self.board.persist_status_changes,
                )
            try:
                fields = controller.mark_as_paid(payment_id, now)
            except PaymentNotFoundError:
                # The realtime snapshot has not caught up with the store yet
                controller.load()
                fields = controller.mark_as_paid(payment_id, now)
        except StoreError:
            return f"❌ Falha ao marcar o pagamento #{payment_id} como pago. Tente de novo."
        except (InvalidPaymentDateError, PaymentNotFoundError) as e:
            return f"⚠️ {e}"

        if not fields:
            return f"ℹ️ O pagamento #{payment_id} já está pago neste ciclo."
        msg = f"✅ Pagamento #{payment_id} ({payment.title}) marcado como pago."
        if "due_date" in fields:
            next_due = parse_due_date(fields["due_date"])
            msg += f"\n📅 Próximo vencimento: {next_due.strftime('%d/%m/%Y')}"
        return msg

    def delete_payment(self, payment_id: int) -> str:
        """Delete a payment by ID."""
        try:
            deleted = self.repo.delete(payment_id)
        except psycopg2.Error:
            return f"❌ Falha ao excluir o pagamento #{payment_id}. Tente de novo."
        if deleted:
            return f"🗑️ Pagamento #{payment_id} excluído."
        return f"⚠️ O pagamento #{payment_id} não existe."

    # ── Helpers ───────────────────────────────────────────

    @staticmethod
    def _created_message(payment: Payment, now: datetime) -> str:
        value = f"{payment.amount:.2f} {payment.currency}" if payment.amount is not None else "sem valor"
        kind = f"mensal, todo dia {payment.recurring_day}" if payment.is_recurring else "avulso"
        return (
            f"💰 Pagamento adicionado:\n"
            f"  📌 {payment.title}\n"
            f"  💶 Valor: {value}\n"
            f"  🔄 Tipo: {kind}\n"
            f"  📅 Vencimento: {_format_due(payment, now)}\n"
            f"  {_STATUS_ICONS[payment.status]} Status: {payment.status}\n"
            f"  🔖 Número: #{payment.id}"
        )
