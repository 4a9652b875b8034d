"""PaymentService tests: creation, editing, listing and mark-as-paid messages."""

from __future__ import annotations

import pytest

from models.payment import PaymentStatus
from models.project import Project
from services import payment_service as payment_service_module
from services.payment_board import PaymentBoard
from services.payment_service import PaymentService
from tests.conftest import FakePaymentRepository, at, make_payment, ms


@pytest.fixture
def service(payment_repo, project_repo):
    board = PaymentBoard(payment_repo, persist_status_changes=False)
    return PaymentService(board=board, payment_repo=payment_repo, project_repo=project_repo)


# ── add_payment ──────────────────────────────────────────


def test_add_one_off_payment_gets_engine_status(service, payment_repo):
    result = service.add_payment(1, "Segunda parcela", due_date="2024-05-30", amount=3500.0, now=at(2024, 5, 30))

    assert result["success"] is True
    stored = payment_repo.get_by_id(1)
    assert stored.status == PaymentStatus.OVERDUE
    assert stored.currency == "BRL"
    assert "#1" in result["message"]


def test_add_recurring_payment_computes_first_due_date(service, payment_repo):
    service.add_payment(1, "Hospedagem", amount=120.0, is_recurring=True, recurring_day=10, now=at(2024, 3, 4))
    service.add_payment(1, "Domínio", amount=15.0, is_recurring=True, recurring_day=4, now=at(2024, 3, 4))

    hosting, domain = payment_repo.get_by_id(1), payment_repo.get_by_id(2)
    assert (hosting.due_date, hosting.status) == ("2024-03-10", PaymentStatus.PENDING)
    assert (domain.due_date, domain.status) == ("2024-04-04", PaymentStatus.OVERDUE)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(title="   ", due_date="2024-05-30"),
        dict(title="Hospedagem", is_recurring=True, recurring_day=None),
        dict(title="Hospedagem", is_recurring=True, recurring_day=32),
        dict(title="Hospedagem", due_date="30-05-2024"),
    ],
)
def test_add_payment_rejects_invalid_input(service, payment_repo, kwargs):
    result = service.add_payment(1, now=at(2024, 3, 4), **kwargs)

    assert result["success"] is False
    assert payment_repo.rows == {}


def test_add_payment_to_unknown_project(service):
    result = service.add_payment(42, "Hospedagem", due_date="2024-05-30", now=at(2024, 3, 4))

    assert result["success"] is False
    assert "#42" in result["message"]


def test_add_from_text_uses_parsed_fields(service, payment_repo, monkeypatch):
    monkeypatch.setattr(
        payment_service_module,
        "parse_payment",
        lambda text, today: {
            "title": "Hospedagem", "amount": 120, "currency": "brl",
            "is_recurring": True, "recurring_day": 4, "due_date": None,
        },
    )

    result = service.add_from_text(1, "hospedagem 120 todo dia 4", now=at(2024, 3, 1))

    assert result["success"] is True
    stored = payment_repo.get_by_id(1)
    assert (stored.currency, stored.recurring_day, stored.due_date) == ("BRL", 4, "2024-03-04")


def test_add_from_text_returns_clarifying_question(service, monkeypatch):
    monkeypatch.setattr(
        payment_service_module,
        "parse_payment",
        lambda text, today: {"error": "unclear", "question": "Qual o valor?"},
    )

    result = service.add_from_text(1, "hospedagem", now=at(2024, 3, 1))

    assert result == {"success": False, "message": "🤔 Qual o valor?"}


# ── edit_payment ─────────────────────────────────────────


def test_edit_to_recurring_recomputes_due_date_and_status(project_repo):
    repo = FakePaymentRepository([make_payment(due_date="2024-12-01")])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    result = service.edit_payment(1, {"is_recurring": True, "recurring_day": 4}, now=at(2024, 3, 5))

    assert result["success"] is True
    _, fields = repo.updates[-1]
    assert fields["due_date"] == "2024-04-04"
    assert fields["status"] == PaymentStatus.OVERDUE
    assert "paid_at" not in fields


def test_edit_rejects_status_field(service):
    result = service.edit_payment(1, {"status": PaymentStatus.PAID}, now=at(2024, 3, 5))

    assert result["success"] is False


def test_edit_unknown_payment(service):
    result = service.edit_payment(7, {"title": "X"}, now=at(2024, 3, 5))

    assert result["success"] is False
    assert "#7" in result["message"]


# ── list_payments ────────────────────────────────────────


def test_list_payments_shows_status_at_render_time(project_repo):
    repo = FakePaymentRepository([
        make_payment(id=1, due_date="2024-05-30", status=PaymentStatus.PENDING, amount=100.0),
        make_payment(id=2, due_date="2024-06-30", amount=50.0),
    ])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    text = service.list_payments(1, now=at(2024, 6, 2))

    assert "🔴 #1" in text
    assert "há 3 dias" in text
    assert "⏳ #2" in text
    assert "150.00 BRL" in text


def test_list_payments_flags_unreadable_dates(project_repo):
    repo = FakePaymentRepository([make_payment(due_date="??")])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    assert "data inválida" in service.list_payments(1, now=at(2024, 6, 2))


# ── mark_paid / delete ───────────────────────────────────


def test_mark_paid_reports_next_due_date(project_repo):
    repo = FakePaymentRepository([make_payment(is_recurring=True, recurring_day=4, due_date="2024-03-04")])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    msg = service.mark_paid(1, now=at(2024, 3, 4))

    assert "04/04/2024" in msg
    assert repo.get_by_id(1).paid_at == ms(at(2024, 3, 4))


def test_mark_paid_uses_the_open_view(project_repo):
    repo = FakePaymentRepository([make_payment()])
    board = PaymentBoard(repo, False)
    service = PaymentService(board, repo, project_repo)
    controller = board.open(1)

    service.mark_paid(1, now=at(2024, 6, 1))

    assert controller.get(1).status == PaymentStatus.PAID


def test_mark_paid_twice_in_same_cycle(project_repo):
    repo = FakePaymentRepository([make_payment(is_recurring=True, recurring_day=4)])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)
    service.mark_paid(1, now=at(2024, 3, 4))

    msg = service.mark_paid(1, now=at(2024, 3, 6))

    assert "já está pago" in msg
    assert len(repo.updates) == 1


def test_mark_paid_store_failure_names_the_operation(project_repo):
    repo = FakePaymentRepository([make_payment()])
    repo.fail_updates = True
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    msg = service.mark_paid(1, now=at(2024, 6, 1))

    assert msg.startswith("❌")
    assert "como pago" in msg
    assert repo.get_by_id(1).status == PaymentStatus.PENDING


def test_delete_payment(service, payment_repo):
    service.add_payment(1, "Hospedagem", due_date="2024-05-30", now=at(2024, 3, 4))

    assert "excluído" in service.delete_payment(1)
    assert "não existe" in service.delete_payment(1)


def test_projects_listing_and_creation(service):
    assert "Projeto criado" in service.add_project("API Interna")
    listing = service.list_projects()

    assert "Loja Online" in listing
    assert "API Interna" in listing


def test_add_payment_reports_store_read_failure(service, project_repo, payment_repo):
    project_repo.fail_reads = True

    result = service.add_payment(1, "Hospedagem", due_date="2024-05-30", now=at(2024, 3, 4))

    assert result["success"] is False
    assert result["message"].startswith("❌ Falha ao criar o pagamento")
    assert payment_repo.rows == {}


def test_edit_payment_reports_store_read_failure(project_repo):
    repo = FakePaymentRepository([make_payment()])
    repo.fail_reads = True
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    result = service.edit_payment(1, {"title": "Domínio"}, now=at(2024, 3, 5))

    assert result["success"] is False
    assert "❌ Falha ao editar o pagamento #1" in result["message"]


# ── list_due ─────────────────────────────────────────────


def _due_service(project_repo):
    project_repo.add(Project(name="API Interna"))
    repo = FakePaymentRepository([
        make_payment(id=1, project_id=1, title="Parcela 2", due_date="2024-06-01"),
        make_payment(id=2, project_id=2, title="Domínio", due_date="2024-06-14"),
        make_payment(id=3, project_id=2, title="Suporte", due_date="2024-07-30"),
        make_payment(id=4, project_id=1, status=PaymentStatus.PAID, paid_at=ms(at(2024, 5, 1))),
    ])
    return PaymentService(PaymentBoard(repo, False), repo, project_repo), repo


def test_list_due_flags_overdue_and_soon_due_across_projects(project_repo):
    service, _ = _due_service(project_repo)

    text = service.list_due(now=at(2024, 6, 10))

    assert "🚨 #1 Parcela 2 [Loja Online]" in text
    assert "🚨 #2 Domínio [API Interna]" in text
    assert "⏳ #3 Suporte [API Interna]" in text
    assert "#4" not in text
    assert "Urgentes: 2" in text
    assert text.index("#1") < text.index("#2") < text.index("#3")


def test_list_due_uses_the_global_view(project_repo):
    service, repo = _due_service(project_repo)
    service.board.open(None)
    repo.fail_reads = True

    assert "#3 Suporte" in service.list_due(now=at(2024, 6, 10))


def test_list_due_with_nothing_open(project_repo):
    repo = FakePaymentRepository([make_payment(status=PaymentStatus.PAID, paid_at=ms(at(2024, 5, 1)))])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    assert service.list_due(now=at(2024, 6, 10)) == "🎉 Nenhum pagamento em aberto."


def test_listing_warns_when_the_live_view_dropped(project_repo):
    repo = FakePaymentRepository([make_payment()])
    board = PaymentBoard(repo, False)
    service = PaymentService(board, repo, project_repo)
    board.open(1)
    repo.subscriptions[0].drop()

    assert "desatualizados" in service.list_payments(1, now=at(2024, 5, 1))


def test_paid_payment_is_listed_without_countdown(project_repo):
    repo = FakePaymentRepository([
        make_payment(due_date="2024-05-30", status=PaymentStatus.PAID, paid_at=ms(at(2024, 5, 20))),
    ])
    service = PaymentService(PaymentBoard(repo, False), repo, project_repo)

    text = service.list_payments(1, now=at(2024, 6, 2))

    assert "✅ #1 Hospedagem: 120.00 BRL - vence 30/05/2024" in text
    assert "há" not in text
    assert "Em aberto" not in text
