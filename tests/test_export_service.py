"""Export tests: statuses evaluated at export time."""

from __future__ import annotations

import pandas as pd

from models.payment import PaymentStatus
from services.export_service import ExportService
from tests.conftest import FakePaymentRepository, at, make_payment, ms


def _service():
    repo = FakePaymentRepository([
        make_payment(id=1, due_date="2024-05-30", amount=100.0),
        make_payment(
            id=2, due_date="2024-07-04", amount=50.0, is_recurring=True, recurring_day=4,
            status=PaymentStatus.PAID, paid_at=ms(at(2024, 6, 4)),
        ),
        make_payment(id=3, due_date="??", amount=10.0),
        make_payment(id=4, project_id=2, due_date="2024-05-30"),
    ])
    return ExportService(repo)


def test_build_frame_evaluates_status_at_export_time():
    df = _service().build_frame(1, now=at(2024, 6, 10))

    assert list(df["Status"]) == ["overdue", "paid", "invalid"]
    assert list(df["Recorrente"]) == ["não", "sim", "não"]
    assert df.iloc[1]["Pago em"] == "2024-06-04 12:00"


def test_build_frame_for_empty_project_keeps_columns():
    df = _service().build_frame(9, now=at(2024, 6, 10))

    assert df.empty
    assert "Vencimento" in df.columns


def test_export_csv_has_header_and_rows():
    buffer = _service().export_csv(1, now=at(2024, 6, 10))

    text = buffer.getvalue().decode("utf-8-sig")
    lines = text.strip().splitlines()
    assert lines[0].startswith("Título,Vencimento,Valor")
    assert len(lines) == 4


def test_export_excel_writes_summary_sheet():
    buffer = _service().export_excel(1, now=at(2024, 6, 10))

    sheets = pd.read_excel(buffer, sheet_name=None)
    assert set(sheets) == {"Pagamentos", "Resumo"}
    summary = sheets["Resumo"].set_index("Status")["Total"]
    assert summary["overdue"] == 100.0
    assert summary["paid"] == 50.0
