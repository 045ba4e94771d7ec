"""
Excel payment ledger tests.
"""
import pytest
from filelock import Timeout

from order_api.core.config import get_settings
from order_api.services import excel_manager
from order_api.services.excel_manager import ExcelManager


def payment_row(slug: str, **overrides) -> dict:
    row = {
        "payment_slug": slug,
        "transaction_id": "0001TX",
        "order_slug": "ORD2",
        "payment_method": "bank-transfer",
        "amount": 90000.0,
        "status_code": "completed",
        "status_message": "completed",
        "created_at": "2026-10-19T09:30:00",
    }
    row.update(overrides)
    return row


class BusyLock:
    """FileLock stand-in whose lock is always held elsewhere."""

    def __init__(self, lock_file, timeout=-1):
        self.lock_file = lock_file

    def __enter__(self):
        raise Timeout(self.lock_file)

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def ledger(tmp_path) -> ExcelManager:
    return ExcelManager(data_directory=str(tmp_path / "data"), filename="ledger.xlsx", lock_timeout=5)


class TestExcelManager:

    def test_export_creates_ledger(self, ledger: ExcelManager) -> None:
        result = ledger.export_payment(payment_row("pay1"))

        assert result["success"] is True
        assert result["exported_at"]
        assert ledger.ledger_file.exists()

        rows = ledger.get_all_payments()
        assert len(rows) == 1
        assert rows[0]["payment_slug"] == "pay1"
        assert rows[0]["transaction_id"] == "0001TX"
        assert rows[0]["amount"] == 90000.0

    def test_reexport_is_skipped(self, ledger: ExcelManager) -> None:
        ledger.export_payment(payment_row("pay1"))
        result = ledger.export_payment(payment_row("pay1", status_code="failed"))

        assert result["success"] is True
        assert "already exported" in result["message"]
        rows = ledger.get_all_payments()
        assert len(rows) == 1
        assert rows[0]["status_code"] == "completed"

    def test_rows_are_appended(self, ledger: ExcelManager) -> None:
        for slug in ("pay1", "pay2", "pay3"):
            ledger.export_payment(payment_row(slug, transaction_id=f"TX-{slug}"))

        assert [r["payment_slug"] for r in ledger.get_all_payments()] == ["pay1", "pay2", "pay3"]

    def test_empty_ledger(self, ledger: ExcelManager) -> None:
        assert ledger.get_all_payments() == []

    def test_export_task(self, tmp_path, monkeypatch) -> None:
        from order_api.tasks import export_payment_to_excel

        monkeypatch.setenv("DATA_DIRECTORY", str(tmp_path / "worker"))
        get_settings.cache_clear()
        try:
            result = export_payment_to_excel.apply(args=[payment_row("pay9")]).get()
        finally:
            get_settings.cache_clear()

        assert result["success"] is True
        assert result["payment_slug"] == "pay9"
        assert (tmp_path / "worker" / "payments.xlsx").exists()

    def test_lock_timeout_is_raised(self, ledger: ExcelManager, monkeypatch) -> None:
        monkeypatch.setattr(excel_manager, "FileLock", BusyLock)

        with pytest.raises(Timeout):
            ledger.export_payment(payment_row("pay1"))

        assert not ledger.ledger_file.exists()

    def test_export_task_reraises_lock_timeout(self, tmp_path, monkeypatch) -> None:
        from order_api.tasks import export_payment_to_excel

        monkeypatch.setenv("DATA_DIRECTORY", str(tmp_path / "worker"))
        monkeypatch.setattr(excel_manager, "FileLock", BusyLock)
        get_settings.cache_clear()
        try:
            with pytest.raises(Timeout):
                export_payment_to_excel(payment_row("pay9"))
        finally:
            get_settings.cache_clear()

        assert not (tmp_path / "worker" / "payments.xlsx").exists()
