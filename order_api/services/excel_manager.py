"""
Excel Payment Ledger with Concurrency Control

Appends exported payments to an Excel workbook. Celery workers may export
concurrently, so every read-modify-write happens under a file lock.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from order_api.core.config import get_settings

logger = logging.getLogger(__name__)


class ExcelManager:
    """File-locked Excel ledger of payments."""

    PAYMENT_COLUMNS = [
        "payment_slug",
        "transaction_id",
        "order_slug",
        "payment_method",
        "amount",
        "status_code",
        "status_message",
        "created_at",
        "exported_at",
    ]

    # Slugs and ids can look numeric; keep them as text
    STRING_COLUMNS = {"payment_slug": str, "transaction_id": str, "order_slug": str}

    def __init__(
        self,
        data_directory: Optional[str] = None,
        filename: Optional[str] = None,
        lock_timeout: Optional[int] = None,
    ):
        settings = get_settings()
        self.data_dir = Path(data_directory or settings.data_directory)
        self.ledger_file = self.data_dir / (filename or settings.excel_filename)
        self.lock_file = self.ledger_file.with_name(self.ledger_file.name + ".lock")
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.excel_lock_timeout

    def _ensure_data_dir(self) -> None:
        """Create data directory if needed."""
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def _load_or_create_df(self) -> pd.DataFrame:
        """Load existing ledger or create an empty one."""
        if self.ledger_file.exists():
            return pd.read_excel(self.ledger_file, engine="openpyxl", dtype=self.STRING_COLUMNS)
        return pd.DataFrame(columns=self.PAYMENT_COLUMNS)

    def export_payment(self, payment_data: dict[str, Any]) -> dict[str, Any]:
        """
        Append a payment row unless its slug is already in the ledger.

        Returns:
            dict: success flag, message, payment slug and export time

        Raises:
            Timeout: Another writer held the lock for ``lock_timeout`` seconds
        """
        self._ensure_data_dir()

        slug = payment_data.get("payment_slug", "unknown")
        result = {
            "success": False,
            "message": "",
            "payment_slug": slug,
            "exported_at": None,
        }

        try:
            with FileLock(str(self.lock_file), timeout=self.lock_timeout):
                logger.debug(f"Lock acquired for payment {slug}")

                df = self._load_or_create_df()

                if slug in set(df["payment_slug"].astype(str)):
                    result["success"] = True
                    result["message"] = f"Payment {slug} already exported"
                    logger.info(result["message"])
                    return result

                export_time = datetime.now().isoformat()
                new_row = {column: payment_data.get(column) for column in self.PAYMENT_COLUMNS}
                new_row["exported_at"] = export_time

                new_df = pd.DataFrame([new_row], columns=self.PAYMENT_COLUMNS)
                df = new_df if df.empty else pd.concat([df, new_df], ignore_index=True)
                df.to_excel(str(self.ledger_file), index=False, engine="openpyxl")

                logger.info(f"Payment {slug} exported to Excel")

                result["success"] = True
                result["message"] = f"Payment {slug} exported"
                result["exported_at"] = export_time

        except Timeout:
            # Raised so the export task retries later
            logger.error(f"Lock timeout ({self.lock_timeout}s) for payment {slug}")
            raise

        return result

    def get_all_payments(self) -> list[dict[str, Any]]:
        """Read every ledger row."""
        if not self.ledger_file.exists():
            return []
        with FileLock(str(self.lock_file), timeout=self.lock_timeout):
            return self._load_or_create_df().to_dict("records")
