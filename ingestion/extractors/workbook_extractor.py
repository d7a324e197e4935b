"""
Workbook extractor: spreadsheet files -> sheet payloads for the bulk importer
"""

import pandas as pd
from typing import Any, List, Optional
from datetime import date, datetime
from pathlib import Path
from schemas.sheets import BulkImportPayload, SheetPayload
import logging

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


class WorkbookExtractor:
    """
    Read every sheet of a workbook (or a single CSV file).

    Supports:
    - .xlsx / .xlsm / .xls through pandas.read_excel (all sheets)
    - .csv through pandas.read_csv (sheet name = file stem)
    - First row as headers, positions preserved, empty cells as None
    """

    def __init__(self, file_path: str, exchange_rate: Optional[float] = None):
        self.file_path = Path(file_path)
        self.exchange_rate = exchange_rate

    def extract(self) -> List[SheetPayload]:
        """
        Raises:
            FileNotFoundError: When the file does not exist
            ValueError: When the file type is not supported
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Workbook not found: {self.file_path}")

        suffix = self.file_path.suffix.lower()
        logger.info(f"Reading workbook from {self.file_path}")

        if suffix in EXCEL_SUFFIXES:
            frames = pd.read_excel(self.file_path, sheet_name=None, header=None, dtype=object)
        elif suffix == ".csv":
            frames = {self.file_path.stem: pd.read_csv(self.file_path, header=None, dtype=object)}
        else:
            raise ValueError(f"Unsupported workbook type: {suffix}")

        sheets = [self._to_payload(str(name), df) for name, df in frames.items()]
        logger.info(f"Read {len(sheets)} sheets from {self.file_path.name}")
        return sheets

    def to_bulk_payload(self) -> BulkImportPayload:
        return BulkImportPayload(
            sheets=[sheet.model_dump(by_alias=True) for sheet in self.extract()],
            exchange_rate=self.exchange_rate,
        )

    def _to_payload(self, sheet_name: str, df: pd.DataFrame) -> SheetPayload:
        df = df.astype(object).where(pd.notna(df), None)
        values = [[_cell(value) for value in row] for row in df.values.tolist()]

        headers = values[0] if values else []
        rows = values[1:] if values else []

        return SheetPayload(
            sheet_name=sheet_name,
            headers=headers,
            rows=rows,
            exchange_rate=self.exchange_rate,
        )


def _cell(value: Any) -> Any:
    """Plain Python value for one cell"""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, bool, int, float)):
        return value
    # numpy scalars
    if hasattr(value, "item"):
        return value.item()
    return str(value)
