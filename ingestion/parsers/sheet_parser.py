"""
Turn raw spreadsheet rows into validated SaleRecord models.

The parser never raises for dirty data: blank rows, repeated headers and
summary/footer rows are dropped, and cells that cannot be parsed degrade
to None (numbers) or UNKNOWN (payment status).
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import math
import re
import logging

from ingestion.parsers.column_resolver import COLUMN_PATTERNS, resolve_columns
from models.base import PaymentStatus
from schemas.normalized import NAME_MAX_LENGTH
from schemas.sheets import ParsedSheet, SaleRecord

logger = logging.getLogger(__name__)

PRODUCT_HEADER_LABELS = set(dict(COLUMN_PATTERNS)["product_name"])

CUSTOMER_NAME_MAX_LENGTH = 255


# Sheets that never hold sales
SKIP_SHEETS = [
    "cách tính giá",  # pricing formula reference
    "hướng dẫn",  # instructions
    "template",
    "mẫu",  # template
]

INVENTORY_SHEETS = ["hàng tồn", "tồn kho", "inventory"]

# Sheet-authoring artifacts that sit in the product column but are not sales
SKIP_ROW_PATTERNS = [
    "thùng hàng",
    "tổng cân",
    "tiền ship",
    "phí ship",
    "tiền công",
    "lãi cuối",
    "lãi trước",
    "lãi sau",
    "final profit",
    "tổng lãi",
    "tổng tiền",
    "total",
    "weight fee",
    "đơn điện biên",
    "đã thanh toán",
    "đã cọc",
    "payment confirm",
    "deposit payment",
    "confirmation",
]

# Checked in order: "unpaid" contains "paid", "chưa thanh toán" contains "thanh toán"
PAYMENT_STATUS_PATTERNS: List[Tuple[PaymentStatus, List[str]]] = [
    (PaymentStatus.UNPAID, ["chưa thanh toán", "chưa", "unpaid", "not paid"]),
    (PaymentStatus.DEPOSIT, ["đã cọc", "cọc", "deposit"]),
    (PaymentStatus.PAID, ["đã thanh toán", "thanh toán", "paid", "done", "đã ck", "ck rồi"]),
]
PAID_EXACT = {"ok", "x", "v", "✓"}

_CURRENCY_SYMBOLS = re.compile(r"[đ$₫€]", re.IGNORECASE)
_CURRENCY_WORDS = re.compile(r"vnd|usd|dong|đồng", re.IGNORECASE)
_DOT_THOUSANDS = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_SHEET_BATCH = re.compile(r"đợt\s*(?:hàng\s*)?(\d+)", re.IGNORECASE)
_SHEET_DATE = re.compile(r"-\s*(\d{3,4})")


def parse_numeric_value(value: Any, dot_thousands: bool = False) -> Optional[float]:
    """
    Parse a number from a messy cell.

    Strips comma separators, currency symbols and currency names.
    Returns None instead of raising when the cell is not numeric.

    Args:
        value: Raw cell value
        dot_thousands: Read "1.200.000" as 1200000. Only VND amounts are
            written this way; weights and USD costs use a decimal dot.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return float(value)

    if not isinstance(value, str):
        return None

    cleaned = _CURRENCY_WORDS.sub("", _CURRENCY_SYMBOLS.sub("", value))
    cleaned = re.sub(r"[,\s]", "", cleaned).strip()
    if not cleaned:
        return None

    if dot_thousands and _DOT_THOUSANDS.match(cleaned):
        cleaned = cleaned.replace(".", "")

    try:
        parsed = float(cleaned)
    except ValueError:
        logger.debug(f"Unparseable numeric cell: {value!r}")
        return None

    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def parse_payment_status(status: Any) -> PaymentStatus:
    """Classify free-text payment status; anything unmatched is UNKNOWN"""
    if status is None or not isinstance(status, str):
        return PaymentStatus.UNKNOWN

    normalized = status.lower().strip()
    if not normalized:
        return PaymentStatus.UNKNOWN

    if normalized in PAID_EXACT:
        return PaymentStatus.PAID

    for payment_status, patterns in PAYMENT_STATUS_PATTERNS:
        if any(pattern in normalized for pattern in patterns):
            return payment_status

    return PaymentStatus.UNKNOWN


def parse_sheet_name(sheet_name: str) -> Tuple[Optional[int], Optional[str]]:
    """
    Extract batch number and date label from a sheet name.

    Examples:
        "Đợt hàng 11 - 1125" -> (11, "1125")
        "Đợt 124" -> (124, None)
    """
    batch_match = _SHEET_BATCH.search(sheet_name)
    batch_number = int(batch_match.group(1)) if batch_match else None

    date_match = _SHEET_DATE.search(sheet_name)
    batch_date = date_match.group(1) if date_match else None

    return batch_number, batch_date


def should_skip_sheet(sheet_name: str) -> bool:
    """True for pricing-reference, instruction and template sheets"""
    normalized = sheet_name.lower().strip()
    return any(skip in normalized for skip in SKIP_SHEETS)


def is_inventory_sheet(sheet_name: str) -> bool:
    """Inventory sheets are handled by a separate subsystem"""
    normalized = sheet_name.lower().strip()
    return any(marker in normalized for marker in INVENTORY_SHEETS)


def is_summary_row(product_name: Optional[str]) -> bool:
    """True for totals, shipping-fee lines and payment confirmations"""
    if not product_name:
        return True
    normalized = product_name.lower().strip()
    return any(pattern in normalized for pattern in SKIP_ROW_PATTERNS)


def is_header_repeat(product_name: str) -> bool:
    """A header pasted again mid-sheet shows a product-column label as its value"""
    return product_name.lower().strip() in PRODUCT_HEADER_LABELS


def _is_blank(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, float) and math.isnan(cell):
        return True
    if isinstance(cell, str) and not cell.strip():
        return True
    return False


def _text_value(cell: Any) -> Optional[str]:
    if _is_blank(cell):
        return None
    if isinstance(cell, float) and cell.is_integer():
        cell = int(cell)
    return str(cell).strip()


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    return text[:limit].strip()


def parse_row(
    column_mapping: Dict[str, int],
    row: Sequence[Any],
    row_number: int,
    exchange_rate: Optional[float] = None
) -> Optional[SaleRecord]:
    """
    Parse one raw row.

    Args:
        column_mapping: field -> column index from resolve_columns
        row: Raw cell values
        row_number: 1-based position in the data region
        exchange_rate: Converts foreign cost to local when local is missing

    Returns:
        SaleRecord, or None for blank / non-data / summary rows
    """
    if all(_is_blank(cell) for cell in row):
        return None

    def get_value(field: str) -> Any:
        index = column_mapping.get(field)
        if index is None or index >= len(row):
            return None
        return row[index]

    product_name = _truncate(_text_value(get_value("product_name")), NAME_MAX_LENGTH)
    if not product_name or is_header_repeat(product_name):
        return None

    if is_summary_row(product_name):
        logger.debug(f"Skipping summary row {row_number}: {product_name}")
        return None

    cost_usd = parse_numeric_value(get_value("cost_usd"))
    cost_vnd = parse_numeric_value(get_value("cost_vnd"), dot_thousands=True)
    if cost_vnd is None and cost_usd is not None and exchange_rate:
        cost_vnd = cost_usd * exchange_rate

    return SaleRecord(
        row_number=row_number,
        customer_name=_truncate(_text_value(get_value("customer_name")), CUSTOMER_NAME_MAX_LENGTH),
        product_name=product_name,
        cost_usd=cost_usd,
        cost_vnd=cost_vnd,
        sale_price=parse_numeric_value(get_value("sale_price"), dot_thousands=True),
        profit=parse_numeric_value(get_value("profit"), dot_thousands=True),
        weight=parse_numeric_value(get_value("weight")),
        shipping_cost=parse_numeric_value(get_value("shipping_cost"), dot_thousands=True),
        payment_status=parse_payment_status(get_value("payment_status")),
        quantity=parse_numeric_value(get_value("quantity")),
    )


def parse_sheet(
    sheet_name: str,
    headers: Sequence[Optional[str]],
    rows: Sequence[Sequence[Any]],
    exchange_rate: Optional[float] = None
) -> ParsedSheet:
    """Parse a whole sheet into a ParsedSheet with its valid rows"""
    batch_number, batch_date = parse_sheet_name(sheet_name)
    column_mapping = resolve_columns(headers)

    if "product_name" not in column_mapping:
        logger.warning(f"No product column found in sheet '{sheet_name}' (headers: {list(headers)})")

    records: List[SaleRecord] = []
    for index, row in enumerate(rows):
        record = parse_row(column_mapping, row or [], index + 1, exchange_rate)
        if record is not None:
            records.append(record)

    logger.info(
        f"Parsed sheet '{sheet_name}': {len(records)} valid rows out of {len(rows)}"
    )

    return ParsedSheet(
        sheet_name=sheet_name,
        batch_number=batch_number,
        batch_date=batch_date,
        exchange_rate=exchange_rate,
        rows=records,
        column_mapping=column_mapping,
    )
