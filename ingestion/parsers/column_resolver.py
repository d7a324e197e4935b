"""
Map human-written spreadsheet headers to semantic field names.

Headers arrive in Vietnamese, English and assorted abbreviations. Matching
is case-insensitive substring matching in both directions (a known variant
inside the header, or the header inside a known variant). When a header
matches several variants, the longest matching text wins, so
"Giá nhập (VND)" resolves to cost_vnd rather than cost_usd.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


# field -> known header variants; table order breaks ties
COLUMN_PATTERNS: List[Tuple[str, List[str]]] = [
    ("product_name", ["mặt hàng", "tên mặt hàng", "tên hàng", "sản phẩm", "sp", "hàng", "product"]),
    ("customer_name", ["khách hàng", "khách", "tên khách", "customer", "người mua", "buyer"]),
    ("cost_usd", [
        "giá nhập (usd)",
        "giá nhập ($)",
        "đơn giá",
        "giá nhập",
        "giá usd",
        "cost",
        "price usd",
        "giá gốc",
    ]),
    ("cost_vnd", ["giá nhập (vnd)", "giá nhập vnd", "giá vnd", "cost vnd"]),
    ("sale_price", ["giá bán (vnd)", "giá bán", "bán", "sale price", "selling price", "giá bán vnd"]),
    ("profit", ["lãi (vnd)", "lãi", "profit", "lời", "lợi nhuận"]),
    ("weight", ["cân nặng", "weight", "kg", "trọng lượng", "nặng"]),
    ("shipping_cost", ["phí ship", "tiền ship", "ship", "shipping", "phí vận chuyển"]),
    ("payment_status", [
        "trạng thái thanh toán",
        "tình trạng",
        "status",
        "thanh toán",
        "tt",
        "trạng thái",
        "payment",
    ]),
    ("quantity", ["số lượng", "sl", "qty", "quantity"]),
    ("row_number", ["stt", "no", "#", "số thứ tự"]),
]

FIELDS = [field for field, _ in COLUMN_PATTERNS]


def _match_score(header: str, pattern: str) -> int:
    """Length of the matched text, 0 when neither string contains the other"""
    if pattern == header:
        return len(pattern) + 1  # exact beats any containment of equal length
    if pattern in header:
        return len(pattern)
    if header in pattern:
        return len(header)
    return 0


def normalize_column_header(header: Optional[str]) -> Optional[str]:
    """
    Resolve a single header to a field name.

    Returns:
        Field name, or None when nothing matches (not an error)
    """
    if header is None:
        return None
    normalized = str(header).strip().lower()
    if not normalized:
        return None

    best_field: Optional[str] = None
    best_score = 0
    for field, patterns in COLUMN_PATTERNS:
        for pattern in patterns:
            score = _match_score(normalized, pattern)
            if score > best_score:
                best_field, best_score = field, score

    return best_field


def resolve_columns(headers: Sequence[Optional[str]]) -> Dict[str, int]:
    """
    Map semantic field names to column indexes.

    The first column resolving to a field keeps it; unresolved headers are
    simply absent from the result.
    """
    mapping: Dict[str, int] = {}
    unresolved = []

    for index, header in enumerate(headers):
        field = normalize_column_header(header)
        if field is None:
            if header not in (None, ""):
                unresolved.append(header)
            continue
        if field not in mapping:
            mapping[field] = index

    if unresolved:
        logger.debug(f"Unresolved headers: {unresolved}")

    return mapping
