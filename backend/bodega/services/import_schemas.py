from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from .. import money

NAME = "name"
SALE_PRICE = "sale_price"
COST_PRICE = "cost_price"
STOCK = "stock"
CODE = "code"
CATEGORY = "category"

IMPORT_FIELDS = (NAME, SALE_PRICE, COST_PRICE, STOCK, CODE, CATEGORY)
REQUIRED_FIELDS = (NAME, SALE_PRICE)

DEFAULT_MIN_STOCK = 5
DEFAULT_UNIT = "und"

# Checked in this order; a header is claimed by the first field it matches.
FIELD_KEYWORDS = (
    (CODE, ("codigo", "code", "sku", "ref")),
    (COST_PRICE, ("costo", "compra", "cost")),
    (SALE_PRICE, ("precio", "venta", "pvp", "price", "saleprice")),
    (STOCK, ("stock", "cantidad", "existencia", "quantity")),
    (CATEGORY, ("categoria", "category", "tipo", "familia")),
    (NAME, ("nombre", "producto", "descripcion", "name", "product")),
)


def _normalize_header(header: Any) -> str:
    text = unicodedata.normalize("NFKD", str(header or ""))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return "".join(ch for ch in text if ch.isalnum())


def auto_map_headers(headers: list) -> dict[str, str]:
    """Guess a field -> header mapping from header keywords (Spanish or English)."""
    mapping: dict[str, str] = {}
    for header in headers:
        normalized = _normalize_header(header)
        if not normalized:
            continue
        for field_name, keywords in FIELD_KEYWORDS:
            if field_name in mapping:
                continue
            if any(k in normalized for k in keywords):
                mapping[field_name] = str(header)
                break
    return mapping


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


_THOUSANDS_COMMAS = re.compile(r"^-?\d{1,3}(,\d{3})+$")
_THOUSANDS_DOTS = re.compile(r"^-?\d{1,3}(\.\d{3}){2,}$")
_DECIMAL_COMMA = re.compile(r"^-?\d*,\d{1,2}$")


def _number_text(text: str) -> str:
    """
    Spreadsheet number text in plain "1234.56" form.

    Both separators: the last one is the decimal mark ("1.234,56", "1,234.56").
    A lone comma with one or two digits after it is a decimal comma ("1,20");
    comma groups of three are thousands ("1,250"). Anything else with a comma
    is ambiguous and left unparseable.
    """
    text = text.strip().replace("$", "").replace(" ", "")
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if "," in text:
        if _DECIMAL_COMMA.match(text):
            return text.replace(",", ".")
        if _THOUSANDS_COMMAS.match(text):
            return text.replace(",", "")
        return ""
    if _THOUSANDS_DOTS.match(text):
        return text.replace(".", "")
    return text


def _to_amount(value: Any) -> Decimal:
    """Non-negative decimal; anything unparseable is 0."""
    if value is None or isinstance(value, bool):
        return money.ZERO
    if isinstance(value, str):
        value = _number_text(value)
    try:
        return abs(money.to_decimal(value))
    except ValueError:
        return money.ZERO


def _to_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = _number_text(value)
    try:
        return money.to_int(value)
    except ValueError:
        return 0


@dataclass(frozen=True)
class ImportRow:
    """One coerced import row; `mapped` lists the fields the source provided."""
    name: str
    sale_price: Decimal = money.ZERO
    cost_price: Decimal = money.ZERO
    stock: int = 0
    code: str = ""
    category_name: Optional[str] = None
    min_stock: int = DEFAULT_MIN_STOCK
    unit: str = DEFAULT_UNIT
    code_generated: bool = False
    mapped: frozenset = field(default_factory=frozenset)


class ProductRowSchema:
    """Turns loosely-typed tabular rows into ImportRow records."""

    def __init__(self, headers: list, mapping: dict[str, str], *, code_prefix: str):
        self.headers = [str(h) if h is not None else "" for h in headers]
        self.mapping = {k: v for k, v in mapping.items() if v}
        self.code_prefix = code_prefix
        self._generated = 0

    def as_dict(self, raw_row: Any) -> dict[str, Any]:
        if isinstance(raw_row, dict):
            return {str(k): v for k, v in raw_row.items()}
        if isinstance(raw_row, (list, tuple)):
            return {h: raw_row[i] if i < len(raw_row) else None for i, h in enumerate(self.headers)}
        raise ValueError("rows must be lists or objects")

    def _cell(self, row: dict[str, Any], field_name: str) -> Any:
        header = self.mapping.get(field_name)
        return row.get(header) if header else None

    def next_code(self) -> str:
        self._generated += 1
        return f"{self.code_prefix}-{self._generated}"

    def normalize_row(self, raw_row: Any) -> Optional[ImportRow]:
        """ImportRow for the row, or None when the row has no name."""
        row = self.as_dict(raw_row)
        name = _to_text(self._cell(row, NAME))
        if not name:
            return None

        code = _to_text(self._cell(row, CODE))
        code_generated = code is None
        if code_generated:
            code = self.next_code()

        return ImportRow(
            name=name,
            sale_price=_to_amount(self._cell(row, SALE_PRICE)),
            cost_price=_to_amount(self._cell(row, COST_PRICE)),
            stock=_to_count(self._cell(row, STOCK)),
            code=code,
            category_name=_to_text(self._cell(row, CATEGORY)),
            code_generated=code_generated,
            mapped=frozenset(self.mapping),
        )
