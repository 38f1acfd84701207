"""
Typed records for the documents kept in the stores.

Documents are persisted as plain JSON (money as decimal strings). Reading a
document goes through ``from_dict``, which starts from the dataclass defaults
and overlays whatever fields the stored payload has, so records saved before a
field existed still come back complete. Unknown stored keys are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Optional

from ..money import ZERO, to_decimal, to_int
from ..time_utils import to_utc_z

# Collection names
PRODUCTS = "products"
CATEGORIES = "categories"
SALES = "sales"
CLIENTS = "clients"
CLIENT_PAYMENTS = "client_payments"
SUPPLIERS = "suppliers"
EXPENSES = "expenses"
CONFIG = "config"
COUNTERS = "counters"

CONFIG_DOC_ID = "main"

# Sentinel client for unregistered buyers
WALK_IN_CLIENT_ID = "general"

PRODUCT_STATUSES = ("active", "inactive")

PAYMENT_METHODS = (
    "cash_usd",
    "cash_bs",
    "cash_cop",
    "mobile_pay",
    "transfer",
    "card",
    "credit",
)
CREDIT = "credit"

EXPENSE_PAYMENT_METHODS = ("cash_bs", "cash_usd", "cash_cop", "transfer", "mobile_pay")


def encode_value(value: Any) -> Any:
    """JSON-safe form of a record value (Decimal -> str, nested records -> dict)."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if is_dataclass(value) and not isinstance(value, type):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def compact(data: dict) -> dict:
    """Drop keys whose value is None (the remote store rejects unset values)."""
    return {k: v for k, v in data.items() if v is not None}


class Record:
    """Mixin giving dataclass records default-merging (de)serialization."""

    money_fields: ClassVar[tuple[str, ...]] = ()
    int_fields: ClassVar[tuple[str, ...]] = ()
    bool_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def _coerce(cls, name: str, value: Any) -> Any:
        if name in cls.money_fields:
            return to_decimal(value)
        if name in cls.int_fields:
            return to_int(value)
        if name in cls.bool_fields:
            return bool(value)
        return value

    @classmethod
    def from_dict(cls, data: Optional[dict]):
        data = data or {}
        kwargs = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            kwargs[f.name] = cls._coerce(f.name, data[f.name])
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {f.name: encode_value(getattr(self, f.name)) for f in fields(self)}


@dataclass
class Category(Record):
    id: Optional[str] = None
    name: str = ""
    color: str = "#3b82f6"


@dataclass
class Product(Record):
    money_fields = ("cost_price", "sale_price")
    int_fields = ("stock", "min_stock")

    id: Optional[str] = None
    code: str = ""
    name: str = ""
    category_id: str = ""
    cost_price: Decimal = ZERO
    sale_price: Decimal = ZERO
    stock: int = 0
    min_stock: int = 5
    unit: str = "und"
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def is_low_stock(self) -> bool:
        return self.is_active and self.stock <= self.min_stock


@dataclass
class Client(Record):
    money_fields = ("debt", "credit_limit")

    id: Optional[str] = None
    name: str = ""
    identity_document: str = ""
    phone: str = ""
    debt: Decimal = ZERO
    credit_limit: Decimal = Decimal("50")

    @property
    def is_walk_in(self) -> bool:
        return self.id == WALK_IN_CLIENT_ID


@dataclass
class ClientPayment(Record):
    money_fields = ("amount", "old_debt", "new_debt")

    id: Optional[str] = None
    client_id: str = ""
    amount: Decimal = ZERO
    date: str = ""
    old_debt: Decimal = ZERO
    new_debt: Decimal = ZERO


@dataclass(frozen=True)
class LineItem(Record):
    """What was sold, at which prices, frozen at the moment of the sale."""
    money_fields = ("sale_price", "cost_price")
    int_fields = ("quantity",)

    product_id: str = ""
    name: str = ""
    quantity: int = 0
    sale_price: Decimal = ZERO
    cost_price: Decimal = ZERO
    unit: str = "und"


@dataclass
class Sale(Record):
    money_fields = ("subtotal", "total", "total_local", "exchange_rate", "tax_amount")

    id: Optional[str] = None
    number: str = ""
    date: str = ""
    subtotal: Decimal = ZERO
    total: Decimal = ZERO
    total_local: Decimal = ZERO
    exchange_rate: Decimal = ZERO
    payment_method: str = "cash_usd"
    client_id: Optional[str] = None
    items: list = field(default_factory=list)
    tax_amount: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Sale":
        sale = super().from_dict(data)
        sale.items = [
            item if isinstance(item, LineItem) else LineItem.from_dict(item)
            for item in sale.items
        ]
        return sale

    def to_dict(self) -> dict:
        return compact(super().to_dict())


@dataclass
class Supplier(Record):
    id: Optional[str] = None
    name: str = ""
    contact: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


@dataclass
class Expense(Record):
    money_fields = ("amount",)

    id: Optional[str] = None
    description: str = ""
    amount: Decimal = ZERO
    category: str = ""
    date: str = ""
    payment_method: str = "cash_usd"


@dataclass
class EmployeePermissions(Record):
    bool_fields = (
        "can_view_costs",
        "can_edit_products",
        "can_view_dashboard_stats",
        "can_manage_clients",
        "can_access_cashbox",
        "can_delete_items",
    )

    can_view_costs: bool = False
    can_edit_products: bool = False
    can_view_dashboard_stats: bool = False
    can_manage_clients: bool = True
    can_access_cashbox: bool = True
    can_delete_items: bool = False


@dataclass
class ReceiptOptions(Record):
    bool_fields = ("show_tax",)

    header_text: str = "Gracias por su compra"
    footer_text: str = ""
    paper_size: str = "58mm"
    show_tax: bool = False


@dataclass
class AppConfig(Record):
    """
    Business settings singleton (config/main).

    Saved wholesale; read by merging the stored fields over these defaults,
    including the nested permission and receipt objects.
    """
    money_fields = ("exchange_rate", "secondary_exchange_rate", "tax_rate")
    int_fields = ("low_stock_threshold", "utc_offset_minutes")
    bool_fields = ("enable_negative_stock", "show_secondary_currency")

    business_name: str = "Mi Negocio"
    address: str = "Dirección Local"
    currency_code: str = "VES"
    currency_symbol: str = "Bs."
    exchange_rate: Decimal = Decimal("45.00")
    secondary_currency_code: str = "COP"
    secondary_exchange_rate: Decimal = Decimal("4200")
    show_secondary_currency: bool = True
    tax_rate: Decimal = ZERO
    enable_negative_stock: bool = True
    low_stock_threshold: int = 5
    # Business clock relative to UTC (e.g. -240 for UTC-4); sets the report day
    utc_offset_minutes: int = 0
    permissions: EmployeePermissions = field(default_factory=EmployeePermissions)
    receipt: ReceiptOptions = field(default_factory=ReceiptOptions)

    @classmethod
    def _coerce(cls, name: str, value: Any) -> Any:
        if name == "permissions":
            return EmployeePermissions.from_dict(value if isinstance(value, dict) else {})
        if name == "receipt":
            return ReceiptOptions.from_dict(value if isinstance(value, dict) else {})
        return super()._coerce(name, value)
