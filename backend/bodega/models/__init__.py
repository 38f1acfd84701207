from .documents import Document
from .local import LocalEntry
from .records import (
    AppConfig,
    Category,
    Client,
    ClientPayment,
    EmployeePermissions,
    Expense,
    LineItem,
    Product,
    ReceiptOptions,
    Sale,
    Supplier,
)

__all__ = [
    'Document', 'LocalEntry',
    'AppConfig', 'EmployeePermissions', 'ReceiptOptions',
    'Category', 'Product', 'Client', 'ClientPayment',
    'LineItem', 'Sale', 'Supplier', 'Expense',
]
