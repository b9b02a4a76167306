from .models import (
    Shop,
    Product,
    Customer,
    LineItem,
    Transaction,
    PaymentRecord,
    ExpenseRecord,
    ActivityLog,
    Actor,
    StatementItem,
    Statement,
    sale_status,
)
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    ProductNotFoundError,
    CustomerNotFoundError,
    ShopNotFoundError,
    InsufficientStockError,
    PersistenceError,
    ConcurrencyError,
)

__all__ = [
    "Shop",
    "Product",
    "Customer",
    "LineItem",
    "Transaction",
    "PaymentRecord",
    "ExpenseRecord",
    "ActivityLog",
    "Actor",
    "StatementItem",
    "Statement",
    "sale_status",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "ProductNotFoundError",
    "CustomerNotFoundError",
    "ShopNotFoundError",
    "InsufficientStockError",
    "PersistenceError",
    "ConcurrencyError",
]
