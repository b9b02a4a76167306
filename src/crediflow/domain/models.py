from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

CUSTOMER_TYPES = ("RETAIL", "WHOLESALE")

STATUS_PAID = "PAID"
STATUS_PARTIAL = "PARTIAL"
STATUS_UNPAID = "UNPAID"

KIND_SALE = "SALE"
KIND_PAYMENT = "PAYMENT"
KIND_EXPENSE = "EXPENSE"


def sale_status(total_amount: float, paid_amount: float) -> str:
    balance = float(total_amount) - float(paid_amount)
    if balance <= 0:
        return STATUS_PAID
    if float(paid_amount) == 0:
        return STATUS_UNPAID
    return STATUS_PARTIAL


@dataclass(frozen=True)
class Shop:
    id: str
    name: str
    type: str
    color: Optional[str] = None


@dataclass(frozen=True)
class Product:
    id: str
    shop_id: str
    name: str
    category: str
    retail_price: float
    wholesale_price: float
    stock: int
    description: Optional[str] = None


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    phone: str
    type: str
    total_debt: float = 0.0
    credit_limit: Optional[float] = None
    address: Optional[str] = None
    shop_name: Optional[str] = None
    location: Optional[str] = None
    whatsapp: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    product_id: str
    name: str
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class Transaction:
    id: str
    shop_id: str
    customer_id: str
    customer_name: str
    date: str
    items: tuple[LineItem, ...]
    total_amount: float
    paid_amount: float
    balance: float
    status: str
    seq: int = 0


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    shop_id: str
    customer_id: str
    amount: float
    date: str
    note: Optional[str] = None
    seq: int = 0


@dataclass(frozen=True)
class ExpenseRecord:
    id: str
    shop_id: str
    customer_id: str
    description: str
    amount: float
    date: str
    seq: int = 0


@dataclass(frozen=True)
class ActivityLog:
    id: str
    date: str
    action: str
    description: str
    performed_by: str
    shop_id: Optional[str] = None
    customer_id: Optional[str] = None
    shop_name: Optional[str] = None
    seq: int = 0


@dataclass(frozen=True)
class Actor:
    id: str
    username: str
    role: str = "SHOP_ADMIN"
    shop_name: Optional[str] = None


@dataclass(frozen=True)
class StatementItem:
    id: str
    date: str
    kind: str
    shop_id: str
    amount: float
    balance_change: float
    running_balance: float
    description: Optional[str] = None


@dataclass(frozen=True)
class Statement:
    customer_id: str
    items: tuple[StatementItem, ...] = ()
    shop_balances: dict[str, float] = field(default_factory=dict)
    total_billed: float = 0.0
    total_paid: float = 0.0
    total_debt: float = 0.0
    credit_limit: Optional[float] = None

    @property
    def closing_balance(self) -> float:
        return self.items[-1].running_balance if self.items else 0.0

    @property
    def over_limit(self) -> bool:
        return self.credit_limit is not None and self.total_debt > float(self.credit_limit)

    @property
    def exceeded_amount(self) -> float:
        if not self.over_limit:
            return 0.0
        return self.total_debt - float(self.credit_limit)
