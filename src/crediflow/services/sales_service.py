from __future__ import annotations

import logging
import math
import uuid
from typing import Iterable, Optional

from crediflow.domain.errors import (
    CustomerNotFoundError,
    ProductNotFoundError,
    ShopNotFoundError,
    ValidationError,
)
from crediflow.domain.models import (
    Actor,
    Customer,
    ExpenseRecord,
    LineItem,
    PaymentRecord,
    Product,
    Transaction,
    sale_status,
)
from crediflow.repositories.unit_of_work import customer_key, product_key
from crediflow.services import activity_service as actions
from crediflow.time_utils import normalize_iso, utcnow_iso

log = logging.getLogger("crediflow.ledger")

UNKNOWN_SHOP = "unknown"


def price_for(product: Product, customer: Customer) -> float:
    return float(product.wholesale_price if customer.type == "WHOLESALE" else product.retail_price)


def _amount(value, label: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{label} must be a number.") from e
    if math.isnan(amount) or math.isinf(amount):
        raise ValidationError(f"{label} must be a number.")
    return amount


def _quantity(value) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("Quantity must be a whole number.") from e
    if qty <= 0:
        raise ValidationError("Quantity must be >= 1.")
    return qty


def _event_date(value: Optional[str]) -> str:
    if value is None:
        return utcnow_iso()
    try:
        return normalize_iso(value) or utcnow_iso()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e


class SalesService:
    """Debt-changing operations: sales, payments and expenses.

    Each call runs in one unit of work holding the customer's lock (and the
    sold products' locks), so concurrent calls for the same customer apply
    their debt deltas one after another.
    """

    def __init__(self, store, inventory, activity):
        self.store = store
        self.inventory = inventory
        self.activity = activity

    def _require_customer(self, customer_id: str) -> Customer:
        customer = self.store.get_customer(customer_id)
        if customer is None:
            raise CustomerNotFoundError("Customer not found.", customer_id=customer_id)
        return customer

    def create_sale(
        self,
        shop_id: str,
        customer_id: str,
        items: Iterable[dict],
        paid_amount: Optional[float] = None,
        actor: Optional[Actor] = None,
        date: Optional[str] = None,
        sale_id: Optional[str] = None,
    ) -> Transaction:
        """
        items: [{product_id, quantity, unit_price?}]

        A line without unit_price is billed at the customer's price tier.
        paid_amount None means paid in full.
        """
        items = list(items)
        if not items:
            raise ValidationError("Cart is empty.")
        if self.store.get_shop(shop_id) is None:
            raise ShopNotFoundError("Shop not found.", shop_id=shop_id)
        self._require_customer(customer_id)

        for it in items:
            _quantity(it.get("quantity"))
            if it.get("unit_price") is not None and _amount(it["unit_price"], "Unit price") < 0:
                raise ValidationError("Unit price must be >= 0.")
        sale_date = _event_date(date)

        keys = [customer_key(customer_id)] + [product_key(str(it["product_id"])) for it in items]
        with self.store.unit_of_work(*keys) as uow:
            customer = self._require_customer(customer_id)

            lines: list[LineItem] = []
            for it in items:
                pid = str(it["product_id"])
                product = self.store.get_product(pid)
                if product is None or product.shop_id != shop_id:
                    raise ProductNotFoundError(f"Product {pid} not found in shop {shop_id}.", product_id=pid, shop_id=shop_id)
                unit_price = it.get("unit_price")
                lines.append(
                    LineItem(
                        product_id=pid,
                        name=product.name,
                        quantity=_quantity(it["quantity"]),
                        unit_price=price_for(product, customer) if unit_price is None else float(unit_price),
                    )
                )

            total = sum(line.line_total for line in lines)
            paid = total if paid_amount is None else _amount(paid_amount, "Paid amount")
            if paid < 0:
                raise ValidationError("Paid amount must be >= 0.")
            if paid > total:
                raise ValidationError("Paid amount cannot exceed the sale total.")
            balance = total - paid

            self.inventory.apply_sale(uow, shop_id, lines)
            tx = uow.add_transaction(
                Transaction(
                    id=sale_id or f"TRX-{uuid.uuid4().hex[:12]}",
                    shop_id=shop_id,
                    customer_id=customer.id,
                    customer_name=customer.name,
                    date=sale_date,
                    items=tuple(lines),
                    total_amount=total,
                    paid_amount=paid,
                    balance=balance,
                    status=sale_status(total, paid),
                )
            )
            if balance > 0:
                uow.adjust_debt(customer.id, balance)
            self.activity.record(
                uow,
                actions.SALE,
                f"New Invoice #{tx.id[-4:]} for {customer.name} (total {total:.2f})",
                actor,
                shop_id=shop_id,
                customer_id=customer.id,
            )

        log.info(
            "sale_created sale_id=%s shop=%s customer=%s items=%s total=%.2f paid=%.2f status=%s",
            tx.id, shop_id, customer_id, len(lines), total, paid, tx.status,
        )
        return tx

    def record_payment(
        self,
        customer_id: str,
        amount: float,
        shop_id: Optional[str] = None,
        actor: Optional[Actor] = None,
        note: Optional[str] = None,
    ) -> Customer:
        amount = _amount(amount, "Amount")
        if amount <= 0:
            raise ValidationError("Payment amount must be > 0.")

        with self.store.unit_of_work(customer_key(customer_id)) as uow:
            customer = self._require_customer(customer_id)
            payment = uow.add_payment(
                PaymentRecord(
                    id=f"PAY-{uuid.uuid4().hex[:12]}",
                    shop_id=shop_id or UNKNOWN_SHOP,
                    customer_id=customer_id,
                    amount=amount,
                    date=utcnow_iso(),
                    note=note,
                )
            )
            # Overpayment is discarded rather than carried as credit.
            updated = uow.adjust_debt(customer_id, -amount, floor=0.0)
            self.activity.record(
                uow,
                actions.PAYMENT,
                f"Received payment of {amount:.2f} from {customer.name}",
                actor,
                shop_id=shop_id,
                customer_id=customer_id,
            )

        log.info("payment_recorded payment_id=%s customer=%s amount=%.2f debt=%.2f", payment.id, customer_id, amount, updated.total_debt)
        return updated

    def record_expense(
        self,
        customer_id: str,
        description: str,
        amount: float,
        date: Optional[str] = None,
        shop_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Customer:
        amount = _amount(amount, "Amount")
        if amount <= 0:
            raise ValidationError("Expense amount must be > 0.")
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required.")
        expense_date = _event_date(date)

        with self.store.unit_of_work(customer_key(customer_id)) as uow:
            self._require_customer(customer_id)
            expense = uow.add_expense(
                ExpenseRecord(
                    id=f"EXP-{uuid.uuid4().hex[:12]}",
                    shop_id=shop_id or UNKNOWN_SHOP,
                    customer_id=customer_id,
                    description=description,
                    amount=amount,
                    date=expense_date,
                )
            )
            updated = uow.adjust_debt(customer_id, amount)
            self.activity.record(
                uow,
                actions.EXPENSE,
                f"Added expense: {description} ({amount:.2f})",
                actor,
                shop_id=shop_id,
                customer_id=customer_id,
            )

        log.info("expense_recorded expense_id=%s customer=%s amount=%.2f debt=%.2f", expense.id, customer_id, amount, updated.total_debt)
        return updated

    def list_sales(self, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list[Transaction]:
        return self.store.list_transactions(shop_id=shop_id, customer_id=customer_id)
