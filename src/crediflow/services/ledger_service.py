from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from crediflow.domain.models import (
    KIND_EXPENSE,
    KIND_PAYMENT,
    KIND_SALE,
    Statement,
    StatementItem,
)
from crediflow.time_utils import parse_iso_datetime

log = logging.getLogger(__name__)

# Debt figures are floats; comparisons allow for accumulated rounding.
TOLERANCE = 1e-6


@dataclass(frozen=True)
class DebtCheck:
    customer_id: str
    cached_debt: float
    statement_balance: float
    shop_total: float

    @property
    def consistent(self) -> bool:
        return (
            abs(self.cached_debt - self.statement_balance) <= TOLERANCE
            and abs(self.shop_total - self.statement_balance) <= TOLERANCE
        )


class LedgerService:
    """Read-only projections over a customer's sales, payments and expenses."""

    def __init__(self, store):
        self.store = store

    def compute_statement(self, customer_id: str) -> Statement:
        """Chronological statement with running balance for one customer.

        A sale moves the balance by its unpaid part only, a payment by minus
        its amount, an expense by its amount. Events with the same date keep
        insertion order. `total_billed` counts sales at their full amount.
        Unknown customers yield an empty statement.
        """
        with self.store.reading():
            customer = self.store.get_customer(customer_id)
            if customer is None:
                return Statement(customer_id=customer_id)
            transactions = self.store.list_transactions(customer_id=customer_id)
            payments = self.store.list_payments(customer_id=customer_id)
            expenses = self.store.list_expenses(customer_id=customer_id)
            shops = self.store.list_shops()

        events: list[tuple] = []
        for t in transactions:
            events.append((t.date, t.seq, KIND_SALE, t.id, t.shop_id, t.total_amount, t.balance, None))
        for p in payments:
            events.append((p.date, p.seq, KIND_PAYMENT, p.id, p.shop_id, p.amount, -p.amount, p.note))
        for e in expenses:
            events.append((e.date, e.seq, KIND_EXPENSE, e.id, e.shop_id, e.amount, e.amount, e.description))
        events.sort(key=lambda ev: (parse_iso_datetime(ev[0]), ev[1]))

        shop_balances: dict[str, float] = {s.id: 0.0 for s in shops}
        running = 0.0
        total_billed = 0.0
        total_paid = 0.0
        items: list[StatementItem] = []
        for date, _seq, kind, ref, shop_id, amount, change, description in events:
            running += change
            shop_balances[shop_id] = shop_balances.get(shop_id, 0.0) + change
            if kind == KIND_PAYMENT:
                total_paid += amount
            else:
                total_billed += amount
            items.append(
                StatementItem(
                    id=ref,
                    date=date,
                    kind=kind,
                    shop_id=shop_id,
                    amount=amount,
                    balance_change=change,
                    running_balance=running,
                    description=description,
                )
            )

        return Statement(
            customer_id=customer_id,
            items=tuple(items),
            shop_balances=shop_balances,
            total_billed=total_billed,
            total_paid=total_paid,
            total_debt=float(customer.total_debt),
            credit_limit=customer.credit_limit,
        )

    def shop_balances(self, customer_id: str) -> dict[str, float]:
        return dict(self.compute_statement(customer_id).shop_balances)

    def verify_customer(self, customer_id: str) -> Optional[DebtCheck]:
        with self.store.reading():
            customer = self.store.get_customer(customer_id)
            if customer is None:
                return None
            st = self.compute_statement(customer_id)
        return DebtCheck(
            customer_id=customer_id,
            cached_debt=float(customer.total_debt),
            statement_balance=st.closing_balance,
            shop_total=sum(st.shop_balances.values()),
        )

    def reconcile(self) -> list[DebtCheck]:
        """Customers whose cached debt disagrees with a replay of their events.

        Payment clamping at zero and debt carried in from seed data both show
        up here; nothing is corrected.
        """
        mismatches = []
        for c in self.store.list_customers():
            check = self.verify_customer(c.id)
            if check is not None and not check.consistent:
                mismatches.append(check)
        if mismatches:
            log.warning("ledger_mismatch customers=%s", ",".join(m.customer_id for m in mismatches))
        return mismatches
