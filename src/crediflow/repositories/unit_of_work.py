from __future__ import annotations

import threading
from contextlib import ExitStack
from dataclasses import replace
from typing import Callable, Iterable, Optional

from crediflow.domain.errors import CustomerNotFoundError, ProductNotFoundError
from crediflow.domain.models import ActivityLog, Customer, ExpenseRecord, PaymentRecord, Product, Shop, Transaction


class LockRegistry:
    """Named locks, created on first use and acquired in sorted key order."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def hold(self, keys: Iterable[str]) -> ExitStack:
        stack = ExitStack()
        try:
            for key in sorted(set(keys)):
                stack.enter_context(self._get(key))
        except BaseException:
            stack.close()
            raise
        return stack


def product_key(product_id: str) -> str:
    return f"product:{product_id}"


def customer_key(customer_id: str) -> str:
    return f"customer:{customer_id}"


def catalog_key(shop_id: str) -> str:
    return f"catalog:{shop_id}"


class StoreUnitOfWork:
    """Atomic write scope over an EntityStore.

    Holds the requested entity locks for its whole lifetime. Changes are
    staged here and applied to the store in one step when the block exits
    cleanly, so readers see all of them or none; if the block raises they
    are discarded. Reads made through the unit of work see its own staged
    changes. Committed records go to the mirror in the order they were
    written.
    """

    def __init__(self, store, lock_keys: Iterable[str] = ()):
        self.store = store
        self.lock_keys = tuple(lock_keys)
        self._locks: ExitStack | None = None
        self._written: list[object] = []
        self._staged: dict[tuple[type, str], object] = {}

    def __enter__(self) -> "StoreUnitOfWork":
        self.store.ensure_open()
        self._locks = self.store.locks.hold(self.lock_keys)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None and self._written:
                self.store.commit(self._written)
        finally:
            self._written = []
            self._staged.clear()
            if self._locks is not None:
                self._locks.close()
                self._locks = None

    def _stage(self, record):
        self._staged[(type(record), record.id)] = record
        self._written.append(record)
        return record

    def _current(self, cls: type, record_id: str, lookup: Callable[[str], Optional[object]]):
        staged = self._staged.get((cls, record_id))
        return staged if staged is not None else lookup(record_id)

    # ---------- Reference data ----------
    def put_shop(self, shop: Shop) -> Shop:
        return self._stage(shop)

    def put_product(self, product: Product) -> Product:
        return self._stage(product)

    def put_customer(self, customer: Customer) -> Customer:
        return self._stage(customer)

    # ---------- Aggregates ----------
    def adjust_stock(self, product_id: str, delta: int) -> Product:
        current = self._current(Product, product_id, self.store.get_product)
        if current is None:
            raise ProductNotFoundError("Product not found.", product_id=product_id)
        return self.put_product(replace(current, stock=int(current.stock) + int(delta)))

    def adjust_debt(self, customer_id: str, delta: float, floor: Optional[float] = None) -> Customer:
        current = self._current(Customer, customer_id, self.store.get_customer)
        if current is None:
            raise CustomerNotFoundError("Customer not found.", customer_id=customer_id)
        debt = float(current.total_debt) + float(delta)
        if floor is not None and debt < floor:
            debt = float(floor)
        return self.put_customer(replace(current, total_debt=debt))

    # ---------- Events ----------
    def add_transaction(self, tx: Transaction) -> Transaction:
        return self._stage(replace(tx, seq=self.store.next_seq()))

    def add_payment(self, payment: PaymentRecord) -> PaymentRecord:
        return self._stage(replace(payment, seq=self.store.next_seq()))

    def add_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        return self._stage(replace(expense, seq=self.store.next_seq()))

    def append_activity(self, entry: ActivityLog) -> ActivityLog:
        return self._stage(replace(entry, seq=self.store.next_seq()))
