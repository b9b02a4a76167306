from __future__ import annotations

import itertools
import logging
import threading
from collections import defaultdict
from typing import Iterable, Optional

from crediflow.domain.models import (
    ActivityLog,
    Customer,
    ExpenseRecord,
    PaymentRecord,
    Product,
    Shop,
    Transaction,
)
from crediflow.repositories.records import KINDS, from_payload
from crediflow.repositories.unit_of_work import LockRegistry, StoreUnitOfWork

log = logging.getLogger(__name__)


class StoreClosedError(RuntimeError):
    pass


class EntityStore:
    """Authoritative in-process state: shops, products, customers and events.

    No business rules live here. Reads are plain lookups; writes go through
    `unit_of_work()` so they can be rolled back and mirrored as one unit.
    """

    def __init__(self, mirror=None):
        self.mirror = mirror
        self.locks = LockRegistry()
        self._guard = threading.RLock()
        self._seq = itertools.count(1)
        self._open = False
        self._reset()

    def _reset(self) -> None:
        self._shops: dict[str, Shop] = {}
        self._products: dict[str, Product] = {}
        self._shop_products: dict[str, list[str]] = defaultdict(list)
        self._customers: dict[str, Customer] = {}
        self._events: dict[type, list] = {
            Transaction: [],
            PaymentRecord: [],
            ExpenseRecord: [],
            ActivityLog: [],
        }

    # ---------- Lifecycle ----------
    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "EntityStore":
        if self._open:
            return self
        snapshot = self.mirror.load() if self.mirror is not None else None
        if snapshot:
            self._hydrate(snapshot)
        self._open = True
        log.info(
            "store_opened shops=%s products=%s customers=%s",
            len(self._shops),
            len(self._products),
            len(self._customers),
        )
        return self

    def close(self) -> None:
        if not self._open:
            return
        if self.mirror is not None:
            self.mirror.close()
        self._open = False
        log.info("store_closed")

    def __enter__(self) -> "EntityStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ensure_open(self) -> None:
        if not self._open:
            raise StoreClosedError("Store is not open.")

    def _hydrate(self, snapshot: dict[str, list[dict]]) -> None:
        highest = 0
        with self._guard:
            self._reset()
            for kind in KINDS:
                for payload in snapshot.get(kind, []):
                    record = from_payload(kind, payload)
                    self._apply(record)
                    highest = max(highest, int(getattr(record, "seq", 0)))
            for events in self._events.values():
                events.sort(key=lambda e: e.seq)
            self._seq = itertools.count(highest + 1)

    def unit_of_work(self, *lock_keys: str) -> StoreUnitOfWork:
        return StoreUnitOfWork(self, lock_keys)

    def next_seq(self) -> int:
        with self._guard:
            return next(self._seq)

    def commit(self, records: Iterable[object]) -> None:
        """Apply a unit of work's records in one step, then hand them to the mirror."""
        records = list(records)
        with self._guard:
            for record in records:
                self._apply(record)
        self.publish(records)

    def publish(self, records: Iterable[object]) -> None:
        if self.mirror is None:
            return
        for record in records:
            self.mirror.enqueue(record)

    def reading(self) -> threading.RLock:
        """Hold while combining several reads that must each see whole units of work."""
        return self._guard

    def _apply(self, record) -> None:
        if isinstance(record, Shop):
            self._replace_shop(record)
        elif isinstance(record, Product):
            self._replace_product(record)
        elif isinstance(record, Customer):
            self._replace_customer(record)
        else:
            self._append_event(record)

    def is_empty(self) -> bool:
        return not (self._shops or self._products or self._customers)

    # ---------- Shops ----------
    def list_shops(self) -> list[Shop]:
        with self._guard:
            return list(self._shops.values())

    def get_shop(self, shop_id: str) -> Optional[Shop]:
        return self._shops.get(shop_id)

    def _replace_shop(self, shop: Shop) -> Optional[Shop]:
        with self._guard:
            previous = self._shops.get(shop.id)
            self._shops[shop.id] = shop
            return previous

    # ---------- Products ----------
    def list_products(self, shop_id: Optional[str] = None) -> list[Product]:
        with self._guard:
            if shop_id is None:
                return list(self._products.values())
            return [self._products[pid] for pid in self._shop_products.get(shop_id, [])]

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def find_product_by_name(self, shop_id: str, name: str) -> Optional[Product]:
        with self._guard:
            for pid in self._shop_products.get(shop_id, []):
                product = self._products[pid]
                if product.name == name:
                    return product
        return None

    def _replace_product(self, product: Product) -> Optional[Product]:
        with self._guard:
            previous = self._products.get(product.id)
            if previous is not None and previous.shop_id != product.shop_id:
                self._shop_products[previous.shop_id].remove(product.id)
            if previous is None or previous.shop_id != product.shop_id:
                self._shop_products[product.shop_id].append(product.id)
            self._products[product.id] = product
            return previous

    # ---------- Customers ----------
    def list_customers(self) -> list[Customer]:
        with self._guard:
            return list(self._customers.values())

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._customers.get(customer_id)

    def _replace_customer(self, customer: Customer) -> Optional[Customer]:
        with self._guard:
            previous = self._customers.get(customer.id)
            self._customers[customer.id] = customer
            return previous

    # ---------- Events ----------
    def _append_event(self, record):
        with self._guard:
            self._events[type(record)].append(record)
        return record

    def _select(self, cls: type, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list:
        with self._guard:
            return [
                e
                for e in self._events[cls]
                if (shop_id is None or e.shop_id == shop_id)
                and (customer_id is None or e.customer_id == customer_id)
            ]

    def list_transactions(self, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list[Transaction]:
        return self._select(Transaction, shop_id, customer_id)

    def list_payments(self, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list[PaymentRecord]:
        return self._select(PaymentRecord, shop_id, customer_id)

    def list_expenses(self, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list[ExpenseRecord]:
        return self._select(ExpenseRecord, shop_id, customer_id)

    def list_activities(self, shop_id: Optional[str] = None, customer_id: Optional[str] = None) -> list[ActivityLog]:
        return self._select(ActivityLog, shop_id, customer_id)
