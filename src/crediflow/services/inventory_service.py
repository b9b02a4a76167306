from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import replace
from typing import Iterable, Optional

from crediflow.domain.errors import (
    ConcurrencyError,
    InsufficientStockError,
    ProductNotFoundError,
    ShopNotFoundError,
    ValidationError,
)
from crediflow.domain.models import Actor, LineItem, Product
from crediflow.repositories.unit_of_work import catalog_key, product_key
from crediflow.services import activity_service as actions

log = logging.getLogger("crediflow.ledger")

EDITABLE_FIELDS = {"name", "category", "retail_price", "wholesale_price", "stock", "description"}


def new_product_id() -> str:
    return f"PROD-{uuid.uuid4().hex[:12]}"


class InventoryService:
    def __init__(self, store, activity, enforce_sale_stock: bool = False):
        self.store = store
        self.activity = activity
        self.enforce_sale_stock = enforce_sale_stock

    def list_products(self, shop_id: Optional[str] = None) -> list[Product]:
        return self.store.list_products(shop_id)

    def get_product(self, product_id: str) -> Product:
        p = self.store.get_product(product_id)
        if not p:
            raise ProductNotFoundError("Product not found.", product_id=product_id)
        return p

    def _require_shop(self, shop_id: str) -> None:
        if self.store.get_shop(shop_id) is None:
            raise ShopNotFoundError("Shop not found.", shop_id=shop_id)

    def build_product(
        self,
        shop_id: str,
        name: str,
        category: Optional[str],
        retail_price: float,
        wholesale_price: Optional[float] = None,
        stock: int = 0,
        description: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        try:
            retail = float(retail_price)
            wholesale = float(wholesale_price) if wholesale_price is not None else retail
            stock = int(stock)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid numeric value: {e}") from e
        if retail < 0 or wholesale < 0:
            raise ValidationError("Prices must be >= 0.")
        if stock < 0:
            raise ValidationError("Stock must be >= 0.")
        return Product(
            id=product_id or new_product_id(),
            shop_id=shop_id,
            name=name,
            category=(category or "").strip() or "Uncategorized",
            retail_price=retail,
            wholesale_price=wholesale,
            stock=stock,
            description=description,
        )

    def add_product(self, shop_id: str, name: str, category: Optional[str], retail_price: float,
                    wholesale_price: Optional[float] = None, stock: int = 0, description: Optional[str] = None,
                    actor: Optional[Actor] = None, product_id: Optional[str] = None) -> Product:
        self._require_shop(shop_id)
        product = self.build_product(shop_id, name, category, retail_price, wholesale_price, stock, description, product_id)
        with self.store.unit_of_work(catalog_key(shop_id), product_key(product.id)) as uow:
            if self.store.get_product(product.id) is not None:
                raise ValidationError(f"Product id already exists: {product.id}")
            uow.put_product(product)
            self.activity.record(uow, actions.ADD_PRODUCT, f"Added product: {product.name}", actor, shop_id=shop_id)
        return product

    def add_products(self, products: Iterable[Product], actor: Optional[Actor] = None) -> int:
        """Bulk insert (CSV import). One audit entry for the whole batch."""
        products = list(products)
        if not products:
            return 0
        for shop_id in {p.shop_id for p in products}:
            self._require_shop(shop_id)
        if len({p.id for p in products}) != len(products):
            raise ValidationError("Duplicate product ids in batch.")

        keys = {catalog_key(p.shop_id) for p in products} | {product_key(p.id) for p in products}
        with self.store.unit_of_work(*keys) as uow:
            for p in products:
                if self.store.get_product(p.id) is not None:
                    raise ValidationError(f"Product id already exists: {p.id}")
                uow.put_product(p)
            self.activity.record(
                uow,
                actions.IMPORT_CSV,
                f"Imported {len(products)} products via CSV",
                actor,
                shop_id=products[0].shop_id,
            )
        return len(products)

    def update_product(self, product_id: str, updates: dict, actor: Optional[Actor] = None, reason: Optional[str] = None) -> Product:
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not updates:
            raise ValidationError("Nothing to update.")

        with self.store.unit_of_work(product_key(product_id)) as uow:
            current = self.get_product(product_id)
            updated = self.build_product(
                shop_id=current.shop_id,
                name=updates.get("name", current.name),
                category=updates.get("category", current.category),
                retail_price=updates.get("retail_price", current.retail_price),
                wholesale_price=updates.get("wholesale_price", current.wholesale_price),
                stock=updates.get("stock", current.stock),
                description=updates.get("description", current.description),
                product_id=current.id,
            )
            uow.put_product(updated)
            changes = ", ".join(updates)
            note = f" | Note: {reason}" if reason else ""
            self.activity.record(uow, actions.UPDATE_PRODUCT, f"Updated {current.name} [{changes}]{note}", actor, shop_id=current.shop_id)
        return updated

    def apply_sale(self, uow, shop_id: str, items: Iterable[LineItem]) -> list[Product]:
        """Deduct sold quantities. Caller holds the product locks inside `uow`.

        Every line is resolved (and checked, when enforcement is on) before
        the first stock change.
        """
        qty_by_product: Counter[str] = Counter()
        for it in items:
            product = self.store.get_product(it.product_id)
            if product is None or product.shop_id != shop_id:
                raise ProductNotFoundError(
                    f"Product {it.product_id} not found in shop {shop_id}.",
                    product_id=it.product_id,
                    shop_id=shop_id,
                )
            qty_by_product[it.product_id] += int(it.quantity)

        if self.enforce_sale_stock:
            for pid, qty in qty_by_product.items():
                product = self.store.get_product(pid)
                if qty > int(product.stock):
                    raise InsufficientStockError(
                        f"Not enough stock for {product.name}. Available: {product.stock}",
                        product_id=pid,
                        available=int(product.stock),
                        requested=qty,
                    )

        return [uow.adjust_stock(pid, -qty) for pid, qty in qty_by_product.items()]

    def transfer_stock(self, product_name: str, from_shop_id: str, to_shop_id: str, quantity: int,
                       actor: Optional[Actor] = None) -> tuple[Product, Product]:
        """Move `quantity` of the product named `product_name` between shops.

        Products are matched by exact name in each shop. The destination
        record is created as a copy of the source when the shop has none.
        Returns (source, destination) after the move.
        """
        try:
            quantity = int(quantity)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid quantity: {quantity!r}") from e
        if quantity <= 0:
            raise ValidationError("Quantity must be > 0.")
        if from_shop_id == to_shop_id:
            raise ValidationError("Cannot transfer to the same shop.")
        self._require_shop(from_shop_id)
        self._require_shop(to_shop_id)

        # The destination may appear between lookup and locking; retry with the new lock set.
        for _ in range(3):
            source = self.store.find_product_by_name(from_shop_id, product_name)
            if source is None:
                raise ProductNotFoundError(
                    f"Product {product_name!r} not found in source shop.", shop_id=from_shop_id
                )
            dest = self.store.find_product_by_name(to_shop_id, product_name)
            keys = [product_key(source.id), catalog_key(to_shop_id)]
            if dest is not None:
                keys.append(product_key(dest.id))

            with self.store.unit_of_work(*keys) as uow:
                source = self.store.get_product(source.id)
                current_dest = self.store.find_product_by_name(to_shop_id, product_name)
                if source is None or source.name != product_name or source.shop_id != from_shop_id:
                    continue
                if (current_dest.id if current_dest else None) != (dest.id if dest else None):
                    continue
                if quantity > int(source.stock):
                    raise InsufficientStockError(
                        f"Insufficient stock for {product_name}. Available: {source.stock}",
                        product_id=source.id,
                        available=int(source.stock),
                        requested=quantity,
                    )

                source = uow.adjust_stock(source.id, -quantity)
                if dest is not None:
                    dest = uow.adjust_stock(dest.id, quantity)
                else:
                    dest = uow.put_product(replace(source, id=new_product_id(), shop_id=to_shop_id, stock=quantity))

                to_shop = self.store.get_shop(to_shop_id)
                self.activity.record(
                    uow,
                    actions.STOCK_TRANSFER,
                    f"Transferred {quantity}x {product_name} to {to_shop.name if to_shop else 'Unknown'}",
                    actor,
                    shop_id=from_shop_id,
                )
            log.info(
                "stock_transferred product=%s from=%s to=%s qty=%s source_stock=%s dest_stock=%s",
                product_name, from_shop_id, to_shop_id, quantity, source.stock, dest.stock,
            )
            return source, dest

        raise ConcurrencyError("Transfer aborted: catalog kept changing under concurrent updates.")
