from __future__ import annotations

from dataclasses import asdict
from typing import Any

from crediflow.domain.models import (
    ActivityLog,
    Customer,
    ExpenseRecord,
    LineItem,
    PaymentRecord,
    Product,
    Shop,
    Transaction,
)

# Entity kind -> record type. Order matters for hydration (reference data first).
KINDS: dict[str, type] = {
    "shops": Shop,
    "products": Product,
    "customers": Customer,
    "transactions": Transaction,
    "payments": PaymentRecord,
    "expenses": ExpenseRecord,
    "activities": ActivityLog,
}


def kind_of(record: object) -> str:
    for kind, cls in KINDS.items():
        if isinstance(record, cls):
            return kind
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


def to_payload(record: object) -> dict[str, Any]:
    payload = asdict(record)
    if isinstance(record, Transaction):
        payload["items"] = [asdict(it) for it in record.items]
    return payload


def from_payload(kind: str, payload: dict[str, Any]) -> object:
    cls = KINDS[kind]
    data = dict(payload)
    if cls is Transaction:
        data["items"] = tuple(
            LineItem(
                product_id=str(it["product_id"]),
                name=str(it["name"]),
                quantity=int(it["quantity"]),
                unit_price=float(it["unit_price"]),
            )
            for it in data.get("items") or ()
        )
    if cls is Product:
        data["stock"] = int(data["stock"])
        data["retail_price"] = float(data["retail_price"])
        data["wholesale_price"] = float(data["wholesale_price"])
    return cls(**data)
