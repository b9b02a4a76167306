from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Optional

from crediflow.domain.errors import CustomerNotFoundError, ValidationError
from crediflow.domain.models import CUSTOMER_TYPES, Actor, Customer
from crediflow.repositories.unit_of_work import customer_key
from crediflow.services import activity_service as actions

EDITABLE_FIELDS = {"name", "phone", "type", "credit_limit", "address", "shop_name", "location", "whatsapp"}


class CustomerService:
    def __init__(self, store, activity):
        self.store = store
        self.activity = activity

    def list_customers(self) -> list[Customer]:
        return self.store.list_customers()

    def get_customer(self, customer_id: str) -> Customer:
        c = self.store.get_customer(customer_id)
        if not c:
            raise CustomerNotFoundError("Customer not found.", customer_id=customer_id)
        return c

    def _validate(self, customer: Customer) -> Customer:
        name = (customer.name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        if customer.type not in CUSTOMER_TYPES:
            raise ValidationError(f"Customer type must be one of {', '.join(CUSTOMER_TYPES)}.")
        limit = customer.credit_limit
        if limit is not None:
            try:
                limit = float(limit)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid credit limit: {limit!r}") from e
            if limit < 0:
                raise ValidationError("Credit limit must be >= 0.")
        return replace(customer, name=name, phone=(customer.phone or "").strip(), credit_limit=limit)

    def add_customer(self, name: str, phone: str = "", type: str = "RETAIL", actor: Optional[Actor] = None,
                     customer_id: Optional[str] = None, **details) -> Customer:
        unknown = set(details) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown customer fields: {', '.join(sorted(unknown))}")
        customer = self._validate(
            Customer(id=customer_id or f"c-{uuid.uuid4().hex[:10]}", name=name, phone=phone, type=type, **details)
        )
        with self.store.unit_of_work(customer_key(customer.id)) as uow:
            if self.store.get_customer(customer.id) is not None:
                raise ValidationError(f"Customer id already exists: {customer.id}")
            uow.put_customer(customer)
            self.activity.record(uow, actions.ADD_CUSTOMER, f"Created new customer: {customer.name}", actor, customer_id=customer.id)
        return customer

    def update_customer(self, customer_id: str, updates: dict, actor: Optional[Actor] = None) -> Customer:
        if "total_debt" in updates:
            raise ValidationError("total_debt is derived from sales, payments and expenses.")
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not updates:
            raise ValidationError("Nothing to update.")

        with self.store.unit_of_work(customer_key(customer_id)) as uow:
            current = self.get_customer(customer_id)
            updated = self._validate(replace(current, **updates))
            uow.put_customer(updated)
            self.activity.record(
                uow,
                actions.UPDATE_CUSTOMER,
                f"Updated {current.name} (Fields: {', '.join(updates)})",
                actor,
                customer_id=customer_id,
            )
        return updated
