from __future__ import annotations

import uuid
from typing import Optional

from crediflow.domain.models import ActivityLog, Actor
from crediflow.time_utils import parse_iso_datetime, utcnow_iso

ADD_PRODUCT = "ADD_PRODUCT"
UPDATE_PRODUCT = "UPDATE_PRODUCT"
IMPORT_CSV = "IMPORT_CSV"
STOCK_TRANSFER = "STOCK_TRANSFER"
ADD_CUSTOMER = "ADD_CUSTOMER"
UPDATE_CUSTOMER = "UPDATE_CUSTOMER"
SALE = "SALE"
PAYMENT = "PAYMENT"
EXPENSE = "EXPENSE"


class ActivityRecorder:
    """Append-only audit trail.

    `record` is called inside the unit of work of the operation it
    describes, as its last step, so a failed operation leaves no entry.
    """

    def __init__(self, store):
        self.store = store

    def record(
        self,
        uow,
        action: str,
        description: str,
        actor: Optional[Actor] = None,
        shop_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            id=f"log-{uuid.uuid4().hex[:12]}",
            date=utcnow_iso(),
            action=action,
            description=description,
            performed_by=actor.username if actor else "Unknown",
            shop_id=shop_id,
            customer_id=customer_id,
            shop_name=actor.shop_name if actor else None,
        )
        return uow.append_activity(entry)

    def list_activity(
        self,
        shop_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ActivityLog]:
        entries = self.store.list_activities(shop_id=shop_id, customer_id=customer_id)
        entries.sort(key=lambda a: (parse_iso_datetime(a.date), a.seq), reverse=True)
        return entries[:limit] if limit is not None else entries
