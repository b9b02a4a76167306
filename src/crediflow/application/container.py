from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from crediflow.config import Settings
from crediflow.repositories.http_mirror import HttpMirror
from crediflow.repositories.memory_store import EntityStore
from crediflow.repositories.seed import seed_defaults
from crediflow.repositories.sqlite_repo import SqliteRepository
from crediflow.services.activity_service import ActivityRecorder
from crediflow.services.customer_service import CustomerService
from crediflow.services.import_service import ImportService
from crediflow.services.inventory_service import InventoryService
from crediflow.services.ledger_service import LedgerService
from crediflow.services.operations_service import OperationsService
from crediflow.services.reporting_service import ReportingService
from crediflow.services.sales_service import SalesService
from crediflow.services.sync_service import MirrorSync

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    sync: MirrorSync
    store: EntityStore
    activity: ActivityRecorder
    inventory: InventoryService
    customers: CustomerService
    sales: SalesService
    ledger: LedgerService
    importer: ImportService
    reporting: ReportingService
    operations: OperationsService

    def open(self, background_sync: bool = False) -> "AppContainer":
        self.store.open()
        if self.settings.seed_defaults and self.store.is_empty():
            seed_defaults(self.store)
        if background_sync:
            self.sync.start()
        else:
            self.sync.flush()
        return self

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "AppContainer":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_container(db_path: Path | str, settings: Optional[Settings] = None, remote=None) -> AppContainer:
    """Wire the store, its mirrors and the services. Call `open()` before use."""
    settings = settings or Settings()

    repo = SqliteRepository(db_path)
    repo.init_db()

    backends: list = [repo]
    if remote is not None:
        backends.append(remote)
    elif settings.remote_url:
        backends.append(HttpMirror(settings.remote_url, token=settings.remote_token))
    sync = MirrorSync(backends, max_attempts=settings.mirror_max_attempts)

    store = EntityStore(mirror=sync)
    activity = ActivityRecorder(store)
    inventory = InventoryService(store, activity, enforce_sale_stock=settings.enforce_sale_stock)
    customers = CustomerService(store, activity)
    sales = SalesService(store, inventory, activity)
    ledger = LedgerService(store)
    importer = ImportService(inventory)
    reporting = ReportingService(store, ledger, activity)
    operations = OperationsService(repo, sync, ledger, db_path=db_path)

    log.info("container_built db=%s backends=%s", db_path, ",".join(b.name for b in backends))
    return AppContainer(
        settings=settings,
        repo=repo,
        sync=sync,
        store=store,
        activity=activity,
        inventory=inventory,
        customers=customers,
        sales=sales,
        ledger=ledger,
        importer=importer,
        reporting=reporting,
        operations=operations,
    )
