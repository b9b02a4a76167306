import sys
from pathlib import Path
from types import SimpleNamespace

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_services(enforce_sale_stock: bool = False, shops=("A", "B")):
    """In-memory store with the given shop ids and every service wired to it."""
    from crediflow.domain.models import Shop
    from crediflow.repositories.memory_store import EntityStore
    from crediflow.services.activity_service import ActivityRecorder
    from crediflow.services.customer_service import CustomerService
    from crediflow.services.import_service import ImportService
    from crediflow.services.inventory_service import InventoryService
    from crediflow.services.ledger_service import LedgerService
    from crediflow.services.sales_service import SalesService

    store = EntityStore().open()
    with store.unit_of_work("setup") as uow:
        for shop_id in shops:
            uow.put_shop(Shop(id=shop_id, name=f"Shop {shop_id}", type="HYBRID"))

    activity = ActivityRecorder(store)
    inventory = InventoryService(store, activity, enforce_sale_stock=enforce_sale_stock)
    return SimpleNamespace(
        store=store,
        activity=activity,
        inventory=inventory,
        customers=CustomerService(store, activity),
        sales=SalesService(store, inventory, activity),
        ledger=LedgerService(store),
        importer=ImportService(inventory),
    )
