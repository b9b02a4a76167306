from .activity_service import ActivityRecorder
from .customer_service import CustomerService
from .import_service import ImportService
from .inventory_service import InventoryService
from .ledger_service import LedgerService
from .operations_service import OperationsService
from .reporting_service import ReportingService
from .sales_service import SalesService
from .sync_service import MirrorSync

__all__ = [
    "ActivityRecorder",
    "CustomerService",
    "ImportService",
    "InventoryService",
    "LedgerService",
    "OperationsService",
    "ReportingService",
    "SalesService",
    "MirrorSync",
]
