import pytest

from conftest import make_services
from crediflow.domain.errors import (
    CustomerNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ShopNotFoundError,
    ValidationError,
)
from crediflow.domain.models import STATUS_PAID, STATUS_PARTIAL, STATUS_UNPAID
from crediflow.services import activity_service as actions


def _setup(**kwargs):
    svc = make_services(**kwargs)
    svc.inventory.add_product("A", "Shirt", "Clothing", 1200.0, 800.0, stock=5, product_id="p1")
    svc.inventory.add_product("A", "Belt", "Accessories", 500.0, 300.0, stock=2, product_id="p2")
    svc.inventory.add_product("B", "Shoes", "Footwear", 3500.0, 2500.0, stock=4, product_id="p3")
    svc.customers.add_customer("Walk-in", customer_id="retail")
    svc.customers.add_customer("Traders", "0771234567", "WHOLESALE", customer_id="whole")
    return svc


@pytest.mark.parametrize(
    "paid, status",
    [(None, STATUS_PAID), (1200, STATUS_PAID), (200, STATUS_PARTIAL), (0, STATUS_UNPAID)],
)
def test_sale_status_follows_paid_amount(paid, status):
    svc = _setup()
    tx = svc.sales.create_sale("A", "retail", [{"product_id": "p1", "quantity": 1}], paid_amount=paid)

    assert tx.status == status
    assert tx.total_amount == 1200
    assert tx.balance == tx.total_amount - tx.paid_amount
    assert svc.store.get_customer("retail").total_debt == tx.balance


def test_sale_deducts_stock_and_records_activity():
    svc = _setup()
    tx = svc.sales.create_sale(
        "A", "retail", [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 1}], paid_amount=0,
    )

    assert svc.store.get_product("p1").stock == 3
    assert svc.store.get_product("p2").stock == 1
    assert [(i.product_id, i.quantity, i.unit_price) for i in tx.items] == [("p1", 2, 1200.0), ("p2", 1, 500.0)]
    assert tx.total_amount == 2900
    assert tx.customer_name == "Walk-in"
    assert svc.sales.list_sales(customer_id="retail") == [tx]

    entry = svc.activity.list_activity(limit=1)[0]
    assert entry.action == actions.SALE
    assert entry.customer_id == "retail"
    assert entry.shop_id == "A"


def test_wholesale_customer_gets_wholesale_price():
    svc = _setup()
    tx = svc.sales.create_sale("A", "whole", [{"product_id": "p1", "quantity": 2}], paid_amount=0)

    assert tx.items[0].unit_price == 800
    assert tx.total_amount == 1600


def test_explicit_unit_price_wins():
    svc = _setup()
    tx = svc.sales.create_sale("A", "whole", [{"product_id": "p1", "quantity": 1, "unit_price": 1000}])

    assert tx.total_amount == 1000


def test_product_from_other_shop_aborts_sale_without_changes():
    svc = _setup()
    before = svc.activity.list_activity()

    with pytest.raises(ProductNotFoundError) as exc:
        svc.sales.create_sale(
            "A", "retail", [{"product_id": "p1", "quantity": 1}, {"product_id": "p3", "quantity": 1}], paid_amount=0,
        )

    assert exc.value.product_id == "p3"
    assert svc.store.get_product("p1").stock == 5
    assert svc.store.get_product("p3").stock == 4
    assert svc.store.list_transactions() == []
    assert svc.store.get_customer("retail").total_debt == 0
    assert svc.activity.list_activity() == before


def test_unknown_product_shop_or_customer():
    svc = _setup()

    with pytest.raises(ProductNotFoundError):
        svc.sales.create_sale("A", "retail", [{"product_id": "nope", "quantity": 1}])
    with pytest.raises(ShopNotFoundError):
        svc.sales.create_sale("Z", "retail", [{"product_id": "p1", "quantity": 1}])
    with pytest.raises(CustomerNotFoundError):
        svc.sales.create_sale("A", "ghost", [{"product_id": "p1", "quantity": 1}])


def test_sale_may_oversell_by_default():
    svc = _setup()
    svc.sales.create_sale("A", "retail", [{"product_id": "p2", "quantity": 5}])

    assert svc.store.get_product("p2").stock == -3


def test_enforced_stock_rejects_oversell_atomically():
    svc = _setup(enforce_sale_stock=True)

    with pytest.raises(InsufficientStockError) as exc:
        svc.sales.create_sale(
            "A", "retail", [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 2}, {"product_id": "p2", "quantity": 1}],
        )

    assert exc.value.product_id == "p2"
    assert exc.value.requested == 3
    assert svc.store.get_product("p1").stock == 5
    assert svc.store.get_product("p2").stock == 2
    assert svc.store.list_transactions() == []


@pytest.mark.parametrize(
    "items, paid, message",
    [
        ([], None, "Cart is empty"),
        ([{"product_id": "p1", "quantity": 0}], None, "Quantity"),
        ([{"product_id": "p1", "quantity": "two"}], None, "whole number"),
        ([{"product_id": "p1", "quantity": 1, "unit_price": -5}], None, "Unit price"),
        ([{"product_id": "p1", "quantity": 1}], -1, "Paid amount"),
        ([{"product_id": "p1", "quantity": 1}], 1500, "cannot exceed"),
        ([{"product_id": "p1", "quantity": 1}], float("nan"), "Paid amount"),
    ],
)
def test_sale_validation(items, paid, message):
    svc = _setup()

    with pytest.raises(ValidationError, match=message):
        svc.sales.create_sale("A", "retail", items, paid_amount=paid)

    assert svc.store.get_product("p1").stock == 5
    assert svc.store.get_customer("retail").total_debt == 0


def test_payment_reduces_debt_and_clamps_at_zero():
    svc = _setup()
    svc.sales.create_sale("A", "retail", [{"product_id": "p1", "quantity": 1}], paid_amount=200)

    c = svc.sales.record_payment("retail", 400, shop_id="A", note="cash")
    assert c.total_debt == 600

    c = svc.sales.record_payment("retail", 5000, shop_id="A")
    assert c.total_debt == 0
    assert [p.amount for p in svc.store.list_payments(customer_id="retail")] == [400, 5000]
    assert svc.store.list_payments(customer_id="retail")[0].note == "cash"


def test_payment_without_shop_is_attributed_to_unknown():
    svc = _setup()
    svc.sales.record_expense("retail", "Fee", 100, shop_id="A")
    svc.sales.record_payment("retail", 40)

    assert svc.store.list_payments()[0].shop_id == "unknown"
    assert svc.ledger.shop_balances("retail")["unknown"] == -40


@pytest.mark.parametrize("amount", [0, -10, "abc", float("inf")])
def test_payment_rejects_non_positive_or_non_numeric(amount):
    svc = _setup()

    with pytest.raises(ValidationError):
        svc.sales.record_payment("retail", amount)
    assert svc.store.list_payments() == []


def test_payment_for_unknown_customer():
    svc = _setup()

    with pytest.raises(CustomerNotFoundError):
        svc.sales.record_payment("ghost", 10)
    assert svc.store.list_payments() == []


def test_expense_increases_debt():
    svc = _setup()
    c = svc.sales.record_expense("whole", "  Transport ", 750, date="2024-01-15", shop_id="B")

    assert c.total_debt == 750
    expense = svc.store.list_expenses()[0]
    assert expense.description == "Transport"
    assert expense.date.startswith("2024-01-15T00:00:00")
    entry = svc.activity.list_activity(limit=1)[0]
    assert entry.action == actions.EXPENSE


def test_expense_validation():
    svc = _setup()

    with pytest.raises(ValidationError, match="Description"):
        svc.sales.record_expense("retail", "  ", 10)
    with pytest.raises(ValidationError, match="> 0"):
        svc.sales.record_expense("retail", "Fee", 0)
    with pytest.raises(ValidationError, match="Invalid date"):
        svc.sales.record_expense("retail", "Fee", 10, date="yesterday")
    with pytest.raises(CustomerNotFoundError):
        svc.sales.record_expense("ghost", "Fee", 10)

    assert svc.store.list_expenses() == []
    assert svc.store.get_customer("retail").total_debt == 0


def test_customer_management():
    svc = _setup()
    c = svc.customers.add_customer("Sarah", "0719876543", "WHOLESALE", credit_limit=20000, shop_name="Boutique")

    assert c.id.startswith("c-")
    assert c.total_debt == 0

    updated = svc.customers.update_customer(c.id, {"phone": "0700000000", "credit_limit": 25000})
    assert updated.phone == "0700000000"
    assert updated.credit_limit == 25000

    with pytest.raises(ValidationError, match="total_debt"):
        svc.customers.update_customer(c.id, {"total_debt": 0})
    with pytest.raises(ValidationError, match="Customer type"):
        svc.customers.add_customer("X", type="VIP")
    with pytest.raises(ValidationError, match="Credit limit"):
        svc.customers.add_customer("X", credit_limit=-1)
    with pytest.raises(CustomerNotFoundError):
        svc.customers.update_customer("ghost", {"phone": "1"})
