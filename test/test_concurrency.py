import threading

import pytest

from conftest import make_services
from crediflow.domain.models import ExpenseRecord
from crediflow.repositories.unit_of_work import StoreUnitOfWork, customer_key


def _run_all(workers):
    errors = []
    start = threading.Barrier(len(workers))

    def wrap(fn):
        def run():
            start.wait()
            try:
                fn()
            except Exception as e:  # collected and re-raised in the test thread
                errors.append(e)
        return run

    threads = [threading.Thread(target=wrap(fn)) for fn in workers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert not any(t.is_alive() for t in threads), "worker threads did not finish"
    if errors:
        raise errors[0]


def test_concurrent_debt_changes_on_one_customer_are_not_lost():
    svc = make_services()
    svc.inventory.add_product("A", "Shirt", "Clothing", 100, stock=1000, product_id="p1")
    svc.customers.add_customer("Rahul", customer_id="c")
    svc.sales.record_expense("c", "Opening", 10_000, shop_id="A")

    def sell():
        for _ in range(25):
            svc.sales.create_sale("A", "c", [{"product_id": "p1", "quantity": 1}], paid_amount=0)

    def pay():
        for _ in range(25):
            svc.sales.record_payment("c", 30, shop_id="B")

    def charge():
        for _ in range(25):
            svc.sales.record_expense("c", "Fee", 5, shop_id="B")

    _run_all([sell, sell, pay, pay, charge])

    debt = svc.store.get_customer("c").total_debt
    assert debt == pytest.approx(10_000 + 50 * 100 - 50 * 30 + 25 * 5)
    assert svc.store.get_product("p1").stock == 950
    assert svc.ledger.verify_customer("c").consistent
    assert len(svc.store.list_transactions()) == 50


def test_opposite_transfers_do_not_deadlock_and_conserve_stock():
    svc = make_services()
    svc.inventory.add_product("A", "Widget", "Tools", 10, stock=500)
    svc.inventory.add_product("B", "Widget", "Tools", 10, stock=500)

    def a_to_b():
        for _ in range(50):
            svc.inventory.transfer_stock("Widget", "A", "B", 1)

    def b_to_a():
        for _ in range(50):
            svc.inventory.transfer_stock("Widget", "B", "A", 2)

    _run_all([a_to_b, b_to_a, a_to_b])

    a = svc.store.find_product_by_name("A", "Widget")
    b = svc.store.find_product_by_name("B", "Widget")
    assert a.stock == 500 - 100 + 100
    assert b.stock == 500 + 100 - 100
    assert len(svc.store.list_products()) == 2


def test_concurrent_first_transfers_create_one_destination():
    svc = make_services(shops=("A", "B"))
    svc.inventory.add_product("A", "Widget", "Tools", 10, stock=100)

    def move():
        for _ in range(10):
            svc.inventory.transfer_stock("Widget", "A", "B", 1)

    _run_all([move, move, move, move])

    assert len(svc.store.list_products("B")) == 1
    assert svc.store.find_product_by_name("B", "Widget").stock == 40
    assert svc.store.find_product_by_name("A", "Widget").stock == 60


def test_sales_and_transfers_on_same_product():
    svc = make_services()
    svc.inventory.add_product("A", "Widget", "Tools", 10, stock=200, product_id="wa")
    svc.customers.add_customer("Rahul", customer_id="c")

    def sell():
        for _ in range(30):
            svc.sales.create_sale("A", "c", [{"product_id": "wa", "quantity": 2}])

    def move():
        for _ in range(30):
            svc.inventory.transfer_stock("Widget", "A", "B", 1)

    _run_all([sell, move])

    assert svc.store.get_product("wa").stock == 200 - 60 - 30
    assert svc.store.find_product_by_name("B", "Widget").stock == 30


def test_statement_reader_never_sees_half_applied_sale(monkeypatch):
    svc = make_services()
    svc.inventory.add_product("A", "Shirt", "Clothing", 100, stock=10, product_id="p1")
    svc.customers.add_customer("Rahul", customer_id="c")
    staged = threading.Event()
    release = threading.Event()
    original = StoreUnitOfWork.adjust_debt

    def slow_adjust_debt(self, customer_id, delta, floor=None):
        updated = original(self, customer_id, delta, floor)
        staged.set()
        release.wait(timeout=10)
        return updated

    monkeypatch.setattr(StoreUnitOfWork, "adjust_debt", slow_adjust_debt)
    seller = threading.Thread(
        target=lambda: svc.sales.create_sale("A", "c", [{"product_id": "p1", "quantity": 1}], paid_amount=0)
    )
    seller.start()
    try:
        assert staged.wait(timeout=10)
        during = svc.ledger.compute_statement("c")
        check = svc.ledger.verify_customer("c")
        mismatches = svc.ledger.reconcile()
        stock = svc.store.get_product("p1").stock
    finally:
        release.set()
        seller.join(timeout=10)

    assert during.items == ()
    assert during.total_debt == 0
    assert check.consistent
    assert mismatches == []
    assert stock == 10

    after = svc.ledger.compute_statement("c")
    assert after.closing_balance == after.total_debt == 100
    assert svc.store.get_product("p1").stock == 9


def test_rolled_back_events_are_never_visible():
    svc = make_services()
    svc.customers.add_customer("Rahul", customer_id="c")

    with pytest.raises(RuntimeError):
        with svc.store.unit_of_work(customer_key("c")) as uow:
            uow.add_expense(
                ExpenseRecord(id="e1", shop_id="A", customer_id="c", description="Fee", amount=50, date="2024-01-01T00:00:00")
            )
            uow.adjust_debt("c", 50)
            assert svc.store.list_expenses() == []
            assert svc.store.get_customer("c").total_debt == 0
            raise RuntimeError("abort")

    assert svc.store.list_expenses() == []
    assert svc.store.get_customer("c").total_debt == 0
    assert svc.ledger.compute_statement("c").items == ()


def test_readers_during_concurrent_sales_always_balance():
    svc = make_services()
    svc.inventory.add_product("A", "Shirt", "Clothing", 100, stock=1000, product_id="p1")
    svc.customers.add_customer("Rahul", customer_id="c")
    seen = []

    def sell():
        for _ in range(40):
            svc.sales.create_sale("A", "c", [{"product_id": "p1", "quantity": 1}], paid_amount=25)
            svc.sales.record_payment("c", 10, shop_id="B")

    def read():
        for _ in range(80):
            st = svc.ledger.compute_statement("c")
            seen.append((st.closing_balance, st.total_debt))

    _run_all([sell, sell, read])

    assert seen
    assert all(closing == pytest.approx(debt) for closing, debt in seen)
