from __future__ import annotations

import logging

from crediflow.domain.models import Customer, ExpenseRecord, Product, Shop
from crediflow.time_utils import utcnow_iso

log = logging.getLogger(__name__)

DEFAULT_SHOPS = [
    Shop(id="shop1", name="Osaka - Kattankudy", type="WHOLESALE", color="bg-blue-600"),
    Shop(id="shop2", name="Shop 2: City Retail", type="RETAIL", color="bg-emerald-600"),
    Shop(id="shop3", name="Shop 3: Outlet Store", type="HYBRID", color="bg-purple-600"),
    Shop(id="shop4", name="Shop 4: Warehouse B", type="WHOLESALE", color="bg-orange-600"),
]

DEFAULT_PRODUCTS = [
    Product(id="1", shop_id="shop1", name="Premium Cotton Shirt", category="Clothing", retail_price=1200, wholesale_price=800, stock=150),
    Product(id="2", shop_id="shop1", name="Denim Jeans - Bulk", category="Clothing", retail_price=1800, wholesale_price=1200, stock=80),
    Product(id="3", shop_id="shop2", name="Leather Belt", category="Accessories", retail_price=500, wholesale_price=300, stock=20),
    Product(id="4", shop_id="shop2", name="Running Shoes", category="Footwear", retail_price=3500, wholesale_price=2500, stock=40),
    Product(id="5", shop_id="shop3", name="Silk Scarf", category="Accessories", retail_price=900, wholesale_price=600, stock=100),
]

WALK_IN_CUSTOMER_ID = "c1"

DEFAULT_CUSTOMERS = [
    Customer(id=WALK_IN_CUSTOMER_ID, name="Retail Walk-in", phone="", type="RETAIL"),
    Customer(
        id="c2", name="Rahul Kumar", phone="0771234567", type="WHOLESALE", credit_limit=50000,
        shop_name="Rahul Traders", location="12 Market St", whatsapp="0771234567",
    ),
    Customer(
        id="c3", name="Sarah Jenkins", phone="0719876543", type="WHOLESALE", credit_limit=20000,
        shop_name="City Boutique", location="45 Mall Road", whatsapp="0719876543",
    ),
]

# Demo debt is booked as an opening-balance expense so statements replay to it.
OPENING_BALANCES = {"c2": ("shop1", 15000.0), "c3": ("shop1", 5000.0)}


def seed_defaults(store) -> None:
    """Load the demo data set into an empty, open store, one record per write."""
    if not store.is_empty():
        return
    with store.unit_of_work("seed") as uow:
        for shop in DEFAULT_SHOPS:
            uow.put_shop(shop)
        for product in DEFAULT_PRODUCTS:
            uow.put_product(product)
        for customer in DEFAULT_CUSTOMERS:
            uow.put_customer(customer)
        for customer_id, (shop_id, amount) in OPENING_BALANCES.items():
            uow.add_expense(
                ExpenseRecord(
                    id=f"EXP-open-{customer_id}",
                    shop_id=shop_id,
                    customer_id=customer_id,
                    description="Opening balance",
                    amount=amount,
                    date=utcnow_iso(),
                )
            )
            uow.adjust_debt(customer_id, amount)
    log.info("store_seeded shops=%s products=%s customers=%s", len(DEFAULT_SHOPS), len(DEFAULT_PRODUCTS), len(DEFAULT_CUSTOMERS))
