from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from crediflow.application.container import AppContainer, build_container
from crediflow.config import get_app_paths, load_settings
from crediflow.domain.errors import AppError
from crediflow.domain.models import Actor
from crediflow.logging_config import setup_logging


def _cmd_shops(app: AppContainer, args) -> int:
    for s in app.store.list_shops():
        print(f"{s.id}\t{s.type}\t{s.name}")
    return 0


def _cmd_products(app: AppContainer, args) -> int:
    for p in app.inventory.list_products(args.shop):
        print(f"{p.id}\t{p.shop_id}\t{p.name}\t{p.category}\t{p.retail_price:.2f}\t{p.wholesale_price:.2f}\t{p.stock}")
    return 0


def _cmd_customers(app: AppContainer, args) -> int:
    for c in app.customers.list_customers():
        print(f"{c.id}\t{c.type}\t{c.name}\t{c.total_debt:.2f}")
    return 0


def _cmd_statement(app: AppContainer, args) -> int:
    st = app.ledger.compute_statement(args.customer)
    for item in st.items:
        print(f"{item.date}\t{item.kind}\t{item.id}\t{item.shop_id}\t{item.amount:.2f}\t{item.running_balance:.2f}")
    print(f"billed={st.total_billed:.2f} paid={st.total_paid:.2f} balance={st.closing_balance:.2f}")
    for shop_id, bal in st.shop_balances.items():
        if bal:
            print(f"  {shop_id}\t{bal:.2f}")
    if args.export:
        out = app.reporting.export_statement_excel(args.export, args.customer)
        print(f"exported {out}")
    return 0


def _cmd_import(app: AppContainer, args) -> int:
    actor = Actor(id="cli", username=args.actor)
    path = Path(args.file)
    if path.suffix.lower() == ".xlsx":
        count = app.importer.import_products_excel(path, args.shop, actor)
    else:
        count = app.importer.import_products(path.read_text(encoding="utf-8"), args.shop, actor, delimiter=args.delimiter)
    print(f"imported {count}")
    return 0


def _cmd_activity(app: AppContainer, args) -> int:
    for a in app.activity.list_activity(shop_id=args.shop, customer_id=args.customer, limit=args.limit):
        print(f"{a.date}\t{a.action}\t{a.performed_by}\t{a.description}")
    return 0


def _cmd_check(app: AppContainer, args) -> int:
    report = app.operations.run_health_check()
    print(f"sqlite={report.sqlite_integrity} pending={report.pending_mirror_writes} dropped={report.dropped_mirror_writes}")
    for customer_id in report.ledger_mismatches:
        print(f"mismatch {customer_id}")
    return 0 if report.healthy else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crediflow", description="Multi-shop credit ledger")
    parser.add_argument("--db", help="SQLite file (defaults to the per-user data directory)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("shops").set_defaults(func=_cmd_shops)

    p = sub.add_parser("products")
    p.add_argument("--shop")
    p.set_defaults(func=_cmd_products)

    sub.add_parser("customers").set_defaults(func=_cmd_customers)

    p = sub.add_parser("statement")
    p.add_argument("customer")
    p.add_argument("--export", help="write the statement to an .xlsx file")
    p.set_defaults(func=_cmd_statement)

    p = sub.add_parser("import")
    p.add_argument("file")
    p.add_argument("--shop", required=True)
    p.add_argument("--actor", default="cli")
    p.add_argument("--delimiter", default=",")
    p.set_defaults(func=_cmd_import)

    p = sub.add_parser("activity")
    p.add_argument("--shop")
    p.add_argument("--customer")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_cmd_activity)

    sub.add_parser("check").set_defaults(func=_cmd_check)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=settings.log_level, console=True)

    db_path = Path(args.db) if args.db else paths.db_path
    with build_container(db_path, settings) as app:
        try:
            return args.func(app, args)
        except AppError as e:
            print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
            return 2


if __name__ == "__main__":
    sys.exit(main())
