from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from crediflow.domain.models import ActivityLog, Customer


@dataclass(frozen=True)
class DashboardSummary:
    shop_id: str
    total_sales: float
    transaction_count: int
    total_receivables: float
    top_customer: Optional[str]
    recent_activity: tuple[ActivityLog, ...]


class ReportingService:
    def __init__(self, store, ledger, activity):
        self.store = store
        self.ledger = ledger
        self.activity = activity

    def dashboard(self, shop_id: str, recent: int = 10) -> DashboardSummary:
        """Shop sales figures next to the global (shop-agnostic) receivables."""
        with self.store.reading():
            sales = self.store.list_transactions(shop_id=shop_id)
            customers = self.store.list_customers()
        top = max(customers, key=lambda c: c.total_debt, default=None)
        return DashboardSummary(
            shop_id=shop_id,
            total_sales=sum(t.total_amount for t in sales),
            transaction_count=len(sales),
            total_receivables=sum(c.total_debt for c in customers),
            top_customer=top.name if top is not None and top.total_debt > 0 else None,
            recent_activity=tuple(self.activity.list_activity(shop_id=shop_id, limit=recent)),
        )

    def customers_over_limit(self) -> list[Customer]:
        return [
            c for c in self.store.list_customers()
            if c.credit_limit is not None and c.total_debt > float(c.credit_limit)
        ]

    def export_statement_excel(self, path: str | Path, customer_id: str) -> Path:
        st = self.ledger.compute_statement(customer_id)
        customer = self.store.get_customer(customer_id)
        shop_names = {s.id: s.name for s in self.store.list_shops()}

        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = f"Statement - {customer.name if customer else customer_id}"
        ws["A1"].font = Font(bold=True, size=14)

        rows = [
            ("Total billed", st.total_billed),
            ("Total paid", st.total_paid),
            ("Closing balance", st.closing_balance),
            ("Current debt", st.total_debt),
        ]
        for i, (label, val) in enumerate(rows, start=3):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = val
            money(ws[f"B{i}"])

        r = len(rows) + 4
        ws[f"A{r}"] = "Balance by shop"
        ws[f"A{r}"].font = Font(bold=True)
        for shop_id, bal in st.shop_balances.items():
            if bal == 0:
                continue
            r += 1
            ws[f"A{r}"] = shop_names.get(shop_id, shop_id)
            ws[f"B{r}"] = bal
            money(ws[f"B{r}"])
        ws.column_dimensions["A"].width = 28
        ws.column_dimensions["B"].width = 16

        # -------- 2) Ledger --------
        ws2 = wb.create_sheet("Ledger")
        headers = ["Date", "Type", "Reference", "Shop", "Amount", "Change", "Balance", "Details"]
        ws2.append(headers)
        for c in ws2[1]:
            c.font = Font(bold=True)
        for item in st.items:
            ws2.append([
                item.date,
                item.kind,
                item.id,
                shop_names.get(item.shop_id, item.shop_id),
                item.amount,
                item.balance_change,
                item.running_balance,
                item.description or "",
            ])
        for row in ws2.iter_rows(min_row=2, min_col=5, max_col=7):
            for cell in row:
                money(cell)
        for idx, width in enumerate([26, 10, 20, 24, 14, 14, 14, 30], start=1):
            ws2.column_dimensions[get_column_letter(idx)].width = width

        if st.items:
            tab = Table(displayName="LedgerTable", ref=f"A1:{get_column_letter(len(headers))}{len(st.items) + 1}")
            tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
            ws2.add_table(tab)

        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        wb.save(out)
        return out
