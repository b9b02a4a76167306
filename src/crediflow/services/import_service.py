from __future__ import annotations

import csv
import io
import logging
import math
import uuid
from pathlib import Path
from typing import Iterable, Optional, Sequence

from openpyxl import load_workbook

from crediflow.domain.errors import ValidationError
from crediflow.domain.models import Actor, Product

log = logging.getLogger(__name__)


def split_rows(text: str, delimiter: str = ",") -> list[list[str]]:
    """Split delimited text into trimmed fields.

    Quoted fields may contain the delimiter; a doubled quote inside quotes
    is a literal quote.
    """
    reader = csv.reader(io.StringIO(text), delimiter=delimiter, skipinitialspace=True)
    return [[field.strip() for field in row] for row in reader]


def has_header(first_row: Sequence[object]) -> bool:
    line = " ".join("" if v is None else str(v) for v in first_row).lower()
    return "name" in line and "price" in line


def _number(value: object) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


class ImportService:
    """Bulk product load from delimited text or an .xlsx sheet.

    Columns: Name | Category | RetailPrice | WholesalePrice | Stock | Description?
    Rows that fail validation are skipped, never raised.
    """

    def __init__(self, inventory):
        self.inventory = inventory

    def parse_rows(self, rows: Iterable[Sequence[object]], shop_id: str) -> tuple[list[Product], int]:
        rows = [list(r) for r in rows]
        if rows and has_header(rows[0]):
            rows = rows[1:]

        batch = uuid.uuid4().hex[:8]
        products: list[Product] = []
        skipped = 0
        for idx, row in enumerate(rows, start=1):
            cells = ["" if v is None else str(v).strip() for v in row]
            if not any(cells):
                continue
            if len(cells) < 5:
                skipped += 1
                continue

            name, category, retail_raw, wholesale_raw, stock_raw = cells[:5]
            description = cells[5] if len(cells) > 5 else ""
            retail = _number(retail_raw)
            if not name or retail is None:
                skipped += 1
                continue
            wholesale = _number(wholesale_raw)
            stock = _number(stock_raw)

            try:
                products.append(
                    self.inventory.build_product(
                        shop_id=shop_id,
                        name=name,
                        category=category or "Uncategorized",
                        retail_price=retail,
                        wholesale_price=wholesale if wholesale is not None else retail,
                        stock=int(stock) if stock is not None else 0,
                        description=description,
                        product_id=f"CSV-{batch}-{idx}",
                    )
                )
            except ValidationError as e:
                log.warning("Import skipped row %s: %s", idx, e)
                skipped += 1
        return products, skipped

    def import_products(self, text: str, shop_id: str, actor: Optional[Actor] = None, delimiter: str = ",") -> int:
        products, skipped = self.parse_rows(split_rows(text, delimiter), shop_id)
        return self._commit(products, skipped, shop_id, actor)

    def import_products_excel(self, path: str | Path, shop_id: str, actor: Optional[Actor] = None) -> int:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.active
            rows = [list(r) for r in ws.iter_rows(values_only=True)]
        finally:
            wb.close()
        products, skipped = self.parse_rows(rows, shop_id)
        return self._commit(products, skipped, shop_id, actor)

    def _commit(self, products: list[Product], skipped: int, shop_id: str, actor: Optional[Actor]) -> int:
        if not products:
            log.info("import_empty shop=%s skipped=%s", shop_id, skipped)
            return 0
        count = self.inventory.add_products(products, actor)
        log.info("products_imported shop=%s imported=%s skipped=%s", shop_id, count, skipped)
        return count
