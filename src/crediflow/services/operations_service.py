from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    sqlite_integrity: str
    db_size_bytes: int
    pending_mirror_writes: int
    dropped_mirror_writes: int
    ledger_mismatches: tuple[str, ...]
    generated_at: str

    @property
    def healthy(self) -> bool:
        return self.sqlite_integrity == "ok" and not self.ledger_mismatches


class OperationsService:
    def __init__(self, repo, sync, ledger, db_path: Path | str):
        self.repo = repo
        self.sync = sync
        self.ledger = ledger
        self.db_path = Path(db_path)

    def run_health_check(self) -> HealthReport:
        integrity = self.repo.integrity_check()
        size = self.db_path.stat().st_size if self.db_path.exists() else 0
        mismatches = tuple(m.customer_id for m in self.ledger.reconcile())
        report = HealthReport(
            sqlite_integrity=integrity,
            db_size_bytes=size,
            pending_mirror_writes=self.sync.pending_count(),
            dropped_mirror_writes=self.sync.dropped,
            ledger_mismatches=mismatches,
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )
        if not report.healthy:
            log.warning("health_check_failed integrity=%s mismatches=%s", integrity, len(mismatches))
        return report
