from __future__ import annotations

import logging
import sqlite3
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from crediflow.domain.errors import PersistenceError
from crediflow.repositories.records import kind_of

log = logging.getLogger("crediflow.sync")

MIRROR_ERRORS = (PersistenceError, sqlite3.Error, OSError)


@dataclass
class PendingWrite:
    record: object
    backend: Any
    attempts: int = 0


class MirrorSync:
    """Best-effort copy of committed records to one or more durable backends.

    The store commits in memory first and enqueues here; callers are never
    blocked or failed by a slow or broken backend. Failed writes stay queued
    and are retried on later flushes until `max_attempts` is spent.
    """

    def __init__(self, backends: Iterable[Any], max_attempts: int = 5, retry_interval: float = 5.0):
        self.backends = list(backends)
        self.max_attempts = max(1, int(max_attempts))
        self.retry_interval = retry_interval
        self._queue: deque[PendingWrite] = deque()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self.dropped = 0

    def load(self) -> dict[str, list[dict]]:
        for backend in self.backends:
            if not hasattr(backend, "load"):
                continue
            try:
                snapshot = backend.load()
            except MIRROR_ERRORS as e:
                log.warning("mirror_load_failed backend=%s error=%s", getattr(backend, "name", backend), e)
                continue
            if snapshot:
                log.info("mirror_loaded backend=%s", getattr(backend, "name", backend))
                return snapshot
        return {}

    def enqueue(self, record: object) -> None:
        with self._lock:
            for backend in self.backends:
                self._queue.append(PendingWrite(record, backend))
        self._wake.set()

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def flush(self) -> int:
        """Write everything queued so far once. Returns the number of successful writes.

        After a write fails, the rest of the batch for that backend is held
        back behind it, so each backend receives records in commit order.
        Whatever was not written (including the remainder of a batch cut
        short by an unexpected error) goes back to the head of the queue.
        """
        with self._flush_lock:
            with self._lock:
                pending = deque(self._queue)
                self._queue.clear()

            written = 0
            retry: list[PendingWrite] = []
            blocked: set[int] = set()
            try:
                while pending:
                    item = pending[0]
                    if id(item.backend) in blocked:
                        retry.append(pending.popleft())
                        continue
                    try:
                        item.backend.put(item.record)
                    except MIRROR_ERRORS as e:
                        pending.popleft()
                        self._failed(item, e, retry, blocked)
                        continue
                    except Exception as e:
                        pending.popleft()
                        self._failed(item, e, retry, blocked)
                        raise
                    pending.popleft()
                    written += 1
            finally:
                leftover = retry + list(pending)
                if leftover:
                    with self._lock:
                        self._queue.extendleft(reversed(leftover))

            if written:
                log.debug("mirror_flushed written=%s pending=%s", written, self.pending_count())
            return written

    def _failed(self, item: PendingWrite, error: Exception, retry: list[PendingWrite], blocked: set[int]) -> None:
        item.attempts += 1
        name = getattr(item.backend, "name", item.backend)
        if item.attempts >= self.max_attempts:
            self.dropped += 1
            log.error(
                "mirror_write_dropped backend=%s kind=%s id=%s attempts=%s error=%s",
                name, kind_of(item.record), getattr(item.record, "id", "?"), item.attempts, error,
            )
            return
        log.warning(
            "mirror_write_failed backend=%s kind=%s id=%s attempt=%s error=%s",
            name, kind_of(item.record), getattr(item.record, "id", "?"), item.attempts, error,
        )
        retry.append(item)
        blocked.add(id(item.backend))

    # ---------- Background worker ----------
    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stopping.clear()
        self._worker = threading.Thread(target=self._run, name="crediflow-mirror", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        if self._worker is None:
            return
        self._stopping.set()
        self._wake.set()
        self._worker.join(timeout=self.retry_interval * 2)
        self._worker = None

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait(timeout=self.retry_interval)
            self._wake.clear()
            try:
                self.flush()
            except Exception:
                # The failing write was requeued with its attempt counted; keep the worker alive.
                log.exception("mirror_flush_crashed pending=%s", self.pending_count())

    def close(self) -> None:
        self.stop()
        self.flush()
        pending = self.pending_count()
        if pending:
            log.warning("mirror_closed_with_pending pending=%s", pending)
