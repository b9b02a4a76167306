from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from crediflow.domain.errors import PersistenceError
from crediflow.repositories.records import KINDS, kind_of, to_payload

log = logging.getLogger("crediflow.sync")


class HttpMirror:
    """Remote mirror speaking a small REST dialect.

    PUT {base_url}/{kind}/{id} with the record as JSON body.
    GET {base_url}/{kind} returns a JSON list of records.
    """

    name = "http"

    def __init__(self, base_url: str, token: Optional[str] = None, session: requests.Session | None = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def put(self, record: object) -> None:
        kind = kind_of(record)
        payload = to_payload(record)
        url = f"{self.base_url}/{kind}/{payload['id']}"
        try:
            r = self.session.put(url, json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise PersistenceError(f"Remote write failed for {kind}/{payload['id']}: {e}") from e

    def load(self) -> dict[str, list[dict[str, Any]]]:
        snapshot: dict[str, list[dict[str, Any]]] = {}
        for kind in KINDS:
            try:
                r = self.session.get(f"{self.base_url}/{kind}", timeout=self.timeout)
                r.raise_for_status()
                data = r.json()
            except (requests.RequestException, ValueError) as e:
                raise PersistenceError(f"Remote read failed for {kind}: {e}") from e
            if not isinstance(data, list):
                raise PersistenceError(f"Remote read for {kind} returned {type(data).__name__}, expected list")
            snapshot[kind] = data
        if not any(snapshot.values()):
            return {}
        return snapshot
