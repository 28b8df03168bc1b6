"""In-memory dispatch ledger guaranteeing one emission per dedupe key per day."""

from __future__ import annotations

import threading
from datetime import date


class DispatchLedger:
    """Records which dedupe keys were already claimed on a given day."""

    def __init__(self) -> None:
        self._claims: set[tuple[str, date]] = set()
        self._lock = threading.Lock()

    def claim(self, dedupe_key: str, day: date) -> bool:
        """Claim ``dedupe_key`` for ``day``. Only the first claim returns True."""
        with self._lock:
            if (dedupe_key, day) in self._claims:
                return False
            self._claims.add((dedupe_key, day))
            return True

    def release(self, dedupe_key: str, day: date) -> None:
        with self._lock:
            self._claims.discard((dedupe_key, day))

    def is_claimed(self, dedupe_key: str, day: date) -> bool:
        return (dedupe_key, day) in self._claims

    def purge_before(self, day: date) -> int:
        """Drop claims older than ``day``; returns how many were removed."""
        with self._lock:
            stale = {claim for claim in self._claims if claim[1] < day}
            self._claims -= stale
            return len(stale)

    @property
    def count(self) -> int:
        return len(self._claims)
