"""Hash-chained audit log for case process mutations.

Every stage change, deadline completion and extension is appended as one
JSONL line. Each line's hash covers the previous line's hash, so editing
or removing an entry breaks verification for everything after it.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from karin.core.config import AuditConfig
from karin.core.types import AuditEvent

logger = logging.getLogger(__name__)

_GENESIS_SEED = b"karin-genesis"


class AuditEntry:
    """An AuditEvent plus its position in the hash chain."""

    def __init__(self, event: AuditEvent, previous_hash: str, entry_hash: str) -> None:
        self.event = event
        self.previous_hash = previous_hash
        self.entry_hash = entry_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "previous_hash": self.previous_hash,
            "entry_hash": self.entry_hash,
            "event": json.loads(self.event.model_dump_json()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        return cls(
            event=AuditEvent(**data["event"]),
            previous_hash=data["previous_hash"],
            entry_hash=data["entry_hash"],
        )


def _parse_bound(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AuditLogger:
    """Append-only JSONL audit log with a tamper-evident hash chain.

    Args:
        config: AuditConfig instance. Defaults to AuditConfig() which reads
            from environment variables.
        log_file: Log file name inside ``config.log_dir``.
    """

    def __init__(
        self,
        config: AuditConfig | None = None,
        log_file: str = "audit.jsonl",
    ) -> None:
        self._config = config or AuditConfig()
        self._algorithm = self._config.hash_algorithm
        self._log_dir = Path(self._config.log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._log_path = self._log_dir / log_file
        self._last_hash = self._genesis_hash()

        if self._log_path.exists():
            for entry in self._entries():
                self._last_hash = entry.entry_hash

    def _digest(self, payload: bytes) -> str:
        return hashlib.new(self._algorithm, payload).hexdigest()

    def _genesis_hash(self) -> str:
        return self._digest(_GENESIS_SEED)

    def _chain_hash(self, previous_hash: str, event_json: str) -> str:
        return self._digest((previous_hash + event_json).encode("utf-8"))

    def _entries(self) -> Iterator[AuditEntry]:
        if not self._log_path.exists():
            return
        with open(self._log_path) as fh:
            for line in fh:
                stripped = line.strip()
                if stripped:
                    yield AuditEntry.from_dict(json.loads(stripped))

    def log(self, event: AuditEvent) -> AuditEntry:
        """Append ``event`` to the chain and return the written entry."""
        entry = AuditEntry(
            event=event,
            previous_hash=self._last_hash,
            entry_hash=self._chain_hash(self._last_hash, event.model_dump_json()),
        )
        with open(self._log_path, "a") as fh:
            fh.write(json.dumps(entry.to_dict()) + "\n")

        self._last_hash = entry.entry_hash
        logger.debug("Audit %s %s by %s", event.action, event.resource, event.actor)
        return entry

    def verify_chain(self) -> bool:
        """Recompute every hash; False as soon as one link does not match."""
        previous_hash = self._genesis_hash()
        for entry in self._entries():
            if entry.previous_hash != previous_hash:
                return False
            expected = self._chain_hash(previous_hash, entry.event.model_dump_json())
            if entry.entry_hash != expected:
                return False
            previous_hash = entry.entry_hash
        return True

    def query(self, filters: dict[str, Any] | None = None) -> list[AuditEvent]:
        """Return events matching every given filter.

        Supported keys: ``tenant_id``, ``actor``, ``action``, ``resource``
        (exact match), and ``after`` / ``before`` (ISO datetimes, exclusive).
        """
        filters = filters or {}
        exact = {
            key: filters[key]
            for key in ("tenant_id", "actor", "action", "resource")
            if key in filters
        }
        after = _parse_bound(filters["after"]) if "after" in filters else None
        before = _parse_bound(filters["before"]) if "before" in filters else None

        results = []
        for entry in self._entries():
            event = entry.event
            if any(getattr(event, key) != value for key, value in exact.items()):
                continue
            if after and event.timestamp <= after:
                continue
            if before and event.timestamp >= before:
                continue
            results.append(event)
        return results

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def last_hash(self) -> str:
        return self._last_hash
