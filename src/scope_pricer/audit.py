"""Audit Recorder - Phase 7 of the Pricing Engine.

Persists an immutable snapshot of every estimation run. Each estimate call
issues exactly one append; a failed append fails the whole call.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from .errors import AuditWriteError
from .schema import AuditEntry, PriceEstimate, ScopeRecord

logger = logging.getLogger(__name__)


class AuditStore(ABC):
    """Append-only store for audit entries."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        """Persist one entry. Must raise on failure."""

    @abstractmethod
    def __iter__(self) -> Iterator[AuditEntry]:
        """Iterate entries in insertion order."""

    def get(self, entry_id: str) -> Optional[AuditEntry]:
        """Return the entry with this id, if present."""
        for entry in self:
            if entry.entry_id == entry_id:
                return entry
        return None

    def for_scope(self, scope_id: str) -> list[AuditEntry]:
        """Return every entry recorded for a scope."""
        return [entry for entry in self if entry.scope_id == scope_id]


class InMemoryAuditStore(AuditStore):
    """Audit store backed by a list. Used in tests and one-off CLI runs."""

    def __init__(self):
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def __iter__(self) -> Iterator[AuditEntry]:
        with self._lock:
            snapshot = list(self._entries)
        return iter(snapshot)

    def __len__(self) -> int:
        return len(self._entries)


class JsonlAuditStore(AuditStore):
    """Audit store writing one JSON document per line.

    The file is only ever appended to; retention belongs to whoever owns
    the file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        line = entry.model_dump_json() + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line)
                f.flush()

    def __iter__(self) -> Iterator[AuditEntry]:
        if not self.path.exists():
            return
        with open(self.path, 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    yield AuditEntry.model_validate_json(line)
                except ValidationError as e:
                    raise ValueError(f"{self.path}:{line_no}: invalid audit entry: {e}") from e


@dataclass(frozen=True)
class EstimationRun:
    """Everything one estimate call produced, ready to be audited."""
    actor: str
    scope: ScopeRecord
    estimate: PriceEstimate
    rules_version: str
    config_fingerprint: str


class AuditRecorder:
    """Builds audit entries from runs and appends them to a store."""

    def __init__(self, store: AuditStore):
        self.store = store

    def build_entry(self, run: EstimationRun) -> AuditEntry:
        """Snapshot a run into an immutable audit entry."""
        estimate = run.estimate
        return AuditEntry(
            entry_id=uuid.uuid4().hex,
            actor=run.actor,
            recorded_at=datetime.now(timezone.utc),
            reference_time=estimate.reference_time,
            scope_id=run.scope.scope_id,
            scope=run.scope,
            effort_units=estimate.effort_units,
            field_aggregations=estimate.field_aggregations,
            twu=estimate.twu,
            mp=estimate.mp,
            bpv=estimate.bpv,
            raw_tiers=estimate.raw_tiers,
            final_tiers=estimate.final_tiers,
            difficulty_factors=estimate.difficulty_factors,
            capping_flags=estimate.capping,
            breakdown=estimate.breakdown,
            rules_version=run.rules_version,
            config_fingerprint=run.config_fingerprint,
        )

    def record(self, run: EstimationRun) -> str:
        """Persist a run and return its audit entry id.

        Raises:
            AuditWriteError: If the store rejects the write.
        """
        entry = self.build_entry(run)
        try:
            self.store.append(entry)
        except Exception as e:
            logger.error("Audit write failed for scope %s: %s", run.scope.scope_id, e)
            raise AuditWriteError(f"Could not persist audit entry: {e}", stage="recording") from e

        logger.info("Recorded audit entry %s for scope %s", entry.entry_id, run.scope.scope_id)
        return entry.entry_id
