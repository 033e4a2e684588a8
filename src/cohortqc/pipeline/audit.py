"""Append-only audit log of every stage's effect on every cohort.

The log is the sole basis for reproducibility checks: two runs over the same
inputs with the same stage list must produce equal logs. Entries are stored
per cohort, each cohort behind its own lock, so cohort workers running in
parallel never interleave one cohort's entries.
"""

import json
import logging
import math
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Hashable, List, Optional, Tuple

import pandas as pd

__all__ = ['AuditEntry', 'AuditLog']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    """One stage applied to one cohort.

    ``metric``, ``policy`` and ``cutoff`` are None for stages that have no
    such notion (e.g. a tag filter has no metric or cutoff). A threshold stage
    on a cohort without finite metric values also records ``cutoff=None``.
    """
    cohort: str
    stage: str
    metric: Optional[str]
    policy: Optional[str]
    cutoff: Optional[float]
    fallback_used: bool
    before_count: int
    after_count: int
    removed_ids: Tuple[Hashable, ...]

    @property
    def removed_count(self) -> int:
        return len(self.removed_ids)

    def to_dict(self) -> dict:
        record = asdict(self)
        record["removed_ids"] = list(self.removed_ids)
        record["removed_count"] = self.removed_count
        return record

    @classmethod
    def from_dict(cls, record: dict) -> "AuditEntry":
        cutoff = record.get("cutoff")
        return cls(
            cohort=record["cohort"],
            stage=record["stage"],
            metric=record.get("metric"),
            policy=record.get("policy"),
            cutoff=None if cutoff is None else float(cutoff),
            fallback_used=bool(record["fallback_used"]),
            before_count=int(record["before_count"]),
            after_count=int(record["after_count"]),
            removed_ids=tuple(record["removed_ids"]),
        )


class AuditLog:
    """Thread-safe, append-only record of stage effects.

    Typical usage::

        log = AuditLog()
        log.append(entry)
        log.entries_for("control")
        log.total_removed("control")
        log.to_frame()
    """

    def __init__(self):
        self._entries: Dict[str, List[AuditEntry]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, cohort: str) -> threading.Lock:
        with self._registry_lock:
            if cohort not in self._locks:
                self._locks[cohort] = threading.Lock()
                self._entries[cohort] = []
            return self._locks[cohort]

    def append(self, entry: AuditEntry) -> None:
        if not isinstance(entry, AuditEntry):
            raise TypeError(f"AuditLog only accepts AuditEntry, got {type(entry).__name__}")
        with self._lock_for(entry.cohort):
            self._entries[entry.cohort].append(entry)
        logger.debug("Audit: %s/%s %d -> %d", entry.cohort, entry.stage,
                     entry.before_count, entry.after_count)

    def cohorts(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._entries)

    def entries_for(self, cohort: str) -> Tuple[AuditEntry, ...]:
        """Ordered entries of ``cohort`` (empty if the cohort never ran)."""
        with self._registry_lock:
            lock = self._locks.get(cohort)
        if lock is None:
            return ()
        with lock:
            return tuple(self._entries[cohort])

    def total_removed(self, cohort: str) -> int:
        return sum(e.removed_count for e in self.entries_for(cohort))

    def summary(self) -> Dict[str, dict]:
        """Per-cohort start count, final count and removals by stage."""
        result = {}
        for cohort in self.cohorts():
            entries = self.entries_for(cohort)
            if not entries:
                continue
            result[cohort] = {
                "start_count": entries[0].before_count,
                "final_count": entries[-1].after_count,
                "total_removed": sum(e.removed_count for e in entries),
                "removed_by_stage": {e.stage: e.removed_count for e in entries},
                "fallback_stages": [e.stage for e in entries if e.fallback_used],
            }
        return result

    def __len__(self):
        return sum(len(self.entries_for(c)) for c in self.cohorts())

    def __eq__(self, other):
        if not isinstance(other, AuditLog):
            return NotImplemented
        if self.cohorts() != other.cohorts():
            return False
        return all(self.entries_for(c) == other.entries_for(c) for c in self.cohorts())

    __hash__ = None

    def to_frame(self) -> pd.DataFrame:
        """One row per entry, cohorts in name order, stages in run order."""
        rows = [e.to_dict() for c in self.cohorts() for e in self.entries_for(c)]
        columns = ["cohort", "stage", "metric", "policy", "cutoff", "fallback_used",
                   "before_count", "after_count", "removed_count", "removed_ids"]
        return pd.DataFrame(rows, columns=columns)

    def to_json(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {c: [_jsonable(e.to_dict()) for e in self.entries_for(c)] for c in self.cohorts()}
        with open(path, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        logger.info("Audit log written: %s (%d entries)", path, len(self))
        return path

    @classmethod
    def from_json(cls, path) -> "AuditLog":
        with open(path) as f:
            payload = json.load(f)
        log = cls()
        for cohort, records in payload.items():
            for record in records:
                log.append(AuditEntry.from_dict(record))
        return log

    def __repr__(self):
        return f"AuditLog(cohorts={self.cohorts()}, entries={len(self)})"


def _jsonable(record: dict) -> dict:
    cutoff = record.get("cutoff")
    if cutoff is not None and not math.isfinite(cutoff):
        record["cutoff"] = None
    return record
