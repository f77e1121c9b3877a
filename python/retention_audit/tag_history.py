"""
Tag history store.

Holds the per-repository tag histories built by concurrent inventory workers.
All mutation goes through ``append`` and ``record_skipped``, which are
serialized by a single lock. ``snapshot`` freezes the store and hands out an
immutable view for classification.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple


class AggregationError(Exception):
    """Store invariant violated (e.g. a write after the store was frozen)."""


@dataclass(frozen=True)
class TagRecord:
    """A tag and the creation time declared by its manifest."""
    name: str
    created_at: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "createdAt": self.created_at.isoformat()}


@dataclass(frozen=True)
class SkippedTag:
    """A tag left out of the audit and why."""
    repository: str
    tag: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"repository": self.repository, "tag": self.tag, "reason": self.reason}


TagHistory = Tuple[TagRecord, ...]


@dataclass(frozen=True)
class TagHistorySnapshot:
    """Read-only view of every repository's history at the end of inventory."""
    histories: Mapping[str, TagHistory]
    skipped: Tuple[SkippedTag, ...] = ()

    def __len__(self) -> int:
        return len(self.histories)

    def repositories(self) -> List[str]:
        return sorted(self.histories)

    def history(self, repository: str) -> TagHistory:
        return self.histories.get(repository, ())

    @property
    def tag_count(self) -> int:
        return sum(len(history) for history in self.histories.values())


class TagHistoryStore:
    """Concurrency-safe mapping of repository -> ordered tag records."""

    def __init__(self):
        self._lock = threading.Lock()
        self._histories: Dict[str, List[TagRecord]] = {}
        self._skipped: List[SkippedTag] = []
        self._frozen = False

    def _check_writable(self) -> None:
        if self._frozen:
            raise AggregationError("Tag history store is frozen; no appends are allowed after snapshot()")

    def append(self, repository: str, tag: TagRecord) -> None:
        """Add a tag to a repository's history, creating the history if absent."""
        with self._lock:
            self._check_writable()
            self._histories.setdefault(repository, []).append(tag)

    def ensure_repository(self, repository: str) -> None:
        """Register a repository that was inventoried, even if it ends up with no tags."""
        with self._lock:
            self._check_writable()
            self._histories.setdefault(repository, [])

    def record_skipped(self, repository: str, tag: str, reason: str) -> None:
        with self._lock:
            self._check_writable()
            self._skipped.append(SkippedTag(repository=repository, tag=tag, reason=reason))

    def snapshot(self) -> TagHistorySnapshot:
        """Freeze the store and return an immutable view of all histories.

        Only call once every producer has finished.
        """
        with self._lock:
            self._frozen = True
            histories = {repository: tuple(records) for repository, records in self._histories.items()}
            return TagHistorySnapshot(histories=MappingProxyType(histories), skipped=tuple(self._skipped))

    @property
    def repository_count(self) -> int:
        with self._lock:
            return len(self._histories)

    @property
    def tag_count(self) -> int:
        with self._lock:
            return sum(len(records) for records in self._histories.values())

    @property
    def skipped_count(self) -> int:
        with self._lock:
            return len(self._skipped)
