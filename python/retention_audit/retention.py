"""
Retention classification.

Splits each repository's tag history into the newest ``retain_count`` tags to
keep and the older remainder to delete. Pure functions over immutable input;
nothing here touches shared state.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from retention_audit.config_manager import ConfigurationError
from retention_audit.tag_history import TagHistorySnapshot, TagRecord


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep the ``retain_count`` most recent tags of every repository."""
    retain_count: int

    def __post_init__(self):
        if isinstance(self.retain_count, bool) or not isinstance(self.retain_count, int):
            raise ConfigurationError(f"retain_count must be an integer, got: {self.retain_count!r}")
        if self.retain_count <= 0:
            raise ConfigurationError(f"retain_count must be a positive integer, got: {self.retain_count}")


@dataclass(frozen=True)
class ClassificationResult:
    repository: str
    retain: Tuple[TagRecord, ...]
    delete: Tuple[TagRecord, ...]

    def to_dict(self) -> Dict:
        return {
            "repository": self.repository,
            "retain": [tag.to_dict() for tag in self.retain],
            "delete": [tag.to_dict() for tag in self.delete],
        }


def sort_chronologically(history: Sequence[TagRecord]) -> List[TagRecord]:
    """Oldest first. Equal timestamps keep their input order."""
    return sorted(history, key=lambda tag: tag.created_at)


def classify_history(repository: str, history: Sequence[TagRecord], policy: RetentionPolicy) -> ClassificationResult:
    """Partition one repository's history into retain and delete sets."""
    ordered = sort_chronologically(history)
    cutoff = max(0, len(ordered) - policy.retain_count)
    return ClassificationResult(
        repository=repository,
        retain=tuple(ordered[cutoff:]),
        delete=tuple(ordered[:cutoff]),
    )


def classify_snapshot(snapshot: TagHistorySnapshot, policy: RetentionPolicy) -> List[ClassificationResult]:
    """Classify every repository in the snapshot, ordered by repository name."""
    return [
        classify_history(repository, snapshot.history(repository), policy)
        for repository in snapshot.repositories()
    ]
