"""
Registry tag retention auditor.

Inventories every repository and tag of a Docker registry with bounded
parallelism and classifies tags with a keep-the-newest-N retention policy.
"""

from retention_audit.retention import ClassificationResult, RetentionPolicy, classify_history, classify_snapshot
from retention_audit.tag_history import AggregationError, TagHistorySnapshot, TagHistoryStore, TagRecord

__version__ = "1.0.0"

__all__ = [
    "AggregationError",
    "ClassificationResult",
    "RetentionPolicy",
    "TagHistorySnapshot",
    "TagHistoryStore",
    "TagRecord",
    "classify_history",
    "classify_snapshot",
]
