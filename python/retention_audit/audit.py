"""
Registry retention audit.

Ties the pieces together: registry client -> inventory builder ->
tag history snapshot -> retention classifier -> reports.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from retention_audit.inventory import InventoryBuilder, InventorySummary
from retention_audit.logging_utils import get_logger
from retention_audit.registry_client import RegistryClient
from retention_audit.report_utils import (
    build_deletion_candidates,
    build_inventory_report,
    build_retention_plan,
    build_summary_rows,
    format_summary_table,
    save_json,
    save_table_and_json,
)
from retention_audit.retention import ClassificationResult, RetentionPolicy, classify_snapshot
from retention_audit.tag_history import TagHistorySnapshot, TagHistoryStore


@dataclass
class AuditResult:
    summary: InventorySummary
    snapshot: TagHistorySnapshot
    results: List[ClassificationResult]
    report_paths: Dict[str, str] = field(default_factory=dict)

    @property
    def delete_count(self) -> int:
        return sum(len(result.delete) for result in self.results)

    @property
    def retain_count(self) -> int:
        return sum(len(result.retain) for result in self.results)


class RetentionAuditor:
    """Runs one audit pass against a registry."""

    def __init__(
        self,
        config_manager,
        client=None,
        retain_count: Optional[int] = None,
        max_workers: Optional[int] = None,
        excluded: Optional[Sequence[str]] = None,
    ):
        """Initialize the auditor

        Args:
            config_manager: ConfigManager providing registry, retention and report settings
            client: Registry client (default: RegistryClient built from config_manager)
            retain_count: Override for retention.retain_count
            max_workers: Override for analysis.max_workers
            excluded: Override for retention.exclude

        Raises:
            ConfigurationError: If the retention count is not a positive integer
        """
        self.config_manager = config_manager
        self.logger = get_logger(self.__class__.__name__)

        # Validated before any registry work happens
        self.policy = RetentionPolicy(
            retain_count if retain_count is not None else config_manager.get_retain_count()
        )
        self.max_workers = max_workers if max_workers is not None else config_manager.get_max_workers()
        self.excluded = list(excluded) if excluded is not None else config_manager.get_excluded_repositories()
        self.registry_url = config_manager.get_registry_url()
        self.client = client or RegistryClient(config_manager)

    def collect(self, repositories: Optional[Sequence[str]] = None) -> Tuple[InventorySummary, TagHistorySnapshot]:
        """Build the tag inventory and freeze it."""
        store = TagHistoryStore()
        builder = InventoryBuilder(self.client, store, excluded=self.excluded, max_workers=self.max_workers)
        summary = builder.build(repositories)
        return summary, store.snapshot()

    def classify(self, snapshot: TagHistorySnapshot) -> List[ClassificationResult]:
        results = classify_snapshot(snapshot, self.policy)
        self.logger.info(
            f"Retention plan (keep {self.policy.retain_count} per repository): "
            f"{sum(len(r.retain) for r in results)} tags retained, "
            f"{sum(len(r.delete) for r in results)} tags marked for deletion"
        )
        return results

    def write_reports(
        self,
        snapshot: TagHistorySnapshot,
        results: Sequence[ClassificationResult],
        report_format: Optional[str] = None,
        timestamp: bool = True,
    ) -> Dict[str, str]:
        """Save the inventory, retention plan, deletion candidates and summary table."""
        cm = self.config_manager
        fmt = report_format or cm.get_report_format()

        paths = {
            "inventory": save_json(
                cm.get_inventory_report_path(),
                build_inventory_report(snapshot, self.registry_url, fmt),
                timestamp=timestamp,
            ),
            "retention_plan": save_json(
                cm.get_retention_plan_path(), build_retention_plan(results), timestamp=timestamp
            ),
            "deletion_candidates": save_json(
                cm.get_deletion_candidates_path(),
                build_deletion_candidates(results, self.registry_url),
                timestamp=timestamp,
            ),
        }

        rows = build_summary_rows(results)
        paths["summary"] = save_table_and_json(
            cm.get_summary_report_path(), format_summary_table(rows), rows, timestamp=timestamp
        )
        return paths

    def run(
        self,
        repositories: Optional[Sequence[str]] = None,
        write_reports: bool = True,
        report_format: Optional[str] = None,
        timestamp: bool = True,
    ) -> AuditResult:
        """Inventory the registry, classify every repository and optionally save reports."""
        self.logger.info("=" * 60)
        self.logger.info(f"Auditing registry {self.registry_url}")
        self.logger.info(
            f"  retain={self.policy.retain_count} workers={self.max_workers} excluded={len(self.excluded)}"
        )
        self.logger.info("=" * 60)

        summary, snapshot = self.collect(repositories)
        results = self.classify(snapshot)

        result = AuditResult(summary=summary, snapshot=snapshot, results=results)
        if write_reports:
            result.report_paths = self.write_reports(snapshot, results, report_format, timestamp)
        return result
