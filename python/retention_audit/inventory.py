"""
Inventory builder.

Walks repositories -> tags -> creation times with bounded parallelism and
fills a TagHistoryStore. One unit of work per repository; tags inside a
repository are fetched one at a time.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from retention_audit.logging_utils import get_logger
from retention_audit.registry_client import NotFoundError, TransportError
from retention_audit.tag_history import TagHistoryStore, TagRecord
from retention_audit.worker_pool import BoundedWorkerPool

logger = get_logger(__name__)


@dataclass
class RepositoryOutcome:
    repository: str
    tags_listed: int = 0
    tags_recorded: int = 0
    tags_skipped: int = 0


@dataclass
class InventorySummary:
    repositories_total: int = 0
    repositories_excluded: int = 0
    repositories_processed: int = 0
    repositories_failed: int = 0
    tags_recorded: int = 0
    tags_skipped: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class InventoryBuilder:
    """Populates a TagHistoryStore from the registry."""

    def __init__(
        self,
        client,
        store: TagHistoryStore,
        excluded: Optional[Iterable[str]] = None,
        max_workers: int = 4,
    ):
        """
        Args:
            client: Registry client exposing list_repositories, list_tags and get_tag_creation_time
            store: Store that receives every successfully dated tag
            excluded: Repository names skipped entirely
            max_workers: Maximum repositories processed at once (<= 1 means sequential)
        """
        self.client = client
        self.store = store
        self.excluded = frozenset(excluded or ())
        self.max_workers = max_workers

    def _inventory_repository(self, repository: str) -> RepositoryOutcome:
        """Unit of work for one repository.

        Records and skips are buffered and committed to the store only once
        every tag has been handled, so a unit that fails partway leaves no
        partial history behind.
        """
        outcome = RepositoryOutcome(repository=repository)

        # A TransportError here propagates so the pool counts the repository as failed
        tags = self.client.list_tags(repository)
        outcome.tags_listed = len(tags)

        records: List[TagRecord] = []
        skipped: List[Tuple[str, str]] = []
        for tag in tags:
            try:
                created_at = self.client.get_tag_creation_time(repository, tag)
            except NotFoundError as e:
                logger.debug(f"Skipping {repository}:{tag}: {e}")
                skipped.append((tag, "no creation history"))
                continue
            except TransportError as e:
                logger.warning(f"Skipping {repository}:{tag}: {e}")
                skipped.append((tag, f"transport error: {e}"))
                continue
            records.append(TagRecord(name=tag, created_at=created_at))

        self.store.ensure_repository(repository)
        for record in records:
            self.store.append(repository, record)
        for tag, reason in skipped:
            self.store.record_skipped(repository, tag, reason)
        outcome.tags_recorded = len(records)
        outcome.tags_skipped = len(skipped)

        logger.debug(
            f"{repository}: {outcome.tags_recorded}/{outcome.tags_listed} tags recorded, "
            f"{outcome.tags_skipped} skipped"
        )
        return outcome

    def build(self, repositories: Optional[Sequence[str]] = None) -> InventorySummary:
        """Inventory every non-excluded repository and wait for all of them.

        Args:
            repositories: Repositories to walk; defaults to the registry catalog

        Raises:
            TransportError: If the catalog itself cannot be listed
        """
        if repositories is None:
            try:
                repositories = self.client.list_repositories()
            except TransportError as e:
                logger.error(f"Failed to list registry catalog: {e}")
                raise

        summary = InventorySummary(repositories_total=len(repositories))
        selected = [repo for repo in repositories if repo not in self.excluded]
        summary.repositories_excluded = summary.repositories_total - len(selected)
        if summary.repositories_excluded:
            logger.info(f"Excluding {summary.repositories_excluded} repositories from the audit")

        logger.info(f"Inventorying {len(selected)} repositories (using {max(1, self.max_workers)} workers)...")
        pool = BoundedWorkerPool(self.max_workers, name="inventory")
        result = pool.run(self._inventory_repository, selected)

        for _, outcome in result.completed:
            summary.repositories_processed += 1
            summary.tags_recorded += outcome.tags_recorded
            summary.tags_skipped += outcome.tags_skipped
        summary.repositories_failed = len(result.failed)

        logger.info(
            f"Inventory complete: {summary.repositories_processed} repositories, "
            f"{summary.tags_recorded} tags recorded, {summary.tags_skipped} skipped, "
            f"{summary.repositories_failed} repositories failed"
        )
        return summary
