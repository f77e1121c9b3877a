"""Unit tests for retention_audit/inventory.py"""

import sys
from pathlib import Path

import pytest

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from conftest import FakeRegistryClient, make_response, make_session, schema1_manifest, ts
from retention_audit.inventory import InventoryBuilder
from retention_audit.registry_client import NotFoundError, RegistryClient, TransportError
from retention_audit.tag_history import TagHistoryStore


def build(repositories, max_workers=4, excluded=None, **client_kwargs):
    client = FakeRegistryClient(repositories, **client_kwargs)
    store = TagHistoryStore()
    summary = InventoryBuilder(client, store, excluded=excluded, max_workers=max_workers).build()
    return client, summary, store.snapshot()


def tag_names(snapshot, repository):
    return sorted(t.name for t in snapshot.history(repository))


class TestInventoryBuilder:
    """Tests for InventoryBuilder.build"""

    def test_records_every_dated_tag(self):
        client, summary, snapshot = build({
            "app": {"v1": ts(1), "v2": ts(2), "v3": ts(3)},
            "empty-repo": {},
        })

        assert snapshot.repositories() == ["app", "empty-repo"]
        assert tag_names(snapshot, "app") == ["v1", "v2", "v3"]
        assert snapshot.history("empty-repo") == ()
        assert summary.repositories_processed == 2
        assert summary.tags_recorded == 3
        assert summary.repositories_failed == 0

    def test_creation_times_come_from_registry(self):
        _, _, snapshot = build({"app": {"v1": ts(42)}})
        assert snapshot.history("app")[0].created_at == ts(42)

    def test_tag_without_history_is_skipped_not_defaulted(self):
        """A tag with no creation history is never given a substitute timestamp"""
        _, summary, snapshot = build({
            "app": {"good": ts(1), "broken": NotFoundError("no history")},
        })

        assert tag_names(snapshot, "app") == ["good"]
        assert [(s.repository, s.tag, s.reason) for s in snapshot.skipped] == [
            ("app", "broken", "no creation history")
        ]
        assert summary.tags_skipped == 1

    def test_transport_error_on_tag_skips_only_that_tag(self):
        _, summary, snapshot = build({
            "app": {"ok": ts(1), "flaky": TransportError("GET failed", status_code=503)},
        })

        assert tag_names(snapshot, "app") == ["ok"]
        assert snapshot.skipped[0].tag == "flaky"
        assert snapshot.skipped[0].reason.startswith("transport error")
        assert summary.repositories_failed == 0

    def test_tag_listing_failure_fails_repository(self):
        _, summary, snapshot = build({
            "good": {"v1": ts(1)},
            "bad": TransportError("GET failed", status_code=500),
        })

        assert snapshot.repositories() == ["good"]
        assert summary.repositories_failed == 1
        assert summary.repositories_processed == 1

    def test_excluded_repositories_are_not_touched(self):
        client, summary, snapshot = build(
            {"keep": {"v1": ts(1)}, "skip-me": {"v1": ts(1)}},
            excluded=["skip-me"],
        )

        assert snapshot.repositories() == ["keep"]
        assert all(repo != "skip-me" for repo, _ in client.tag_calls)
        assert summary.repositories_total == 2
        assert summary.repositories_excluded == 1

    def test_explicit_repository_list_bypasses_catalog(self):
        client = FakeRegistryClient(
            {"a": {"v1": ts(1)}, "b": {"v1": ts(1)}},
            catalog_error=TransportError("catalog down"),
        )
        store = TagHistoryStore()

        summary = InventoryBuilder(client, store, max_workers=2).build(repositories=["a"])

        assert store.snapshot().repositories() == ["a"]
        assert summary.repositories_total == 1

    def test_unexpected_error_drops_whole_repository(self):
        """A unit that fails partway leaves no partial history to classify"""
        _, summary, snapshot = build(
            {
                "good": {"v1": ts(1)},
                "half": {"a": ts(1), "b": RuntimeError("boom"), "c": ts(3)},
            },
            max_workers=1,
        )

        assert snapshot.repositories() == ["good"]
        assert snapshot.skipped == ()
        assert summary.repositories_failed == 1
        assert summary.tags_recorded == snapshot.tag_count == 1

    def test_catalog_failure_is_raised(self):
        client = FakeRegistryClient({}, catalog_error=TransportError("catalog down", status_code=500))

        with pytest.raises(TransportError):
            InventoryBuilder(client, TagHistoryStore()).build()


class TestInventoryConcurrency:
    """Concurrency bound and result equivalence across worker counts"""

    @staticmethod
    def registry(repo_count=12, tags_per_repo=15):
        return {
            f"repo-{r}": {f"t{i}": ts(r * 100 + i) for i in range(tags_per_repo)}
            for r in range(repo_count)
        }

    @pytest.mark.parametrize("workers", [1, 3, 12])
    def test_same_result_for_any_worker_count(self, workers):
        repositories = self.registry()

        _, summary, snapshot = build(repositories, max_workers=workers)

        assert snapshot.repositories() == sorted(repositories)
        for repo, tags in repositories.items():
            history = snapshot.history(repo)
            assert sorted(t.name for t in history) == sorted(tags)
            assert len(history) == len(tags)
        assert summary.tags_recorded == 12 * 15

    @pytest.mark.parametrize("workers", [1, 2, 5])
    def test_in_flight_repositories_bounded_by_workers(self, workers):
        client, _, _ = build(self.registry(repo_count=10, tags_per_repo=1), max_workers=workers, delay=0.02)
        assert client.max_active <= workers

    def test_sequential_mode_processes_one_repository_at_a_time(self):
        client, _, _ = build(self.registry(repo_count=5, tags_per_repo=1), max_workers=0, delay=0.01)
        assert client.max_active == 1


class TestInventoryWithRegistryClient:
    """Inventory over the HTTP client with a malformed manifest in the middle"""

    @pytest.mark.parametrize("workers", [1, 4])
    def test_malformed_schema1_manifest_skips_only_that_tag(self, mock_config_manager, workers):
        session = make_session({
            "_catalog": make_response(payload={"repositories": ["app"]}),
            "app/tags/list": make_response(payload={"name": "app", "tags": ["a", "b", "c"]}),
            "app/manifests/a": make_response(payload=schema1_manifest("2023-01-01T00:00:00Z")),
            "app/manifests/b": make_response(payload={
                "schemaVersion": 1,
                "history": [{"v1Compatibility": {"created": "2023-01-02T00:00:00Z"}}],
            }),
            "app/manifests/c": make_response(payload=schema1_manifest("2023-01-03T00:00:00Z")),
        })
        client = RegistryClient(mock_config_manager, session=session)
        store = TagHistoryStore()

        summary = InventoryBuilder(client, store, max_workers=workers).build()
        snapshot = store.snapshot()

        assert tag_names(snapshot, "app") == ["a", "c"]
        assert [(s.tag, s.reason) for s in snapshot.skipped] == [("b", "no creation history")]
        assert summary.repositories_failed == 0
        assert summary.tags_recorded == 2
        assert summary.tags_skipped == 1
