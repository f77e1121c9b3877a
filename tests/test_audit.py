"""End-to-end tests for retention_audit/audit.py against an in-memory registry"""

import json
import sys
from pathlib import Path

import pytest

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from conftest import FakeRegistryClient, ts
from retention_audit.audit import RetentionAuditor
from retention_audit.config_manager import ConfigurationError
from retention_audit.registry_client import NotFoundError, TransportError

REGISTRY = {
    "app": {"v1": ts(1), "v2": ts(2), "v3": ts(3), "broken": NotFoundError("no history")},
    "empty-repo": {},
    "tools": {"old": ts(10), "new": ts(20)},
}


def load(path):
    with open(path) as f:
        return json.load(f)


class TestRetentionAuditor:
    """Tests for RetentionAuditor.run"""

    def test_classifies_every_repository(self, mock_config_manager):
        auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(REGISTRY))

        result = auditor.run(write_reports=False)

        by_repo = {r.repository: r for r in result.results}
        assert [t.name for t in by_repo["app"].retain] == ["v2", "v3"]
        assert [t.name for t in by_repo["app"].delete] == ["v1"]
        assert by_repo["empty-repo"].retain == () and by_repo["empty-repo"].delete == ()
        assert [t.name for t in by_repo["tools"].retain] == ["old", "new"]
        assert result.delete_count == 1
        assert result.retain_count == 4
        assert result.report_paths == {}

    def test_skipped_tag_never_classified(self, mock_config_manager):
        auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(REGISTRY))

        result = auditor.run(write_reports=False)

        classified = {t.name for r in result.results for t in r.retain + r.delete}
        assert "broken" not in classified
        assert [s.tag for s in result.snapshot.skipped] == ["broken"]

    def test_overrides_take_precedence_over_config(self, mock_config_manager):
        auditor = RetentionAuditor(
            mock_config_manager,
            client=FakeRegistryClient(REGISTRY),
            retain_count=1,
            max_workers=1,
            excluded=["tools"],
        )

        result = auditor.run(write_reports=False)

        assert [r.repository for r in result.results] == ["app", "empty-repo"]
        assert [t.name for t in result.results[0].retain] == ["v3"]
        assert result.summary.repositories_excluded == 1

    def test_excluded_from_config(self, mock_config_manager):
        mock_config_manager.get_excluded_repositories.return_value = ["app"]
        auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(REGISTRY))

        result = auditor.run(write_reports=False)

        assert "app" not in [r.repository for r in result.results]

    @pytest.mark.parametrize("retain", [0, -1])
    def test_invalid_retention_fails_before_registry_access(self, mock_config_manager, retain):
        client = FakeRegistryClient(REGISTRY, catalog_error=AssertionError("registry must not be contacted"))

        with pytest.raises(ConfigurationError):
            RetentionAuditor(mock_config_manager, client=client, retain_count=retain)

    def test_catalog_failure_propagates(self, mock_config_manager):
        client = FakeRegistryClient({}, catalog_error=TransportError("catalog down", status_code=500))
        auditor = RetentionAuditor(mock_config_manager, client=client)

        with pytest.raises(TransportError):
            auditor.run(write_reports=False)

    def test_same_plan_for_any_worker_count(self, mock_config_manager):
        registry = {f"repo-{r}": {f"t{i}": ts((i * 37) % 11) for i in range(9)} for r in range(6)}

        plans = []
        for workers in (1, 3, 6):
            auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(registry), max_workers=workers)
            results = auditor.run(write_reports=False).results
            plans.append({r.repository: ([t.name for t in r.retain], [t.name for t in r.delete]) for r in results})

        assert plans[0] == plans[1] == plans[2]
        for repository, (retain, delete) in plans[0].items():
            assert len(retain) == 2 and len(delete) == 7
            assert set(retain) | set(delete) == set(registry[repository])


class TestRetentionAuditorReports:
    """Tests for report files written by the auditor"""

    def test_writes_all_reports(self, mock_config_manager, tmp_path):
        auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(REGISTRY))

        result = auditor.run(timestamp=False)

        paths = result.report_paths
        assert set(paths) == {"inventory", "retention_plan", "deletion_candidates", "summary"}
        assert paths["inventory"] == str(tmp_path / "tag-inventory.json")

        inventory = load(paths["inventory"])
        assert inventory["registry"] == "registry.example.com:5000"
        assert inventory["skipped"] == [{"repository": "app", "tag": "broken", "reason": "no creation history"}]

        candidates = load(paths["deletion_candidates"])
        assert candidates == [{"name": "registry.example.com:5000/app:v1", "createdAt": ts(1).isoformat()}]

        plan = load(paths["retention_plan"])
        assert [p["repository"] for p in plan] == ["app", "empty-repo", "tools"]

        assert (tmp_path / "retention-summary.txt").exists()
        assert load(paths["summary"])[0]["repository"] == "app"

    def test_flat_inventory_format(self, mock_config_manager):
        auditor = RetentionAuditor(mock_config_manager, client=FakeRegistryClient(REGISTRY))

        result = auditor.run(report_format="flat", timestamp=False)

        inventory = load(result.report_paths["inventory"])
        assert isinstance(inventory, list)
        assert {"name": "registry.example.com:5000/tools:new", "createdAt": ts(20).isoformat()} in inventory
