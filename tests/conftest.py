"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory registry client shared by the engine tests.
"""
import json
import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ts(seconds: int) -> datetime:
    """Timestamp ``seconds`` after a fixed epoch."""
    return EPOCH + timedelta(seconds=seconds)


REGISTRY_BASE = "https://registry.example.com:5000/v2/"


def make_response(status_code=200, payload=None, headers=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode() if payload is not None else b""
    response.headers.update(headers or {})
    return response


def make_session(routes):
    """Session whose get() answers from a {path: response | exception} table.

    Paths are relative to REGISTRY_BASE; unknown paths answer 404.
    """
    session = MagicMock(spec=requests.Session)

    def _get(url, headers=None, timeout=None):
        assert url.startswith(REGISTRY_BASE), url
        answer = routes.get(url[len(REGISTRY_BASE):])
        if answer is None:
            return make_response(404, {"errors": [{"code": "MANIFEST_UNKNOWN"}]})
        if isinstance(answer, Exception):
            raise answer
        return answer

    session.get.side_effect = _get
    return session


def schema1_manifest(created):
    return {
        "schemaVersion": 1,
        "history": [
            {"v1Compatibility": json.dumps({"id": "top", "created": created})},
            {"v1Compatibility": json.dumps({"id": "base", "created": "2000-01-01T00:00:00Z"})},
        ],
    }


class FakeRegistryClient:
    """In-memory registry.

    ``repositories`` maps repository -> {tag: datetime | Exception} or an
    Exception raised by list_tags. Exceptions in the tag map are raised by
    get_tag_creation_time for that tag.
    """

    def __init__(self, repositories, delay: float = 0.0, catalog_error: Exception = None):
        self.repositories = repositories
        self.delay = delay
        self.catalog_error = catalog_error
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.tag_calls = []

    def list_repositories(self):
        if self.catalog_error:
            raise self.catalog_error
        return list(self.repositories)

    def list_tags(self, repository):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            tags = self.repositories[repository]
            if isinstance(tags, Exception):
                raise tags
            return list(tags)
        finally:
            with self._lock:
                self.active -= 1

    def get_tag_creation_time(self, repository, tag):
        with self._lock:
            self.tag_calls.append((repository, tag))
        value = self.repositories[repository][tag]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def fake_registry_factory():
    return FakeRegistryClient


@pytest.fixture
def mock_config_manager(tmp_path):
    """MagicMock standing in for ConfigManager with test-friendly settings"""
    mock = MagicMock()
    mock.get_registry_url.return_value = "registry.example.com:5000"
    mock.get_registry_base_url.return_value = "https://registry.example.com:5000"
    mock.get_registry_username.return_value = "auditor"
    mock.get_registry_password.return_value = "secret"
    mock.get_verify_tls.return_value = True
    mock.get_request_timeout.return_value = 10.0
    mock.get_retain_count.return_value = 2
    mock.get_excluded_repositories.return_value = []
    mock.get_max_workers.return_value = 4
    mock.get_output_dir.return_value = str(tmp_path)
    mock.get_rate_limit_enabled.return_value = False
    mock.get_rate_limit_rps.return_value = 10.0
    mock.get_rate_limit_burst.return_value = 20
    mock.get_max_retries.return_value = 0
    mock.get_retry_initial_delay.return_value = 0.0
    mock.get_retry_max_delay.return_value = 0.0
    mock.get_retry_exponential_base.return_value = 2.0
    mock.get_retry_jitter.return_value = False
    mock.get_report_format.return_value = "grouped"
    mock.get_inventory_report_path.return_value = str(tmp_path / "tag-inventory.json")
    mock.get_retention_plan_path.return_value = str(tmp_path / "retention-plan.json")
    mock.get_deletion_candidates_path.return_value = str(tmp_path / "deletion-candidates.json")
    mock.get_summary_report_path.return_value = str(tmp_path / "retention-summary")
    return mock
