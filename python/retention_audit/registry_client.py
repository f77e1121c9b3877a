"""
Docker Registry HTTP API v2 client.

This module provides the client the auditor uses to enumerate repositories and
tags and to read each tag's creation time from its manifest, with support for
rate limiting, retries and basic authentication. The client is shared by all
inventory workers and is safe for concurrent use.
"""

import json
import logging
import re
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from retention_audit.error_utils import (
    create_rate_limit_error,
    create_registry_auth_error,
    create_registry_connection_error,
)
from retention_audit.retry_utils import retry_with_backoff

MEDIA_TYPE_SCHEMA1 = "application/vnd.docker.distribution.manifest.v1+json"
MEDIA_TYPE_SCHEMA1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"
MEDIA_TYPE_SCHEMA2 = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"

MANIFEST_ACCEPT = ", ".join(
    [
        MEDIA_TYPE_SCHEMA2,
        MEDIA_TYPE_OCI_MANIFEST,
        MEDIA_TYPE_MANIFEST_LIST,
        MEDIA_TYPE_OCI_INDEX,
        MEDIA_TYPE_SCHEMA1_SIGNED,
        MEDIA_TYPE_SCHEMA1,
    ]
)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})(?P<fraction>\.\d+)?(?P<offset>Z|[+-]\d{2}:?\d{2})?$"
)


class RegistryError(Exception):
    """Base class for registry client failures."""


class TransportError(RegistryError):
    """Network failure or non-success response from the registry.

    ``retryable`` is decided where the error is raised: connection failures,
    timeouts, 429 and 5xx responses are retryable; other statuses and malformed
    payloads are not. ``None`` leaves the decision to the retry classifier.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None and status_code is not None:
            retryable = status_code == 429 or status_code >= 500
        self.retryable = retryable


class NotFoundError(RegistryError):
    """The manifest carries no usable creation time (or does not exist).

    Never retried; the tag is excluded from the audit instead of being given
    a made-up timestamp.
    """

    retryable = False


def parse_created_timestamp(value: Any) -> datetime:
    """Parse a manifest 'created' value into an aware UTC datetime.

    Accepts RFC 3339 strings with any number of fractional digits (registries
    emit nanosecond precision) and with 'Z' or a numeric offset. Values without
    an offset are taken as UTC.

    Raises:
        ValueError: If the value is missing or not a timestamp
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"missing creation timestamp: {value!r}")

    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"unparseable creation timestamp: {value!r}")

    text = match.group("base").replace(" ", "T")
    fraction = match.group("fraction")
    if fraction:
        # datetime supports microseconds only
        text += fraction[:7].ljust(7, "0")

    offset = match.group("offset")
    if offset and offset != "Z":
        if ":" not in offset:
            offset = f"{offset[:3]}:{offset[3:]}"
        text += offset

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class RegistryClient:
    """Standardized client for Docker Registry v2 operations."""

    def __init__(self, config_manager, session: Optional[requests.Session] = None):
        """Initialize RegistryClient.

        Args:
            config_manager: ConfigManager instance for accessing configuration
            session: Optional pre-built requests session (used by tests)
        """
        self.config_manager = config_manager
        self.registry_url = config_manager.get_registry_url()
        self.base_url = config_manager.get_registry_base_url()
        self.timeout = config_manager.get_request_timeout()

        self.session = session or requests.Session()
        username = config_manager.get_registry_username()
        password = config_manager.get_registry_password()
        if username and password:
            self.session.auth = HTTPBasicAuth(username, password)
        self.session.verify = config_manager.get_verify_tls()

        # Rate limiting
        self.rate_limit_enabled = config_manager.get_rate_limit_enabled()
        self.rate_limit_rps = config_manager.get_rate_limit_rps()
        self.rate_limit_burst = config_manager.get_rate_limit_burst()
        self._rate_limiter_lock = Lock()
        if self.rate_limit_enabled:
            self._init_rate_limiter()

        self._retry = retry_with_backoff(
            max_retries=config_manager.get_max_retries(),
            initial_delay=config_manager.get_retry_initial_delay(),
            max_delay=config_manager.get_retry_max_delay(),
            exponential_base=config_manager.get_retry_exponential_base(),
            jitter=config_manager.get_retry_jitter(),
        )

    def _init_rate_limiter(self):
        """Initialize token bucket rate limiter."""
        self._tokens = float(self.rate_limit_burst)
        self._last_update = time.time()
        self._token_refill_rate = self.rate_limit_rps

    def _acquire_rate_limit_token(self):
        """Acquire a token from the rate limiter, waiting if necessary."""
        if not self.rate_limit_enabled:
            return

        with self._rate_limiter_lock:
            now = time.time()
            elapsed = now - self._last_update

            # Refill tokens based on elapsed time
            self._tokens = min(self.rate_limit_burst, self._tokens + elapsed * self._token_refill_rate)
            self._last_update = now

            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return

            wait_time = (1.0 - self._tokens) / self._token_refill_rate
            if wait_time > 0:
                logging.debug(f"Rate limiting: waiting {wait_time:.2f}s (tokens: {self._tokens:.2f})")
                time.sleep(wait_time)
                self._tokens = 0.0
                self._last_update = time.time()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/v2/{path.lstrip('/')}"

    def _send(self, path: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Issue a single GET, mapping failures onto TransportError."""
        self._acquire_rate_limit_token()
        url = self._url(path)
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            retryable = isinstance(e, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))
            raise TransportError(f"GET {url} failed: {e}", retryable=retryable) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            logging.warning(str(create_rate_limit_error(f"GET {url}", retry_after=retry_after_seconds)))
            raise TransportError(f"GET {url} returned 429 Too Many Requests", status_code=429)

        if not response.ok:
            raise TransportError(
                f"GET {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def _get(self, path: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """GET with retries and exponential backoff."""
        return self._retry(self._send)(path, headers)

    def _get_json(self, path: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self._get(path, headers)
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {self._url(path)}: {e}", retryable=False) from e
        if not isinstance(payload, dict):
            raise TransportError(
                f"Unexpected payload from {self._url(path)}: {type(payload).__name__}", retryable=False
            )
        return payload

    def check_auth(self) -> None:
        """Verify the registry is reachable and accepts our credentials.

        Raises:
            ActionableError: If the registry rejects the credentials or cannot be reached
        """
        try:
            self._get("")
        except TransportError as e:
            if e.status_code in (401, 403):
                raise create_registry_auth_error(self.registry_url, e) from e
            raise create_registry_connection_error(self.registry_url, e) from e
        logging.info(f"Authenticated against registry {self.base_url}")

    def list_repositories(self) -> List[str]:
        """List every repository in the registry catalog."""
        payload = self._get_json("_catalog")
        return list(payload.get("repositories") or [])

    def list_tags(self, repository: str) -> List[str]:
        """List all tags for a repository. An empty list is a valid result."""
        payload = self._get_json(f"{repository}/tags/list")
        return list(payload.get("tags") or [])

    def get_manifest(self, repository: str, reference: str) -> Dict[str, Any]:
        """Fetch a manifest by tag or digest.

        Raises:
            NotFoundError: If the registry reports the manifest does not exist
            TransportError: On any other failure
        """
        try:
            return self._get_json(f"{repository}/manifests/{reference}", headers={"Accept": MANIFEST_ACCEPT})
        except TransportError as e:
            if e.status_code == 404:
                raise NotFoundError(f"Manifest {repository}:{reference} not found") from e
            raise

    def _created_from_config_blob(self, repository: str, digest: str) -> Any:
        try:
            config = self._get_json(f"{repository}/blobs/{digest}")
        except TransportError as e:
            if e.status_code == 404:
                raise NotFoundError(f"Config blob {digest} for {repository} not found") from e
            raise
        return config.get("created")

    def get_tag_creation_time(self, repository: str, tag: str) -> datetime:
        """Return the creation time recorded in a tag's manifest.

        Schema 1 manifests carry it in history[0].v1Compatibility; schema 2 and
        OCI manifests carry it in the image config blob. Manifest lists resolve
        to their first platform manifest.

        Raises:
            NotFoundError: If the manifest has no creation history entry or the timestamp is unusable
            TransportError: On network failure or non-success response
        """
        manifest = self.get_manifest(repository, tag)

        platforms = manifest.get("manifests")
        if platforms:
            first = platforms[0] if isinstance(platforms, list) else None
            digest = first.get("digest") if isinstance(first, dict) else None
            if not isinstance(digest, str) or not digest:
                raise NotFoundError(f"Manifest list for {repository}:{tag} has no platform digest")
            manifest = self.get_manifest(repository, digest)

        if manifest.get("schemaVersion") == 1 or "history" in manifest:
            history = manifest.get("history")
            if not isinstance(history, list) or not history:
                raise NotFoundError(f"Manifest for {repository}:{tag} has no history entries")
            entry = history[0]
            raw = entry.get("v1Compatibility") if isinstance(entry, dict) else None
            if not isinstance(raw, str):
                raise NotFoundError(f"Manifest for {repository}:{tag} has no v1Compatibility history entry")
            try:
                v1 = json.loads(raw)
            except ValueError as e:
                raise NotFoundError(f"Manifest for {repository}:{tag} has unreadable history: {e}") from e
            created = v1.get("created") if isinstance(v1, dict) else None
        else:
            config = manifest.get("config")
            config_digest = config.get("digest") if isinstance(config, dict) else None
            if not isinstance(config_digest, str) or not config_digest:
                raise NotFoundError(f"Manifest for {repository}:{tag} has no config blob")
            created = self._created_from_config_blob(repository, config_digest)

        try:
            return parse_created_timestamp(created)
        except ValueError as e:
            raise NotFoundError(f"Manifest for {repository}:{tag}: {e}") from e

    def close(self) -> None:
        self.session.close()
