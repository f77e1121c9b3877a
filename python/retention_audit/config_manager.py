#!/usr/bin/env python3
"""
Configuration Manager for the registry retention auditor

This module handles loading and managing configuration from config.yaml
and environment variables.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import yaml

VALID_SCHEMES = ("http", "https")
VALID_REPORT_FORMATS = ("grouped", "flat")


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid. Fatal before any work starts."""


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


class ConfigManager:
    """Manages configuration for the registry retention auditor"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to ../config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        # Allow override via environment variable for containerized deployments
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "../config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "registry": {
                "url": "",
                "scheme": "https",
                "username": "",
                "password": "",
                "verify_tls": True,
                "timeout": 10,
            },
            "retention": {"retain_count": 10, "exclude": []},
            "analysis": {"max_workers": 4, "output_dir": "reports"},
            "retry": {
                "max_retries": 3,
                "initial_delay": 1.0,
                "max_delay": 60.0,
                "exponential_base": 2.0,
                "jitter": True,
            },
            "rate_limit": {
                "enabled": True,
                "requests_per_second": 10.0,  # Max requests per second
                "burst_size": 20,  # Allow burst of up to N requests
            },
            "reports": {
                "format": "grouped",
                "inventory": "tag-inventory.json",
                "retention_plan": "retention-plan.json",
                "deletion_candidates": "deletion-candidates.json",
                "summary": "retention-summary",
            },
            "logging": {"level": "INFO", "file": ""},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """Merge command-line overrides (same shape as config.yaml) over the loaded config"""
        self.config = self._merge_config(self.config, overrides)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    def _get_int(self, section: str, key: str, default: int) -> int:
        value = self._section(section).get(key, default)
        if isinstance(value, bool):
            raise ConfigurationError(f"{section}.{key} must be an integer, got: {value} (type: bool)")
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigurationError(
                f"{section}.{key} must be an integer, got: {value} (type: {type(value).__name__})"
            )

    def _get_float(self, section: str, key: str, default: float) -> float:
        value = self._section(section).get(key, default)
        try:
            return float(value)
        except (ValueError, TypeError):
            raise ConfigurationError(
                f"{section}.{key} must be a number, got: {value} (type: {type(value).__name__})"
            )

    # Registry configuration
    def get_registry_url(self) -> str:
        """Get registry host[:port] from environment or config.

        A scheme prefix, if present, is stripped; use get_registry_scheme() for it.
        """
        url = os.environ.get("REGISTRY_URL") or os.environ.get("REGISTRY") or self._section("registry").get("url", "")
        url = (url or "").strip()
        for prefix in ("http://", "https://"):
            if url.startswith(prefix):
                url = url[len(prefix):]
        return url.rstrip("/")

    def get_registry_scheme(self) -> str:
        """Get the URL scheme used to reach the registry.

        Priority: env REGISTRY_SCHEME -> scheme embedded in the URL -> config registry.scheme
        """
        scheme = os.environ.get("REGISTRY_SCHEME")
        if scheme:
            return scheme.strip().lower()
        raw_url = os.environ.get("REGISTRY_URL") or os.environ.get("REGISTRY") or self._section("registry").get("url", "")
        raw_url = (raw_url or "").strip()
        if "://" in raw_url:
            return raw_url.split("://", 1)[0].lower()
        return str(self._section("registry").get("scheme", "https")).lower()

    def get_registry_base_url(self) -> str:
        """Get the full base URL, e.g. https://registry.example.com:5000"""
        return f"{self.get_registry_scheme()}://{self.get_registry_url()}"

    def get_registry_username(self) -> Optional[str]:
        return os.environ.get("REGISTRY_USERNAME") or self._section("registry").get("username") or None

    def get_registry_password(self) -> Optional[str]:
        return os.environ.get("REGISTRY_PASSWORD") or self._section("registry").get("password") or None

    def get_verify_tls(self) -> bool:
        env_value = os.environ.get("REGISTRY_VERIFY_TLS")
        if env_value is not None:
            return _env_bool(env_value)
        return bool(self._section("registry").get("verify_tls", True))

    def get_request_timeout(self) -> float:
        """Get the per-request HTTP timeout in seconds"""
        return self._get_float("registry", "timeout", 10)

    # Retention configuration
    def get_retain_count(self) -> int:
        """Get the number of most recent tags to keep per repository"""
        env_value = os.environ.get("REGISTRY_RETENTION")
        if env_value:
            try:
                return int(env_value)
            except ValueError:
                raise ConfigurationError(f"REGISTRY_RETENTION must be an integer, got: {env_value}")
        return self._get_int("retention", "retain_count", 10)

    def get_excluded_repositories(self) -> List[str]:
        """Get repositories that are skipped entirely.

        REGISTRY_EXCLUDE is a comma-separated list and replaces the config value.
        """
        env_value = os.environ.get("REGISTRY_EXCLUDE")
        if env_value is not None:
            return [name.strip() for name in env_value.split(",") if name.strip()]
        excluded = self._section("retention").get("exclude") or []
        if isinstance(excluded, str):
            excluded = excluded.split(",")
        return [str(name).strip() for name in excluded if str(name).strip()]

    # Analysis configuration
    def get_max_workers(self) -> int:
        """Get max workers from REGISTRY_WORKERS (fallback REGISTRY_WORKER) or config, with type coercion"""
        env_name = "REGISTRY_WORKERS" if os.environ.get("REGISTRY_WORKERS") else "REGISTRY_WORKER"
        env_value = os.environ.get(env_name)
        if env_value:
            try:
                return int(env_value)
            except ValueError:
                raise ConfigurationError(f"{env_name} must be an integer, got: {env_value}")
        return self._get_int("analysis", "max_workers", 4)

    def get_output_dir(self) -> str:
        """Get output directory from config"""
        return self._section("analysis").get("output_dir", "reports")

    # Retry configuration
    def get_max_retries(self) -> int:
        return self._get_int("retry", "max_retries", 3)

    def get_retry_initial_delay(self) -> float:
        return self._get_float("retry", "initial_delay", 1.0)

    def get_retry_max_delay(self) -> float:
        return self._get_float("retry", "max_delay", 60.0)

    def get_retry_exponential_base(self) -> float:
        return self._get_float("retry", "exponential_base", 2.0)

    def get_retry_jitter(self) -> bool:
        """Get whether to use jitter in retry delays from config"""
        return bool(self._section("retry").get("jitter", True))

    # Rate limiting
    def get_rate_limit_enabled(self) -> bool:
        return bool(self._section("rate_limit").get("enabled", True))

    def get_rate_limit_rps(self) -> float:
        """Get requests per second for registry rate limiting"""
        return self._get_float("rate_limit", "requests_per_second", 10.0)

    def get_rate_limit_burst(self) -> int:
        """Get burst size for registry rate limiting"""
        return self._get_int("rate_limit", "burst_size", 20)

    # Report configuration
    def _resolve_report_path(self, path: str) -> str:
        """Resolve report file path under the configured output_dir unless absolute or already a path.
        If the value is just a filename, prefix it with output_dir.
        """
        # If absolute or contains a directory component, return as is
        if os.path.isabs(path) or os.path.basename(path) != path:
            return path
        return os.path.join(self.get_output_dir(), path)

    def get_report_format(self) -> str:
        return str(self._section("reports").get("format", "grouped")).lower()

    def get_inventory_report_path(self) -> str:
        return self._resolve_report_path(self._section("reports").get("inventory", "tag-inventory.json"))

    def get_retention_plan_path(self) -> str:
        return self._resolve_report_path(self._section("reports").get("retention_plan", "retention-plan.json"))

    def get_deletion_candidates_path(self) -> str:
        return self._resolve_report_path(
            self._section("reports").get("deletion_candidates", "deletion-candidates.json")
        )

    def get_summary_report_path(self) -> str:
        """Get summary report base path (saved as both .txt and .json)"""
        return self._resolve_report_path(self._section("reports").get("summary", "retention-summary"))

    # Logging configuration
    def get_log_level(self) -> str:
        return os.environ.get("LOG_LEVEL") or str(self._section("logging").get("level", "INFO"))

    def get_log_file(self) -> Optional[str]:
        return os.environ.get("LOG_FILE") or self._section("logging").get("file") or None

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigurationError: If configuration is invalid
        """
        errors = []
        warnings = []

        # Validate registry configuration
        registry_url = self.get_registry_url()
        if not registry_url:
            errors.append("Registry URL is required (REGISTRY_URL or registry.url)")
        elif not self._is_valid_registry_url(registry_url):
            errors.append(
                f"Registry URL '{registry_url}' is invalid (expected format: hostname[:port])"
            )

        scheme = self.get_registry_scheme()
        if scheme not in VALID_SCHEMES:
            errors.append(f"registry.scheme must be one of {', '.join(VALID_SCHEMES)}, got: {scheme}")

        if not self.get_registry_username():
            errors.append("Registry username is required (REGISTRY_USERNAME or registry.username)")
        if not self.get_registry_password():
            errors.append("Registry password is required (REGISTRY_PASSWORD or registry.password)")

        timeout = self.get_request_timeout()
        if timeout <= 0:
            errors.append(f"registry.timeout must be a positive number (seconds), got: {timeout}")

        # Validate retention configuration
        retain_count = self.get_retain_count()
        if retain_count <= 0:
            errors.append(f"retention.retain_count must be a positive integer, got: {retain_count}")

        # Validate analysis configuration
        max_workers = self.get_max_workers()
        if max_workers < 1:
            errors.append(f"max_workers must be a positive integer, got: {max_workers}")
        elif max_workers > 100:
            warnings.append(f"max_workers is very high ({max_workers}), this may trip registry rate limits")

        output_dir = self.get_output_dir()
        if not output_dir or not str(output_dir).strip():
            errors.append("output_dir is required and cannot be empty")

        # Validate retry configuration
        max_retries = self.get_max_retries()
        if max_retries < 0:
            errors.append(f"retry.max_retries must be a non-negative integer, got: {max_retries}")

        initial_delay = self.get_retry_initial_delay()
        max_delay = self.get_retry_max_delay()
        if initial_delay < 0:
            errors.append(f"retry.initial_delay must be a non-negative number, got: {initial_delay}")
        if max_delay < initial_delay:
            errors.append(f"retry.max_delay ({max_delay}) must be >= retry.initial_delay ({initial_delay})")

        if self.get_retry_exponential_base() < 1.0:
            errors.append(f"retry.exponential_base must be >= 1.0, got: {self.get_retry_exponential_base()}")

        # Validate rate limiting
        if self.get_rate_limit_enabled():
            if self.get_rate_limit_rps() <= 0:
                errors.append(f"rate_limit.requests_per_second must be positive, got: {self.get_rate_limit_rps()}")
            if self.get_rate_limit_burst() < 1:
                errors.append(f"rate_limit.burst_size must be at least 1, got: {self.get_rate_limit_burst()}")

        report_format = self.get_report_format()
        if report_format not in VALID_REPORT_FORMATS:
            errors.append(f"reports.format must be one of {', '.join(VALID_REPORT_FORMATS)}, got: {report_format}")

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigurationError(error_msg)

    def _is_valid_registry_url(self, url: str) -> bool:
        """Validate registry URL format"""
        if not url:
            return False

        # Formats: "hostname", "hostname:port", "registry.example.com:5000"
        pattern = r"^[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?$"
        return bool(re.match(pattern, url))

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Registry URL: {self.get_registry_base_url()}")
        print(f"  Registry Username: {self.get_registry_username() or 'Not set'}")
        password = self.get_registry_password()
        if password:
            print(f"  Registry Password: {'*' * len(password)}")
        else:
            print("  Registry Password: Not set")
        print(f"  Verify TLS: {self.get_verify_tls()}")
        print(f"  Request Timeout: {self.get_request_timeout()}s")
        print(f"  Retain Count: {self.get_retain_count()}")
        excluded = self.get_excluded_repositories()
        print(f"  Excluded Repositories: {', '.join(excluded) if excluded else 'None'}")
        print(f"  Max Workers: {self.get_max_workers()}")
        print(f"  Output Directory: {self.get_output_dir()}")
        print(f"  Report Format: {self.get_report_format()}")


# Global config manager instance
# Built without validation so importing never aborts; the CLI calls
# validate_config() before any registry work starts.
config_manager = ConfigManager(validate=False)
