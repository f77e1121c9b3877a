"""
Error message utilities for providing actionable guidance to users.

This module provides functions to create helpful error messages with
suggested fixes and troubleshooting steps.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


def create_registry_connection_error(registry_url: str, error: Exception) -> ActionableError:
    """Create actionable error for registry connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the registry URL is correct: {registry_url}",
        "Check network connectivity to the registry",
        "Check whether the registry expects http or https (registry.scheme)",
        "Check if the registry service is running",
    ]

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Check if the registry is experiencing high load")
        suggestions.insert(2, "Increase registry.timeout in config.yaml")

    if "name resolution" in error_str or "dns" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    if "ssl" in error_str or "certificate" in error_str:
        suggestions.insert(1, "Set registry.verify_tls to false for self-signed certificates")

    return ActionableError(
        message=f"Failed to connect to Docker registry at {registry_url}",
        category=ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_registry_auth_error(registry_url: str, error: Exception) -> ActionableError:
    """Create actionable error for registry authentication failures"""
    suggestions = [
        "Verify REGISTRY_USERNAME and REGISTRY_PASSWORD environment variables are set correctly",
        "Check config.yaml for registry.username and registry.password fields",
        "Verify the password hasn't expired or been rotated",
        "Check if the registry requires token authentication instead of basic auth",
    ]

    return ActionableError(
        message=f"Failed to authenticate with Docker registry at {registry_url}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_rate_limit_error(operation: str, retry_after: Optional[float] = None) -> ActionableError:
    """Create actionable error for rate limiting"""
    suggestions = [
        "Reduce the number of parallel workers (--max-workers)",
        "Lower rate_limit.requests_per_second in config.yaml",
        "Wait before retrying the operation",
    ]

    if retry_after:
        suggestions.insert(0, f"Wait {retry_after:.1f} seconds before retrying")

    return ActionableError(
        message=f"Rate limit exceeded for operation: {operation}",
        category=ErrorCategory.NETWORK,
        suggestions=suggestions,
        details={
            "operation": operation,
            "retry_after": retry_after
        }
    )
