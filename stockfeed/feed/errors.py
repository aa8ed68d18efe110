"""
Custom exceptions for the stock feed.

Exception hierarchy:
- FeedError (base)
  - FeedConnectionError: WebSocket transport could not be created
  - MessageParseError: Invalid/malformed wire messages
  - ConfigurationError: Invalid configuration
  - HistoryError: Historical CSV could not be loaded
"""

from __future__ import annotations

from typing import Any, Optional


class FeedError(Exception):
    """Base exception for all feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class FeedConnectionError(FeedError):
    """Raised when a feed connection cannot be created."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class MessageParseError(FeedError):
    """Raised when a wire message cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw_data = raw_data
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        # Don't include raw_data in details to avoid log spam
        super().__init__(message, component=component, details=details)


class ConfigurationError(FeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class HistoryError(FeedError):
    """Raised when the historical CSV is missing or malformed."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        missing_columns: Optional[list[str]] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.path = path
        self.missing_columns = missing_columns or []
        details = details or {}
        if path:
            details["path"] = path
        if missing_columns:
            details["missing_columns"] = missing_columns
        super().__init__(message, component=component, details=details)
