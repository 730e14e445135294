"""
Data Source Exceptions - Typed failures of upstream price lookups.

Every failure reaching the upstream provider surfaces as a typed
FetchError subclass; nothing escapes as a bare library exception.

    DataSourceError
    ├── FetchError
    │   ├── TransportError        (connection failure, timeout)
    │   ├── UpstreamStatusError   (non-2xx response)
    │   ├── DecodeError           (malformed payload)
    │   └── NotFoundError         (no record for a requested id)
    └── ConfigurationError

Subclasses list their extra attributes in ``detail_fields`` so
``to_dict()`` picks them up without per-class overrides.
"""

from datetime import datetime, timezone
from typing import Any, Optional


RAW_DATA_PREVIEW = 500


class DataSourceError(Exception):
    """Base exception for all data source errors."""

    detail_fields: tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        *,
        source_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source_name = source_name
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def details(self) -> dict[str, Any]:
        """Subclass-specific attributes."""
        return {name: getattr(self, name) for name in self.detail_fields}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "source_name": self.source_name,
            "original_error": repr(self.original_error) if self.original_error else None,
            **self.details(),
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        text = self.message
        if self.source_name:
            text = f"[{self.source_name}] {text}"
        if self.original_error:
            text = f"{text} (caused by {type(self.original_error).__name__})"
        return text


class FetchError(DataSourceError):
    """A price lookup against the provider failed."""

    detail_fields = ("request_url",)

    def __init__(
        self,
        message: str,
        *,
        request_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.request_url = request_url


class TransportError(FetchError):
    """The provider could not be reached (network failure or timeout)."""

    detail_fields = FetchError.detail_fields + ("timeout",)

    def __init__(self, message: str, *, timeout: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.timeout = timeout


class UpstreamStatusError(FetchError):
    """The provider answered with a non-success HTTP status."""

    detail_fields = FetchError.detail_fields + ("status_code", "response_body")

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body

    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    def is_server_error(self) -> bool:
        return self.status_code >= 500


class DecodeError(FetchError):
    """The provider's payload could not be decoded or translated."""

    detail_fields = FetchError.detail_fields + ("field_name",)

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.raw_data = raw_data
        self.field_name = field_name

    def details(self) -> dict[str, Any]:
        data = super().details()
        # Payloads can be whole provider pages
        data["raw_data"] = None if self.raw_data is None else str(self.raw_data)[:RAW_DATA_PREVIEW]
        return data


class NotFoundError(FetchError):
    """The provider returned no record for the requested identifier."""

    detail_fields = FetchError.detail_fields + ("asset_id",)

    def __init__(self, message: str, asset_id: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.asset_id = asset_id


class ConfigurationError(DataSourceError):
    """A data source was constructed with invalid settings."""

    detail_fields = ("config_key",)

    def __init__(self, message: str, *, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.config_key = config_key
