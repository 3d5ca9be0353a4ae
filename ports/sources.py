"""
Ports between the pipeline and its collaborators, plus the error types
they raise.

Sources turn an external page or endpoint into an ExtractionResult; the
sink receives what a cycle produced. Errors carry a stable code so log
lines can be grepped and counted.
"""

import http.client
import ssl
from abc import abstractmethod
from collections.abc import Sequence
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable, Any

from domain import CurrencyPairData, SignalChangeEvent, ExtractionResult


# ============================================================================
# Error Codes
# ============================================================================

class ErrorCode(str, Enum):
    """Stable codes, grouped by the stage that failed."""

    # Transport (1xx)
    NETWORK_TIMEOUT = "E101"
    NETWORK_CONNECTION = "E102"
    NETWORK_DNS = "E103"
    NETWORK_SSL = "E104"

    # HTTP status (2xx)
    HTTP_CLIENT_ERROR = "E201"
    HTTP_SERVER_ERROR = "E202"
    HTTP_RATE_LIMITED = "E203"
    HTTP_UNAUTHORIZED = "E204"
    HTTP_FORBIDDEN = "E205"
    HTTP_NOT_FOUND = "E206"

    # Response structure (3xx)
    PARSE_JSON = "E301"
    PARSE_HTML = "E302"
    PARSE_ANCHOR = "E303"
    PARSE_ENCODING = "E304"

    # Extracted values (4xx)
    DATA_INVALID = "E402"
    DATA_OUT_OF_RANGE = "E403"
    DATA_INCONSISTENT = "E405"

    # Scheduling (6xx)
    SCHEDULER_START = "E601"
    SCHEDULER_INTERVAL = "E602"

    UNKNOWN = "E999"


HTTP_STATUS_CODES = {
    401: ErrorCode.HTTP_UNAUTHORIZED,
    403: ErrorCode.HTTP_FORBIDDEN,
    404: ErrorCode.HTTP_NOT_FOUND,
    429: ErrorCode.HTTP_RATE_LIMITED,
}

# (needles in the lowered error text, code, reason); first match wins
NETWORK_ERROR_RULES = (
    (("timed out", "timeout"), ErrorCode.NETWORK_TIMEOUT, "Request timed out"),
    (("ssl", "certificate"), ErrorCode.NETWORK_SSL, "SSL/TLS error"),
    (("name resolution", "name or service", "nodename", "dns"), ErrorCode.NETWORK_DNS, "DNS resolution failed"),
)

PARSE_FORMAT_CODES = {
    "json": ErrorCode.PARSE_JSON,
    "html": ErrorCode.PARSE_HTML,
    "anchor": ErrorCode.PARSE_ANCHOR,
    "encoding": ErrorCode.PARSE_ENCODING,
}


# ============================================================================
# Error Classes
# ============================================================================

class AdapterError(Exception):
    """
    Base exception for source failures.

    str(error) reads "[E202] [fxssi] HTTP 503"; to_dict() gives the same
    information as fields for structured logs.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        source: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.message = message
        self.code = code
        self.source = source
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now()

        prefix = f"[{code.value}]" + (f" [{source}]" if source else "")
        super().__init__(f"{prefix} {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "source": self.source,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": repr(self.cause) if self.cause else None,
        }

    def with_context(self, **kwargs: Any) -> "AdapterError":
        """Attach more context; returns self so it can be raised inline."""
        self.context.update(kwargs)
        return self


class FetchError(AdapterError):
    """The transport failed: network, timeout or non-2xx status."""

    def __init__(
        self,
        source: str,
        reason: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        self.reason = reason
        self.url = url
        self.status_code = status_code

        context: dict[str, Any] = {"reason": reason}
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code
        super().__init__(reason, code=code, source=source, context=context, cause=cause)

    @classmethod
    def from_http_error(
        cls,
        source: str,
        status_code: int,
        url: str | None = None,
        response_body: str | None = None,
    ) -> "FetchError":
        if status_code in HTTP_STATUS_CODES:
            code = HTTP_STATUS_CODES[status_code]
        elif 400 <= status_code < 500:
            code = ErrorCode.HTTP_CLIENT_ERROR
        else:
            code = ErrorCode.HTTP_SERVER_ERROR

        reason = f"HTTP {status_code}"
        if response_body:
            reason = f"{reason}: {response_body[:100]}"
        return cls(source=source, reason=reason, code=code, url=url, status_code=status_code)

    @classmethod
    def from_network_error(
        cls,
        source: str,
        error: Exception,
        url: str | None = None,
    ) -> "FetchError":
        if isinstance(error, TimeoutError):
            return cls(source, "Request timed out", ErrorCode.NETWORK_TIMEOUT, url=url, cause=error)
        if isinstance(error, ssl.SSLError) or isinstance(getattr(error, "reason", None), ssl.SSLError):
            return cls(source, "SSL/TLS error", ErrorCode.NETWORK_SSL, url=url, cause=error)
        if isinstance(error, http.client.IncompleteRead):
            return cls(source, "Incomplete response body", ErrorCode.NETWORK_CONNECTION, url=url, cause=error)

        text = str(error).lower()
        for needles, code, reason in NETWORK_ERROR_RULES:
            if any(needle in text for needle in needles):
                return cls(source, reason, code, url=url, cause=error)

        return cls(source, f"Connection error: {error}", ErrorCode.NETWORK_CONNECTION, url=url, cause=error)


class ParseError(AdapterError):
    """The response arrived but does not have the expected structure."""

    def __init__(
        self,
        source: str,
        format_type: str,
        reason: str,
        raw_content: str | None = None,
        cause: Exception | None = None,
    ):
        self.format_type = format_type
        context: dict[str, Any] = {"format": format_type}
        if raw_content:
            context["raw_preview"] = raw_content[:200]
        super().__init__(
            f"Failed to parse {format_type}: {reason}",
            code=PARSE_FORMAT_CODES.get(format_type, ErrorCode.UNKNOWN),
            source=source,
            context=context,
            cause=cause,
        )


class DataError(AdapterError):
    """An extracted value is unusable."""

    def __init__(
        self,
        source: str,
        reason: str,
        code: ErrorCode = ErrorCode.DATA_INVALID,
        field: str | None = None,
        **details: Any,
    ):
        self.field = field
        context: dict[str, Any] = {"reason": reason, **{k: str(v) for k, v in details.items()}}
        if field:
            context["field"] = field
        super().__init__(reason, code=code, source=source, context=context)

    @classmethod
    def out_of_range(cls, source: str, field: str, value: float, low: float, high: float) -> "DataError":
        return cls(
            source,
            f"{field} out of range: {value}",
            code=ErrorCode.DATA_OUT_OF_RANGE,
            field=field,
            expected=f"{low}-{high}",
            actual=value,
        )


class SchedulingError(Exception):
    """The periodic trigger could not be armed."""

    def __init__(self, reason: str, code: ErrorCode = ErrorCode.SCHEDULER_START, cause: Exception | None = None):
        self.reason = reason
        self.code = code
        self.cause = cause
        super().__init__(f"[{code.value}] {reason}")


# ============================================================================
# Protocols
# ============================================================================

@runtime_checkable
class SentimentSource(Protocol):
    """
    A sentiment source.

    fetch_result() returns typed records, tags fallback or synthetic
    output as degraded, and raises FetchError only when the transport
    fails and the source has no fallback of its own. Parsing problems
    never escape.
    """

    @property
    def source_name(self) -> str:
        ...

    @abstractmethod
    def fetch_result(self) -> ExtractionResult:
        ...


@runtime_checkable
class RecordSink(Protocol):
    """Receives the output of each cycle."""

    def save_records(self, records: Sequence[CurrencyPairData]) -> None:
        ...

    def save_changes(self, events: Sequence[SignalChangeEvent]) -> None:
        ...


class ChangeNotifier(Protocol):
    """Announces the signal changes of a cycle, e.g. by email."""

    def notify(self, events: Sequence[SignalChangeEvent]) -> Any:
        ...
