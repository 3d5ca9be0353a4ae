"""
Shared plumbing for sentiment sources.

BaseAdapter owns the HTTP side: one GET helper that applies the
configured User-Agent and timeout, logs the exchange, and converts every
transport failure into a FetchError. Subclasses only parse.
"""

from abc import ABC, abstractmethod
import time
import http.client
import logging
import urllib.request
import urllib.error

from config import HttpConfig, get_config
from domain import ExtractionResult
from ports import FetchError, ParseError

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Base class for the HTML and JSON sentiment sources."""

    def __init__(self, http: HttpConfig | None = None):
        self._http = http or get_config().http

    @property
    @abstractmethod
    def source_name(self) -> str:
        ...

    @abstractmethod
    def fetch_result(self) -> ExtractionResult:
        ...

    # ========================================================================
    # HTTP
    # ========================================================================

    def _http_get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """
        GET a URL and return the raw body.

        Redirects are followed. Extra headers are merged over the
        User-Agent; the timeout falls back to the configured one.

        Raises:
            FetchError: non-2xx status, network failure, or a failed or truncated read
        """
        request = urllib.request.Request(
            url,
            headers={"User-Agent": self._http.user_agent, **(headers or {})},
        )
        logger.debug(f"GET {url}", extra={"source": self.source_name, "url": url})
        started = time.monotonic()

        try:
            with urllib.request.urlopen(request, timeout=timeout or self._http.timeout_seconds) as resp:
                body = resp.read()
                status = resp.status
        except urllib.error.HTTPError as e:
            self._log_failure(url, started, f"HTTP {e.code}", status=e.code)
            raise FetchError.from_http_error(
                self.source_name, e.code, url=url, response_body=str(e.reason)
            ) from e
        except urllib.error.URLError as e:
            self._log_failure(url, started, f"network error: {e.reason}")
            raise FetchError.from_network_error(self.source_name, e, url=url) from e
        except (http.client.HTTPException, OSError) as e:
            # urlopen succeeded but reading the body did not
            self._log_failure(url, started, f"read failed: {e}")
            raise FetchError.from_network_error(self.source_name, e, url=url) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            f"{url} -> HTTP {status}, {len(body)} bytes in {elapsed_ms}ms",
            extra={"source": self.source_name, "status": status, "size": len(body), "elapsed_ms": elapsed_ms},
        )
        return body

    def _log_failure(self, url: str, started: float, what: str, status: int | None = None) -> None:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.warning(
            f"{self.source_name}: {what} for {url} after {elapsed_ms}ms",
            extra={"source": self.source_name, "url": url, "status": status, "elapsed_ms": elapsed_ms},
        )

    def _http_get_text(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        encoding: str = "utf-8",
    ) -> str:
        """GET and decode; an undecodable body is a ParseError, not a FetchError."""
        body = self._http_get(url, headers, timeout)
        try:
            return body.decode(encoding)
        except UnicodeDecodeError as e:
            raise ParseError(
                self.source_name,
                "encoding",
                str(e),
                raw_content=body[:200].decode(encoding, errors="replace"),
                cause=e,
            ) from e
