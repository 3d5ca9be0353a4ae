"""
Tests for the shared HTTP helpers and the error taxonomy.
"""

import http.client
import socket
import ssl
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from adapters.base import BaseAdapter
from config import HttpConfig
from domain import ExtractionResult
from ports import ErrorCode, FetchError, ParseError, SentimentSource


class DummyAdapter(BaseAdapter):
    @property
    def source_name(self) -> str:
        return "dummy"

    def fetch_result(self) -> ExtractionResult:
        return ExtractionResult.extracted(self.source_name, [])


def fake_response(body: bytes, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.read.return_value = body
    response.status = status
    response.__enter__.return_value = response
    return response


@pytest.fixture
def adapter():
    return DummyAdapter(HttpConfig(user_agent="TestAgent/1.0", timeout_seconds=7))


# ============================================================================
# HTTP helpers
# ============================================================================

class TestHttpGet:
    """Test cases for BaseAdapter._http_get()."""

    def test_sets_user_agent_and_timeout(self, adapter):
        with patch("adapters.base.urllib.request.urlopen", return_value=fake_response(b"ok")) as mock_open:
            assert adapter._http_get("https://example.com", headers={"Accept": "text/html"}) == b"ok"

        request = mock_open.call_args.args[0]
        assert request.get_header("User-agent") == "TestAgent/1.0"
        assert request.get_header("Accept") == "text/html"
        assert mock_open.call_args.kwargs["timeout"] == 7

    def test_explicit_timeout_wins(self, adapter):
        with patch("adapters.base.urllib.request.urlopen", return_value=fake_response(b"ok")) as mock_open:
            adapter._http_get("https://example.com", timeout=15)
        assert mock_open.call_args.kwargs["timeout"] == 15

    @pytest.mark.parametrize(
        "status,code",
        [
            (403, ErrorCode.HTTP_FORBIDDEN),
            (404, ErrorCode.HTTP_NOT_FOUND),
            (429, ErrorCode.HTTP_RATE_LIMITED),
            (400, ErrorCode.HTTP_CLIENT_ERROR),
            (503, ErrorCode.HTTP_SERVER_ERROR),
        ],
    )
    def test_http_status_mapped(self, adapter, status, code):
        error = urllib.error.HTTPError("https://example.com", status, "error", {}, None)
        with patch("adapters.base.urllib.request.urlopen", side_effect=error):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")

        assert exc_info.value.code == code
        assert exc_info.value.status_code == status
        assert exc_info.value.source == "dummy"

    def test_timeout_mapped(self, adapter):
        error = urllib.error.URLError(socket.timeout("timed out"))
        with patch("adapters.base.urllib.request.urlopen", side_effect=error):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_TIMEOUT

    def test_read_timeout_mapped(self, adapter):
        with patch("adapters.base.urllib.request.urlopen", side_effect=TimeoutError("read timed out")):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_TIMEOUT

    def test_connection_refused_mapped(self, adapter):
        error = urllib.error.URLError(ConnectionRefusedError("Connection refused"))
        with patch("adapters.base.urllib.request.urlopen", side_effect=error):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_CONNECTION

    def test_truncated_body_mapped(self, adapter):
        response = fake_response(b"")
        response.read.side_effect = http.client.IncompleteRead(b"<html>", 4096)
        with patch("adapters.base.urllib.request.urlopen", return_value=response):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_CONNECTION
        assert isinstance(exc_info.value.cause, http.client.IncompleteRead)

    def test_tls_error_during_read_mapped(self, adapter):
        response = fake_response(b"")
        response.read.side_effect = ssl.SSLError("bad record mac")
        with patch("adapters.base.urllib.request.urlopen", return_value=response):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_SSL

    def test_connection_reset_during_read_mapped(self, adapter):
        response = fake_response(b"")
        response.read.side_effect = ConnectionResetError("Connection reset by peer")
        with patch("adapters.base.urllib.request.urlopen", return_value=response):
            with pytest.raises(FetchError) as exc_info:
                adapter._http_get("https://example.com")
        assert exc_info.value.code == ErrorCode.NETWORK_CONNECTION

    def test_undecodable_text(self, adapter):
        with patch("adapters.base.urllib.request.urlopen", return_value=fake_response(b"\xff\xfe\xfa")):
            with pytest.raises(ParseError) as exc_info:
                adapter._http_get_text("https://example.com")
        assert exc_info.value.code == ErrorCode.PARSE_ENCODING


# ============================================================================
# Error types
# ============================================================================

class TestErrors:

    def test_fetch_error_message_and_dict(self):
        error = FetchError.from_http_error("fxssi", 503, url="https://fxssi.com", response_body="Service Unavailable")

        assert str(error) == "[E202] [fxssi] HTTP 503: Service Unavailable"
        data = error.to_dict()
        assert data["code"] == "E202"
        assert data["context"]["url"] == "https://fxssi.com"

    def test_with_context(self):
        error = FetchError(source="fxssi", reason="boom").with_context(attempt=2)
        assert error.context["attempt"] == 2

    def test_adapters_satisfy_source_protocol(self, adapter):
        assert isinstance(adapter, SentimentSource)
