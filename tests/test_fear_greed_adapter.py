"""
Tests for the CNN Fear & Greed adapter.
"""

import http.client
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from adapters.fear_greed import FearGreedAdapter, FearGreedReading, extract_reading
from config import FearGreedSourceConfig, HttpConfig
from domain import Confidence, TradingSignal
from ports import ErrorCode, FetchError


def payload(score: str, rating: str = "greed") -> str:
    return (
        '{"fear_and_greed":{"score":' + score + ',"rating":"' + rating + '",'
        '"timestamp":"2025-01-03T00:00:00+00:00","previous_close":52.0},'
        '"fear_and_greed_historical":{"data":[{"x":1,"y":12.0,"rating":"extreme fear"}]}}'
    )


@pytest.fixture
def adapter():
    return FearGreedAdapter(
        FearGreedSourceConfig(),
        HttpConfig(),
        today=lambda: date(2025, 1, 3),
    )


# ============================================================================
# Extraction
# ============================================================================

class TestExtractReading:

    def test_reads_score_and_rating(self):
        reading = extract_reading(payload("62.4"), '"fear_and_greed"', 500)
        assert reading == FearGreedReading(score=62.4, rating="greed")

    def test_missing_anchor(self):
        assert extract_reading('{"other": {"score": 10}}', '"fear_and_greed"', 500) is None

    def test_score_outside_window_ignored(self):
        body = '{"fear_and_greed":{' + " " * 600 + '"score": 40}}'
        assert extract_reading(body, '"fear_and_greed"', 500) is None

    def test_rating_optional(self):
        reading = extract_reading('{"fear_and_greed":{"score":25}}', '"fear_and_greed"', 500)
        assert reading.score == 25.0
        assert reading.rating is None


# ============================================================================
# Adapter
# ============================================================================

class TestFearGreedAdapter:
    """Test cases for FearGreedAdapter with mocked HTTP."""

    def test_adapter_properties(self, adapter):
        assert adapter.source_name == "fear_greed"
        assert adapter.config.symbol == "BTC/USD"

    def test_url_uses_yesterday(self, adapter):
        assert adapter.build_url() == (
            "https://production.dataviz.cnn.io/index/fearandgreed/graphdata/2025-01-02"
        )

    def test_request_headers(self, adapter):
        with patch.object(adapter, "_http_get_text", return_value=payload("50")) as mock_get:
            adapter.fetch()

        headers = mock_get.call_args.kwargs["headers"]
        assert headers["Accept"] == "application/json"
        assert "Accept-Language" in headers
        assert mock_get.call_args.kwargs["timeout"] == 15.0

    @pytest.mark.parametrize(
        "score,buy,sell,signal",
        [
            ("20", 80.0, 20.0, TradingSignal.BUY),
            ("45", 55.0, 45.0, TradingSignal.NEUTRAL),
            ("55", 45.0, 55.0, TradingSignal.NEUTRAL),
            ("56", 44.0, 56.0, TradingSignal.SELL),
            ("62.4", 37.6, 62.4, TradingSignal.SELL),
        ],
    )
    def test_mapping(self, adapter, score, buy, sell, signal):
        with patch.object(adapter, "_http_get_text", return_value=payload(score)):
            record = adapter.fetch()

        assert record.currency_pair == "BTC/USD"
        assert record.buy_percentage == buy
        assert record.sell_percentage == sell
        assert record.trading_signal == signal

    def test_successful_result_tagged_extracted(self, adapter):
        with patch.object(adapter, "_http_get_text", return_value=payload("30")):
            result = adapter.fetch_result()
        assert result.confidence == Confidence.EXTRACTED
        assert not result.is_degraded


class TestFallback:
    """fetch() never raises; failures give a neutral 50/50 record."""

    def assert_fallback(self, adapter, **mock_kwargs):
        with patch.object(adapter, "_http_get_text", **mock_kwargs):
            result = adapter.fetch_result()

        assert result.confidence == Confidence.FALLBACK
        record = result[0]
        assert record.currency_pair == "BTC/USD"
        assert (record.buy_percentage, record.sell_percentage) == (50.0, 50.0)
        assert record.trading_signal == TradingSignal.NEUTRAL

    def test_transport_failure(self, adapter):
        error = FetchError(source="fear_greed", reason="Request timed out", code=ErrorCode.NETWORK_TIMEOUT)
        self.assert_fallback(adapter, side_effect=error)

    def test_empty_body(self, adapter):
        self.assert_fallback(adapter, return_value="")

    def test_missing_anchor(self, adapter):
        self.assert_fallback(adapter, return_value='{"market_momentum": {"score": 70}}')

    def test_score_out_of_range(self, adapter):
        self.assert_fallback(adapter, return_value=payload("150"))

    def test_unexpected_error(self, adapter):
        self.assert_fallback(adapter, side_effect=KeyError("score"))

    def test_truncated_body(self, adapter):
        response = MagicMock()
        response.__enter__.return_value.read.side_effect = http.client.IncompleteRead(b'{"fear_and', 200)

        with patch("adapters.base.urllib.request.urlopen", return_value=response):
            result = adapter.fetch_result()

        assert result.confidence == Confidence.FALLBACK
        assert "Incomplete response body" in result.note

    def test_fetch_returns_record_on_failure(self, adapter):
        error = FetchError(source="fear_greed", reason="HTTP 500", code=ErrorCode.HTTP_SERVER_ERROR)
        with patch.object(adapter, "_http_get_text", side_effect=error):
            record = adapter.fetch()
        assert record.trading_signal == TradingSignal.NEUTRAL

    def test_test_connection(self, adapter):
        with patch.object(adapter, "_http_get_text", return_value=payload("40")):
            assert adapter.test_connection()
        with patch.object(adapter, "_http_get_text", return_value=payload("-3")):
            assert not adapter.test_connection()
