"""
CNN Fear & Greed index adapter.

Reads the current index value (0 = extreme fear, 100 = extreme greed) from
CNN's public graph data endpoint and reports it as a single record for a
configured symbol (BTC/USD by default).

Endpoint: https://production.dataviz.cnn.io/index/fearandgreed/graphdata/{date}

The index is not a positioning ratio. It is mapped onto one so it can flow
through the same pipeline as the current ratio source:

    buy_percentage  = 100 - index
    sell_percentage = index
    signal          = contrarian classification of the index (45/55)

A fearful market therefore shows a large buy share and a BUY signal. The
percentages are a presentation of the index, not a count of traders.

This adapter never raises from fetch(): any failure yields a neutral
50/50 record tagged as fallback.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta

from config import FearGreedSourceConfig, HttpConfig, get_config
from domain import CurrencyPairData, ExtractionResult, TradingSignal
from ports import AdapterError, DataError, FetchError, ParseError

from .base import BaseAdapter

logger = logging.getLogger(__name__)

SCORE_PATTERN = re.compile(r'"score"\s*:\s*([0-9]+(?:\.[0-9]+)?)')
RATING_PATTERN = re.compile(r'"rating"\s*:\s*"([^"]+)"')

REQUEST_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass(frozen=True)
class FearGreedReading:
    """Index value as published, with CNN's rating label if present."""
    score: float
    rating: str | None = None


def extract_reading(payload: str, anchor: str, window_chars: int) -> FearGreedReading | None:
    """
    Locate the index block in a response body and read its score.

    Only the window_chars characters following the first occurrence of
    anchor are searched, so historical series later in the body are never
    picked up. Returns None when the anchor or the score is missing.
    """
    start = payload.find(anchor)
    if start < 0:
        return None

    block = payload[start:start + window_chars]
    score = SCORE_PATTERN.search(block)
    if score is None:
        return None

    rating = RATING_PATTERN.search(block)
    return FearGreedReading(
        score=float(score.group(1)),
        rating=rating.group(1) if rating else None,
    )


class FearGreedAdapter(BaseAdapter):
    """Fear & Greed index exposed as a CurrencyPairData record."""

    def __init__(
        self,
        config: FearGreedSourceConfig | None = None,
        http: HttpConfig | None = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(http)
        self.config = config or get_config().sources.fear_greed
        self.thresholds = self.config.thresholds.to_pair()
        self._today = today

    @property
    def source_name(self) -> str:
        return "fear_greed"

    def build_url(self) -> str:
        """Endpoint for yesterday's date; the current value is appended to every series."""
        yesterday = self._today() - timedelta(days=1)
        return f"{self.config.endpoint.rstrip('/')}/{yesterday.isoformat()}"

    def fetch(self) -> CurrencyPairData:
        """Current index as a record. Never raises."""
        return self.fetch_result()[0]

    def fetch_result(self) -> ExtractionResult:
        url = self.build_url()
        logger.info(f"Fetching Fear & Greed index from {url}")

        try:
            payload = self._http_get_text(url, headers=REQUEST_HEADERS, timeout=self.config.timeout_seconds)
            reading = self._read(payload)
            record = self.to_record(reading)
        except FetchError as e:
            logger.warning(f"Fear & Greed endpoint unavailable: {e}", extra={"code": e.code.value, "status": e.status_code})
            return self._fallback(f"fetch failed: {e.message}")
        except AdapterError as e:
            logger.warning(f"Fear & Greed response unusable: {e}", extra={"code": e.code.value})
            return self._fallback(e.message)
        except ValueError as e:
            logger.warning(f"Fear & Greed record rejected: {e}")
            return self._fallback(f"invalid record: {e}")
        except Exception as e:
            logger.exception(f"Fear & Greed fetch failed unexpectedly: {e}")
            return self._fallback(f"unexpected error: {e}")

        logger.info(
            f"Fear & Greed index {reading.score:.1f} ({reading.rating or 'no rating'}) -> {record.summary()}",
            extra={"source": self.source_name, "score": reading.score, "rating": reading.rating},
        )
        return ExtractionResult.extracted(self.source_name, [record], strategy="anchor window")

    def _read(self, payload: str) -> FearGreedReading:
        if not payload.strip():
            raise ParseError(source=self.source_name, format_type="json", reason="empty response")

        reading = extract_reading(payload, self.config.anchor, self.config.window_chars)
        if reading is None:
            raise ParseError(
                source=self.source_name,
                format_type="anchor",
                reason=f"no score after {self.config.anchor}",
                raw_content=payload,
            )

        if not 0.0 <= reading.score <= 100.0:
            raise DataError.out_of_range(self.source_name, "score", reading.score, 0.0, 100.0)
        return reading

    def to_record(self, reading: FearGreedReading) -> CurrencyPairData:
        """Map an index reading onto the buy/sell record shape."""
        return CurrencyPairData(
            currency_pair=self.config.symbol,
            buy_percentage=100.0 - reading.score,
            sell_percentage=reading.score,
            trading_signal=self.thresholds.classify(reading.score),
        )

    def _fallback(self, reason: str) -> ExtractionResult:
        record = CurrencyPairData(
            currency_pair=self.config.symbol,
            buy_percentage=50.0,
            sell_percentage=50.0,
            trading_signal=TradingSignal.NEUTRAL,
        )
        logger.info(f"Using neutral fallback for {self.config.symbol}")
        return ExtractionResult.fallback(self.source_name, record, reason)

    def test_connection(self) -> bool:
        """True if the endpoint answers with a readable score in range."""
        try:
            payload = self._http_get_text(
                self.build_url(), headers=REQUEST_HEADERS, timeout=self.config.timeout_seconds
            )
            reading = self._read(payload)
        except AdapterError as e:
            logger.warning(f"Connection test failed: {e}")
            return False

        logger.info(f"Connection test succeeded, current index: {reading.score:.1f}")
        return True
