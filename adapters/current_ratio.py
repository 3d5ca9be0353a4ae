"""
FXSSI current ratio adapter.

Scrapes the share of retail traders long/short per instrument from the
FXSSI current ratio page. No API - scraping HTML with BeautifulSoup.

Source: https://fxssi.com/tools/current-ratio

The page layout is not under our control, so extraction degrades step by
step instead of failing:
- Primary selectors for ratio rows, first selector with usable rows wins
- Fallback: table rows, then divs naming exactly one known instrument
- Rows without an instrument or without both percentages are skipped
- If nothing usable is found, a tagged placeholder result is returned

Only transport failures raise (FetchError).
"""

import logging
import re
from collections.abc import Iterator

from bs4 import BeautifulSoup, Tag

from config import CurrentRatioSourceConfig, HttpConfig, get_config
from domain import CurrencyPairData, ExtractionResult, TradingSignal
from ports import FetchError, ParseError

from .base import BaseAdapter

logger = logging.getLogger(__name__)


# Instruments listed on the current ratio page
KNOWN_INSTRUMENTS = (
    "AUDJPY", "AUDUSD", "EURAUD", "EURGBP", "EURJPY", "EURUSD",
    "GBPJPY", "GBPUSD", "NZDUSD", "USDCAD", "USDCHF", "USDJPY",
    "XAGUSD", "XAUUSD", "EURCHF", "GBPCHF",
)

PRIMARY_SELECTORS = (
    ".current-ratio-row",
    ".sentiment-row",
    "[data-currency]",
    ".instrument-row",
    ".currency-row",
)
TABLE_SELECTOR = "table, .table, .data-table"
TABLE_ROW_SELECTOR = "tr, .row"

BUY_SELECTORS = (".buy-percentage", ".long-percentage", ".blue", ".bullish", "[data-buy]", "[data-long]")
SELL_SELECTORS = (".sell-percentage", ".short-percentage", ".red", ".bearish", "[data-sell]", "[data-short]")
BUY_ATTRIBUTES = ("data-buy", "data-long")
SELL_ATTRIBUTES = ("data-sell", "data-short")

SIGNAL_MARKER_CLASSES = {
    "signal-buy": TradingSignal.BUY,
    "signal-sell": TradingSignal.SELL,
    "signal-neutral": TradingSignal.NEUTRAL,
}

PERCENTAGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
NUMBER_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%?\s*$")
IGNORED_IN_CODES = re.compile(r"[\s/]")


def format_instrument(code: str) -> str:
    """EURUSD -> EUR/USD; codes that are not 6 letters pass through."""
    code = code.upper()
    if len(code) == 6:
        return f"{code[:3]}/{code[3:]}"
    return code


def find_known_instruments(text: str) -> list[str]:
    """Known instrument codes appearing in text, ignoring case, slashes and spaces."""
    compact = IGNORED_IN_CODES.sub("", text.upper())
    return [code for code in KNOWN_INSTRUMENTS if code in compact]


class CurrentRatioAdapter(BaseAdapter):
    """
    FXSSI current ratio scraper.

    Features:
    - Buy/sell percentages per instrument
    - Contrarian signal (40/60 thresholds) unless the row carries a marker
    - Duplicate instruments dropped, first occurrence kept

    Limitations:
    - Scraping-based (may break if HTML changes)
    - Placeholder output when the layout is not recognized at all
    """

    def __init__(
        self,
        config: CurrentRatioSourceConfig | None = None,
        http: HttpConfig | None = None,
    ):
        super().__init__(http)
        self.config = config or get_config().sources.current_ratio
        self.thresholds = self.config.thresholds.to_pair()

    @property
    def source_name(self) -> str:
        return "fxssi"

    def fetch(self) -> ExtractionResult:
        """
        Fetch current ratio records.

        Returns:
            ExtractionResult usable as a sequence of CurrencyPairData

        Raises:
            FetchError: On HTTP or network errors
        """
        return self.fetch_result()

    def fetch_result(self) -> ExtractionResult:
        logger.info(f"Fetching current ratio data from {self.config.url}")

        try:
            html = self._http_get_text(self.config.url, timeout=self.config.timeout_seconds)
        except FetchError as e:
            if e.status_code == 403:
                logger.error(
                    "FXSSI blocked request (403 Forbidden). "
                    "Possible causes: User-Agent blocked, IP rate limit."
                )
            raise
        except ParseError as e:
            logger.warning(f"Undecodable response from FXSSI: {e}")
            return self._nothing_found(f"undecodable response: {e.message}")

        return self.parse_document(html)

    # ========================================================================
    # Document parsing
    # ========================================================================

    def parse_document(self, html: str) -> ExtractionResult:
        """Run all row strategies over a page and keep the first that yields records."""
        soup = BeautifulSoup(html, "html.parser")

        for strategy, rows in self._candidate_rows(soup):
            records = self._parse_rows(rows)
            if records:
                logger.info(
                    f"Extracted {len(records)} instruments using {strategy}",
                    extra={"source": self.source_name, "strategy": strategy, "count": len(records)},
                )
                for record in records:
                    logger.debug(record.summary())
                return ExtractionResult.extracted(self.source_name, records, strategy=strategy)
            logger.debug(f"Strategy {strategy}: no usable rows ({len(rows)} candidates)")

        logger.warning(f"No usable rows found on {self.config.url} (page structure may have changed)")
        return self._nothing_found("no usable rows found")

    def _candidate_rows(self, soup: BeautifulSoup) -> Iterator[tuple[str, list[Tag]]]:
        for selector in PRIMARY_SELECTORS:
            rows = soup.select(selector)
            if rows:
                yield f"selector {selector}", rows

        table_rows = [
            row
            for table in soup.select(TABLE_SELECTOR)
            for row in table.select(TABLE_ROW_SELECTOR)
        ]
        if table_rows:
            yield "table rows", table_rows

        # Nested containers name several instruments; only single-instrument divs are rows
        divs = [div for div in soup.find_all("div") if len(find_known_instruments(div.get_text(" "))) == 1]
        if divs:
            yield "instrument divs", divs

    def _parse_rows(self, rows: list[Tag]) -> list[CurrencyPairData]:
        records: list[CurrencyPairData] = []
        seen: set[str] = set()

        for row in rows:
            record = self._parse_row(row)
            if record is None:
                continue
            if record.currency_pair in seen:
                logger.debug(f"Duplicate skipped: {record.currency_pair}")
                continue
            seen.add(record.currency_pair)
            records.append(record)

        return records

    def _parse_row(self, row: Tag) -> CurrencyPairData | None:
        """Build a record from one row, or None if the row is unusable."""
        currency_pair = self._extract_currency_pair(row)
        if currency_pair is None:
            return None

        buy = self._extract_percentage(row, BUY_SELECTORS, BUY_ATTRIBUTES, occurrence=0)
        sell = self._extract_percentage(row, SELL_SELECTORS, SELL_ATTRIBUTES, occurrence=1)
        if buy is None or sell is None:
            logger.debug(f"Missing percentages for {currency_pair}, row skipped")
            return None

        signal = self._extract_signal_marker(row) or self.thresholds.classify(buy)

        try:
            return CurrencyPairData(
                currency_pair=currency_pair,
                buy_percentage=buy,
                sell_percentage=sell,
                trading_signal=signal,
            )
        except ValueError as e:
            logger.debug(f"Invalid row for {currency_pair} skipped: {e}")
            return None

    # ========================================================================
    # Field extraction (each step returns None when nothing is found)
    # ========================================================================

    def _extract_currency_pair(self, row: Tag) -> str | None:
        found = find_known_instruments(row.get_text(" "))
        if found:
            return format_instrument(found[0])

        data_currency = row.get("data-currency")
        if isinstance(data_currency, str) and data_currency.strip():
            return data_currency.strip().upper()

        return None

    def _extract_percentage(
        self,
        row: Tag,
        selectors: tuple[str, ...],
        attributes: tuple[str, ...],
        occurrence: int,
    ) -> float | None:
        """
        Percentage from dedicated sub-elements, else the n-th percentage in the row text.

        occurrence 0 is the buy side, 1 the sell side.
        """
        for selector in selectors:
            for element in row.select(selector):
                match = PERCENTAGE_PATTERN.search(element.get_text(" "))
                if match:
                    return float(match.group(1))
                for attribute in attributes:
                    value = element.get(attribute)
                    if isinstance(value, str):
                        number = NUMBER_PATTERN.match(value)
                        if number:
                            return float(number.group(1))

        matches = PERCENTAGE_PATTERN.findall(row.get_text(" "))
        if len(matches) > occurrence:
            return float(matches[occurrence])
        return None

    def _extract_signal_marker(self, row: Tag) -> TradingSignal | None:
        """Explicit direction published in the row, if any."""
        for element in [row, *row.select("[data-signal]")]:
            value = element.get("data-signal")
            if isinstance(value, str):
                try:
                    signal = TradingSignal(value.strip().lower())
                except ValueError:
                    continue
                if signal != TradingSignal.UNKNOWN:
                    return signal

        row_classes = row.get("class") or []
        for css_class, signal in SIGNAL_MARKER_CLASSES.items():
            if css_class in row_classes or row.select_one(f".{css_class}") is not None:
                return signal

        return None

    def _nothing_found(self, reason: str) -> ExtractionResult:
        if self.config.allow_placeholder and self.config.placeholder_instruments:
            logger.warning(
                f"Returning placeholder rows for {', '.join(self.config.placeholder_instruments)}",
                extra={"source": self.source_name, "reason": reason},
            )
            return ExtractionResult.placeholder(
                self.source_name, self.config.placeholder_instruments, reason
            )
        return ExtractionResult.extracted(self.source_name, [], strategy="none")

    # ========================================================================
    # Diagnostics
    # ========================================================================

    def test_connection(self) -> bool:
        """Check the page is reachable and looks like the current ratio page."""
        try:
            html = self._http_get_text(self.config.url, timeout=self.config.timeout_seconds)
        except (FetchError, ParseError) as e:
            logger.warning(f"Connection test failed: {e}")
            return False

        soup = BeautifulSoup(html, "html.parser")
        title = soup.title.get_text().lower() if soup.title else ""
        is_valid = any(term in title for term in ("fxssi", "sentiment", "current ratio"))
        logger.info(f"Connection test {'succeeded' if is_valid else 'failed'} (title: {title!r})")
        return is_valid
