"""
Line formats for persisted records and signal changes.

Records:   2025-01-03 14:00:00;EUR/USD;45.00;55.00;NEUTRAL
Changes:   2025-01-03 14:00:00;EUR/USD;NEUTRAL;SELL;45,00;65,00
Last sent: EUR/USD;SELL;65.00;2025-01-03 14:00:00

Records and changes use different decimal separators. Each format names its
separator explicitly; nothing depends on the process locale.
"""

from dataclasses import dataclass
from datetime import datetime

from .enums import TradingSignal
from .models import CurrencyPairData, SignalChangeEvent

FIELD_SEPARATOR = ";"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

RECORD_HEADER = "Zeitstempel;Währungspaar;Buy_Prozent;Sell_Prozent;Handelssignal"
CHANGE_HEADER = "Zeitstempel;Währungspaar;Von_Signal;Zu_Signal;Von_Buy_Prozent;Zu_Buy_Prozent"
LAST_SIGNAL_HEADER = "Währungspaar;Letztes_Signal;Buy_Prozent"
LAST_SENT_HEADER = "Währungspaar;Signal;Buy_Prozent;Zeitstempel"


class LineFormatError(ValueError):
    """Raised when a persisted line cannot be parsed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


@dataclass(frozen=True)
class DecimalStyle:
    """Two-decimal number formatting with a fixed separator."""
    separator: str
    lenient: bool = False  # accept both ',' and '.' when parsing

    def format(self, value: float) -> str:
        return f"{value:.2f}".replace(".", self.separator)

    def parse(self, text: str) -> float:
        text = text.strip()
        if not text:
            raise ValueError("empty number")
        if not self.lenient:
            if self.separator != "." and "." in text:
                raise ValueError(f"unexpected '.' in {text!r}")
            return float(text.replace(self.separator, "."))

        if "," in text and "." in text:
            # 1.234,56 - dot groups thousands
            text = text.replace(".", "")
        return float(text.replace(",", "."))


RECORD_DECIMAL = DecimalStyle(separator=".")
CHANGE_DECIMAL = DecimalStyle(separator=",", lenient=True)


def _parse_signal(name: str) -> TradingSignal:
    try:
        return TradingSignal[name.strip()]
    except KeyError:
        raise ValueError(f"unknown signal {name!r}") from None


def _split(line: str, expected: int) -> list[str]:
    parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
    if len(parts) != expected:
        raise LineFormatError(line, f"expected {expected} fields, got {len(parts)}")
    return parts


# ============================================================================
# Records
# ============================================================================

def record_to_line(record: CurrencyPairData) -> str:
    return FIELD_SEPARATOR.join([
        record.timestamp.strftime(TIMESTAMP_FORMAT),
        record.currency_pair,
        RECORD_DECIMAL.format(record.buy_percentage),
        RECORD_DECIMAL.format(record.sell_percentage),
        record.trading_signal.name,
    ])


def record_from_line(line: str) -> CurrencyPairData:
    """
    Parse a record line.

    Raises:
        LineFormatError: On wrong field count or unparseable fields
    """
    parts = _split(line, 5)
    try:
        return CurrencyPairData(
            timestamp=datetime.strptime(parts[0], TIMESTAMP_FORMAT),
            currency_pair=parts[1],
            buy_percentage=RECORD_DECIMAL.parse(parts[2]),
            sell_percentage=RECORD_DECIMAL.parse(parts[3]),
            trading_signal=_parse_signal(parts[4]),
        )
    except ValueError as e:
        raise LineFormatError(line, f"invalid record line ({e})") from e


# ============================================================================
# Signal changes
# ============================================================================

def change_to_line(event: SignalChangeEvent) -> str:
    return FIELD_SEPARATOR.join([
        event.change_time.strftime(TIMESTAMP_FORMAT),
        event.currency_pair,
        event.from_signal.name,
        event.to_signal.name,
        CHANGE_DECIMAL.format(event.from_buy_percentage),
        CHANGE_DECIMAL.format(event.to_buy_percentage),
    ])


def change_from_line(line: str) -> SignalChangeEvent:
    """
    Parse a signal change line, accepting ',' or '.' as decimal separator.

    Raises:
        LineFormatError: On wrong field count or unparseable fields
    """
    parts = _split(line, 6)
    try:
        return SignalChangeEvent(
            change_time=datetime.strptime(parts[0], TIMESTAMP_FORMAT),
            currency_pair=parts[1],
            from_signal=_parse_signal(parts[2]),
            to_signal=_parse_signal(parts[3]),
            from_buy_percentage=CHANGE_DECIMAL.parse(parts[4]),
            to_buy_percentage=CHANGE_DECIMAL.parse(parts[5]),
        )
    except ValueError as e:
        raise LineFormatError(line, f"invalid signal change line ({e})") from e


# ============================================================================
# Last known signals
# ============================================================================

def is_header(line: str, header: str) -> bool:
    """True for the header line, including older headers with fewer columns."""
    return line.split(FIELD_SEPARATOR, 1)[0] == header.split(FIELD_SEPARATOR, 1)[0]


def last_signal_to_line(currency_pair: str, signal: TradingSignal, buy_percentage: float | None = None) -> str:
    fields = [currency_pair, signal.name]
    if buy_percentage is not None:
        fields.append(RECORD_DECIMAL.format(buy_percentage))
    return FIELD_SEPARATOR.join(fields)


def last_signal_from_line(line: str) -> tuple[str, TradingSignal, float | None]:
    """
    Parse a last known signal line.

    The buy percentage column is optional; lines written before it existed
    carry only the instrument and the signal.
    """
    parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
    if len(parts) not in (2, 3):
        raise LineFormatError(line, f"expected 2 or 3 fields, got {len(parts)}")
    try:
        buy = RECORD_DECIMAL.parse(parts[2]) if len(parts) == 3 else None
        return parts[0].strip().upper(), _parse_signal(parts[1]), buy
    except ValueError as e:
        raise LineFormatError(line, f"invalid last signal line ({e})") from e


# ============================================================================
# Last notified signals
# ============================================================================

def last_sent_to_line(currency_pair: str, signal: TradingSignal, buy_percentage: float, sent_at: datetime) -> str:
    return FIELD_SEPARATOR.join([
        currency_pair,
        signal.name,
        RECORD_DECIMAL.format(buy_percentage),
        sent_at.strftime(TIMESTAMP_FORMAT),
    ])


def last_sent_from_line(line: str) -> tuple[str, TradingSignal, float, datetime]:
    """Parse a last notified signal line; the buy share may use ',' or '.'."""
    parts = _split(line, 4)
    try:
        return (
            parts[0].strip().upper(),
            _parse_signal(parts[1]),
            CHANGE_DECIMAL.parse(parts[2]),
            datetime.strptime(parts[3].strip(), TIMESTAMP_FORMAT),
        )
    except ValueError as e:
        raise LineFormatError(line, f"invalid last sent line ({e})") from e
