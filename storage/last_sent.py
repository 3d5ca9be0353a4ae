"""
Signals already announced by email.

<data_dir>/signal_changes/lastsend.csv keeps, per instrument, the signal
and buy share of the last notification. A new change is only announced
when the buy share has moved at least the configured threshold since.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from domain import SignalChangeEvent, TradingSignal
from domain.csv_format import (
    LAST_SENT_HEADER,
    LineFormatError,
    is_header,
    last_sent_from_line,
    last_sent_to_line,
)

from .signal_history import SUBDIRECTORY

logger = logging.getLogger(__name__)

LAST_SENT_FILE = "lastsend.csv"


@dataclass(frozen=True)
class SentSignal:
    signal: TradingSignal
    buy_percentage: float
    sent_at: datetime


class LastSentStore:
    """Per-instrument record of the last notified signal, loaded once and rewritten on every update."""

    def __init__(self, data_dir: Path | str = "data"):
        self.path = Path(data_dir) / SUBDIRECTORY / LAST_SENT_FILE
        self._lock = threading.Lock()
        self._sent: dict[str, SentSignal] = self._load()

    def _load(self) -> dict[str, SentSignal]:
        if not self.path.exists():
            return {}

        sent = {}
        with open(self.path, encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or is_header(line, LAST_SENT_HEADER):
                    continue
                try:
                    pair, signal, buy, sent_at = last_sent_from_line(line)
                except LineFormatError as e:
                    logger.warning(f"{self.path.name}:{number}: skipped: {e.reason}")
                    continue
                sent[pair] = SentSignal(signal, buy, sent_at)

        logger.info(f"Loaded last sent signals for {len(sent)} pair(s)")
        return sent

    def get(self, currency_pair: str) -> SentSignal | None:
        with self._lock:
            return self._sent.get(currency_pair.strip().upper())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)

    def should_send(self, event: SignalChangeEvent, threshold_percent: float) -> bool:
        """
        True when nothing was sent for the instrument yet, or its buy share
        moved at least threshold_percent since the last notification.
        """
        last = self.get(event.currency_pair)
        if last is None:
            return True

        moved = abs(event.to_buy_percentage - last.buy_percentage)
        if moved >= threshold_percent:
            logger.info(
                f"Threshold reached for {event.currency_pair}: "
                f"{last.buy_percentage:.1f}% -> {event.to_buy_percentage:.1f}% "
                f"(moved {moved:.1f} >= {threshold_percent:.1f})"
            )
            return True

        logger.debug(
            f"Threshold not reached for {event.currency_pair}: moved {moved:.1f} < {threshold_percent:.1f}"
        )
        return False

    def record(self, events: list[SignalChangeEvent], sent_at: datetime) -> None:
        """Remember the given changes as sent and rewrite the file."""
        with self._lock:
            for event in events:
                self._sent[event.currency_pair.strip().upper()] = SentSignal(event.to_signal, event.to_buy_percentage, sent_at)
            self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(LAST_SENT_HEADER + "\n")
            for pair, sent in sorted(self._sent.items()):
                f.write(last_sent_to_line(pair, sent.signal, sent.buy_percentage, sent.sent_at) + "\n")
        tmp_path.replace(self.path)
        logger.debug(f"Saved last sent signals for {len(self._sent)} pair(s)")
