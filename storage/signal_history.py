"""
Signal change history and last known signals.

Both files live in <data_dir>/signal_changes/:
- signal_changes_history.csv: every detected change, appended
- last_known_signals.csv: latest signal and buy share per instrument, rewritten
  after each cycle so detection survives a restart
"""

import logging
import threading
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from domain import SignalChangeEvent, SignalChangeImportance, SignalState, SignalStateStore, TradingSignal
from domain.csv_format import (
    CHANGE_HEADER,
    LAST_SIGNAL_HEADER,
    LineFormatError,
    change_from_line,
    change_to_line,
    is_header,
    last_signal_from_line,
    last_signal_to_line,
)
from domain.display import IMPORTANCE_DISPLAY

logger = logging.getLogger(__name__)

SUBDIRECTORY = "signal_changes"
HISTORY_FILE = "signal_changes_history.csv"
LAST_KNOWN_FILE = "last_known_signals.csv"


@dataclass
class SignalChangeStats:
    """Aggregate view of the stored history."""
    total: int = 0
    last_24h: int = 0
    monitored_pairs: int = 0
    by_importance: dict[SignalChangeImportance, int] = field(default_factory=dict)
    by_pair: dict[str, int] = field(default_factory=dict)

    def format(self) -> str:
        lines = [
            "Signal change statistics",
            "========================",
            f"Total changes:      {self.total}",
            f"Last 24 hours:      {self.last_24h}",
            f"Monitored pairs:    {self.monitored_pairs}",
            "",
            "By importance:",
        ]
        for importance in SignalChangeImportance:
            info = IMPORTANCE_DISPLAY[importance]
            lines.append(f"  {info.icon} {info.label}: {self.by_importance.get(importance, 0)}")
        if self.by_pair:
            lines.append("")
            lines.append("By pair:")
            for pair, count in sorted(self.by_pair.items(), key=lambda kv: (-kv[1], kv[0])):
                lines.append(f"  {pair}: {count}")
        return "\n".join(lines)


class SignalChangeHistory:
    """
    Append-only store of signal changes with simple queries.

    Queries re-read the file, so several processes appending to the same
    directory see each other's changes.
    """

    def __init__(self, data_dir: Path | str = "data", clock: Callable[[], datetime] = datetime.now):
        self.directory = Path(data_dir) / SUBDIRECTORY
        self.history_path = self.directory / HISTORY_FILE
        self.last_known_path = self.directory / LAST_KNOWN_FILE
        self._clock = clock
        self._lock = threading.Lock()

    # ========================================================================
    # History
    # ========================================================================

    def append(self, events: Sequence[SignalChangeEvent]) -> int:
        if not events:
            return 0

        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            needs_header = not self.history_path.exists() or self.history_path.stat().st_size == 0
            with open(self.history_path, "a", encoding="utf-8", newline="\n") as f:
                if needs_header:
                    f.write(CHANGE_HEADER + "\n")
                for event in events:
                    f.write(change_to_line(event) + "\n")

        logger.info(f"Stored {len(events)} signal change(s)", extra={"file": str(self.history_path)})
        return len(events)

    def load_all(self) -> list[SignalChangeEvent]:
        """All stored changes in file order; malformed lines are skipped."""
        with self._lock:
            return self._read_history()

    def _read_history(self) -> list[SignalChangeEvent]:
        if not self.history_path.exists():
            return []

        events = []
        with open(self.history_path, encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line == CHANGE_HEADER:
                    continue
                try:
                    events.append(change_from_line(line))
                except LineFormatError as e:
                    logger.warning(f"{self.history_path.name}:{number}: skipped: {e.reason}")
        return events

    def history_for(self, currency_pair: str) -> list[SignalChangeEvent]:
        """Changes of one instrument, newest first."""
        pair = currency_pair.strip().upper()
        events = [e for e in self.load_all() if e.currency_pair == pair]
        return sorted(events, key=lambda e: e.change_time, reverse=True)

    def recent(self, currency_pair: str, count: int) -> list[SignalChangeEvent]:
        return self.history_for(currency_pair)[:count]

    def within_hours(self, currency_pair: str, hours: float) -> list[SignalChangeEvent]:
        now = self._clock()
        return [e for e in self.history_for(currency_pair) if e.is_within_hours(hours, now=now)]

    def most_recent(self, currency_pair: str) -> SignalChangeEvent | None:
        history = self.history_for(currency_pair)
        return history[0] if history else None

    def statistics(self) -> SignalChangeStats:
        events = self.load_all()
        now = self._clock()
        return SignalChangeStats(
            total=len(events),
            last_24h=sum(1 for e in events if e.is_within_hours(24, now=now)),
            monitored_pairs=len(self.load_last_known()),
            by_importance=dict(Counter(e.importance for e in events)),
            by_pair=dict(Counter(e.currency_pair for e in events)),
        )

    def cleanup(self, days_to_keep: int) -> int:
        """Drop changes older than days_to_keep and rewrite the file. Returns the number removed."""
        cutoff = self._clock() - timedelta(days=days_to_keep)

        with self._lock:
            events = self._read_history()
            kept = [e for e in events if e.change_time >= cutoff]
            removed = len(events) - len(kept)
            if removed:
                self._rewrite(self.history_path, CHANGE_HEADER, [change_to_line(e) for e in kept])
                logger.info(f"Removed {removed} signal change(s) older than {days_to_keep} days")

        return removed

    # ========================================================================
    # Last known signals
    # ========================================================================

    def save_last_known(self, store: SignalStateStore) -> None:
        """Persist the latest signal and buy percentage per instrument."""
        states = store.snapshot()
        lines = [
            last_signal_to_line(pair, state.signal, state.buy_percentage)
            for pair, state in sorted(states.items())
        ]
        with self._lock:
            self._rewrite(self.last_known_path, LAST_SIGNAL_HEADER, lines)
        logger.debug(f"Saved last known signals for {len(states)} pair(s)")

    def load_last_known(self) -> dict[str, TradingSignal]:
        return {pair: state.signal for pair, state in self.load_last_known_states().items()}

    def load_last_known_states(self) -> dict[str, SignalState]:
        """Last known state per instrument; buy_percentage is None for signal-only lines."""
        with self._lock:
            if not self.last_known_path.exists():
                return {}

            states: dict[str, SignalState] = {}
            with open(self.last_known_path, encoding="utf-8") as f:
                for number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line or is_header(line, LAST_SIGNAL_HEADER):
                        continue
                    try:
                        pair, signal, buy = last_signal_from_line(line)
                    except LineFormatError as e:
                        logger.warning(f"{self.last_known_path.name}:{number}: skipped: {e.reason}")
                        continue
                    states[pair] = SignalState(signal=signal, buy_percentage=buy)

        logger.info(f"Loaded last known signals for {len(states)} pair(s)")
        return states

    def _rewrite(self, path: Path, header: str, lines: list[str]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(header + "\n")
            for line in lines:
                f.write(line + "\n")
        tmp_path.replace(path)
