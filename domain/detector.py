"""
Signal change detection.

The detector owns a keyed store of the last observed state per instrument
and compares each new record against it. The store has a single writer
(the pipeline cycle); its lock keeps it consistent should cycles ever run
concurrently.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from .display import IMPORTANCE_DISPLAY
from .enums import TradingSignal
from .models import CurrencyPairData, SignalChangeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalState:
    """Last observation of one instrument."""
    signal: TradingSignal
    buy_percentage: float | None  # None when restored from a signal-only file
    observed_at: datetime | None = None


class SignalStateStore:
    """Instrument -> last observed SignalState."""

    def __init__(self, states: Mapping[str, SignalState] | None = None):
        self._states: dict[str, SignalState] = dict(states or {})
        self._lock = threading.Lock()

    def get(self, instrument: str) -> SignalState | None:
        with self._lock:
            return self._states.get(instrument)

    def put(self, instrument: str, state: SignalState) -> None:
        with self._lock:
            self._states[instrument] = state

    def swap(self, instrument: str, state: SignalState) -> SignalState | None:
        """Store state and return the one it replaced, as a single step."""
        with self._lock:
            previous = self._states.get(instrument)
            self._states[instrument] = state
            return previous

    def signals(self) -> dict[str, TradingSignal]:
        with self._lock:
            return {pair: state.signal for pair, state in self._states.items()}

    def snapshot(self) -> dict[str, SignalState]:
        with self._lock:
            return dict(self._states)

    def clear(self) -> None:
        with self._lock:
            self._states.clear()

    def __contains__(self, instrument: object) -> bool:
        with self._lock:
            return instrument in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class ChangeDetector:
    """
    Emits a SignalChangeEvent when an instrument's signal differs from the
    previous observation.

    First observation of an instrument only seeds the store. When the
    signal is unchanged the stored buy percentage is refreshed and nothing
    is emitted.
    """

    def __init__(
        self,
        store: SignalStateStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store if store is not None else SignalStateStore()
        self._clock = clock

    def observe(self, instrument: str, record: CurrencyPairData) -> SignalChangeEvent | None:
        # Every branch ends with the new state stored, so read and write are one swap
        previous = self.store.swap(
            instrument,
            SignalState(
                signal=record.trading_signal,
                buy_percentage=record.buy_percentage,
                observed_at=record.timestamp,
            ),
        )

        if previous is None:
            logger.debug(f"First observation of {instrument}: {record.trading_signal.name}")
            return None

        if previous.signal == record.trading_signal:
            return None

        from_buy = previous.buy_percentage
        if from_buy is None:
            logger.warning(f"No previous buy percentage stored for {instrument}, using the current one")
            from_buy = record.buy_percentage

        event = SignalChangeEvent(
            currency_pair=instrument,
            from_signal=previous.signal,
            to_signal=record.trading_signal,
            change_time=self._clock(),
            from_buy_percentage=from_buy,
            to_buy_percentage=record.buy_percentage,
        )

        logger.info(
            f"Signal change: {instrument} {event.change_description} "
            f"(importance: {IMPORTANCE_DISPLAY[event.importance].label})",
            extra={
                "currency_pair": instrument,
                "from_signal": event.from_signal.name,
                "to_signal": event.to_signal.name,
                "importance": event.importance.name,
            },
        )
        return event

    def observe_all(self, records: Iterable[CurrencyPairData]) -> list[SignalChangeEvent]:
        """Observe each record under its own instrument and collect the events."""
        events = []
        for record in records:
            event = self.observe(record.currency_pair, record)
            if event is not None:
                events.append(event)
        return events
