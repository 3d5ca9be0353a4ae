"""CSV implementation of the RecordSink port."""

import logging
from collections.abc import Sequence
from pathlib import Path

from domain import CurrencyPairData, SignalChangeEvent, SignalStateStore

from .files import DataFileStore
from .signal_history import SignalChangeHistory

logger = logging.getLogger(__name__)


class CsvRecordSink:
    """
    Writes each cycle's records to the daily file and its changes to the
    history. When given the detector's store, the last known signals are
    saved alongside the changes.
    """

    def __init__(
        self,
        files: DataFileStore,
        history: SignalChangeHistory,
        state: SignalStateStore | None = None,
    ):
        self.files = files
        self.history = history
        self.state = state

    @classmethod
    def in_directory(cls, data_dir: Path | str, state: SignalStateStore | None = None) -> "CsvRecordSink":
        return cls(DataFileStore(data_dir), SignalChangeHistory(data_dir), state)

    def save_records(self, records: Sequence[CurrencyPairData]) -> None:
        self.files.append(records)

    def save_changes(self, events: Sequence[SignalChangeEvent]) -> None:
        self.history.append(events)
        if self.state is not None:
            self.history.save_last_known(self.state)
