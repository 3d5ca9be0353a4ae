"""
CSV persistence for sentiment records and signal changes.
"""

from .files import DataFileStore, read_records
from .last_sent import LastSentStore, SentSignal
from .signal_history import SignalChangeHistory, SignalChangeStats
from .sink import CsvRecordSink

__all__ = [
    "DataFileStore",
    "read_records",
    "LastSentStore",
    "SentSignal",
    "SignalChangeHistory",
    "SignalChangeStats",
    "CsvRecordSink",
]
