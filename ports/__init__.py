from .sources import (
    SentimentSource,
    RecordSink,
    ChangeNotifier,
    AdapterError,
    FetchError,
    ParseError,
    DataError,
    SchedulingError,
    ErrorCode,
)

__all__ = [
    "SentimentSource",
    "RecordSink",
    "ChangeNotifier",
    "AdapterError",
    "FetchError",
    "ParseError",
    "DataError",
    "SchedulingError",
    "ErrorCode",
]
