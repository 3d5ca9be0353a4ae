"""
Daily CSV files of extracted sentiment records.

One file per calendar day (fxssi_data_YYYY-MM-DD.csv) in the data
directory, header first, one record per line.
"""

import logging
import threading
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from pathlib import Path

from domain import CurrencyPairData
from domain.csv_format import RECORD_HEADER, LineFormatError, record_from_line, record_to_line

logger = logging.getLogger(__name__)

FILE_PREFIX = "fxssi_data_"
FILE_SUFFIX = ".csv"
FILE_DATE_FORMAT = "%Y-%m-%d"


def _entry_key(record: CurrencyPairData) -> tuple[str, str, int]:
    # Same instrument, same minute, same rounded buy share
    return (
        record.timestamp.strftime("%Y-%m-%d %H:%M"),
        record.currency_pair,
        round(record.buy_percentage),
    )


def read_records(path: Path) -> list[CurrencyPairData]:
    """Read all records from one file, skipping the header and bad lines."""
    if not path.exists():
        return []

    records = []
    with open(path, encoding="utf-8") as f:
        for number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line == RECORD_HEADER:
                continue
            try:
                records.append(record_from_line(line))
            except LineFormatError as e:
                logger.warning(f"{path.name}:{number}: skipped: {e.reason}")
    return records


class DataFileStore:
    """Appends records to the file of the day and reads them back."""

    def __init__(self, data_dir: Path | str = "data", today=date.today):
        self.data_dir = Path(data_dir)
        self._today = today
        self._lock = threading.Lock()

    def path_for(self, day: date) -> Path:
        return self.data_dir / f"{FILE_PREFIX}{day.strftime(FILE_DATE_FORMAT)}{FILE_SUFFIX}"

    def append(self, records: Sequence[CurrencyPairData]) -> int:
        """
        Append records to today's file.

        Records already present (same minute, instrument and rounded buy
        share) are dropped. Returns the number of lines written.
        """
        if not records:
            logger.debug("No records to store")
            return 0

        with self._lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path = self.path_for(self._today())

            new_records = self._without_duplicates(records, read_records(path))
            if not new_records:
                logger.info(f"All {len(records)} records already present in {path.name}")
                return 0

            needs_header = not path.exists() or path.stat().st_size == 0
            with open(path, "a", encoding="utf-8", newline="\n") as f:
                if needs_header:
                    f.write(RECORD_HEADER + "\n")
                for record in new_records:
                    f.write(record_to_line(record) + "\n")

        logger.info(
            f"Stored {len(new_records)} records in {path.name}",
            extra={"file": str(path), "count": len(new_records)},
        )
        return len(new_records)

    @staticmethod
    def _without_duplicates(
        records: Iterable[CurrencyPairData],
        existing: Iterable[CurrencyPairData],
    ) -> list[CurrencyPairData]:
        seen = {_entry_key(r) for r in existing}
        result = []
        for record in records:
            key = _entry_key(record)
            if key in seen:
                continue
            seen.add(key)
            result.append(record)
        return result

    def read_for_date(self, day: date) -> list[CurrencyPairData]:
        with self._lock:
            return read_records(self.path_for(day))

    def read_today(self) -> list[CurrencyPairData]:
        return self.read_for_date(self._today())

    def list_data_files(self) -> list[Path]:
        """Data files, newest first."""
        if not self.data_dir.exists():
            return []
        files = self.data_dir.glob(f"{FILE_PREFIX}*{FILE_SUFFIX}")
        return sorted(files, reverse=True)

    def last_buy_percentage(self, currency_pair: str) -> float | None:
        """Buy share of the newest stored record of one instrument, or None."""
        pair = currency_pair.strip().upper()
        with self._lock:
            for path in self.list_data_files():
                records = [r for r in read_records(path) if r.currency_pair == pair]
                if records:
                    return max(records, key=lambda r: r.timestamp).buy_percentage
        return None

    def cleanup_old_files(self, days_to_keep: int) -> int:
        """Delete daily files older than days_to_keep. Returns the number deleted."""
        cutoff = self._today() - timedelta(days=days_to_keep)
        deleted = 0

        with self._lock:
            for path in self.list_data_files():
                stamp = path.name[len(FILE_PREFIX):-len(FILE_SUFFIX)]
                try:
                    day = datetime.strptime(stamp, FILE_DATE_FORMAT).date()
                except ValueError:
                    logger.debug(f"Not a dated data file: {path.name}")
                    continue
                if day < cutoff:
                    path.unlink()
                    deleted += 1
                    logger.info(f"Deleted old data file {path.name}")

        return deleted
