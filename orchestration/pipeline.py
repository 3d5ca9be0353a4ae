"""
Sentiment collection cycle.

One cycle:
1. Fetch every source (sequentially, each with its own timeout)
2. Run extracted records through change detection
3. Hand records and changes to the sink
4. Announce the changes (email, when configured)

Handles partial failures gracefully - never crashes on single source failure.
Degraded output (fallback or placeholder records) is reported but kept out
of detection and persistence.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum

from adapters import CurrentRatioAdapter, FearGreedAdapter
from config import SentimentConfig, get_config
from domain import ChangeDetector, CurrencyPairData, SignalChangeEvent, SignalStateStore
from ports import ChangeNotifier, FetchError, RecordSink, SentimentSource
from services import create_notification_engine
from storage import CsvRecordSink, DataFileStore, SignalChangeHistory

logger = logging.getLogger(__name__)


# ============================================================================
# Cycle Status Tracking
# ============================================================================

class SourceStatus(str, Enum):
    """Status of a data source within one cycle."""
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class SourceResult:
    """Result from fetching a single source."""
    source: str
    status: SourceStatus
    records: list[CurrencyPairData] = field(default_factory=list)
    error: str | None = None
    note: str | None = None
    fetch_time: datetime = field(default_factory=datetime.now)


@dataclass
class CycleReport:
    """Outcome of one pipeline cycle."""
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    sources: dict[str, SourceResult] = field(default_factory=dict)
    events: list[SignalChangeEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def records(self) -> list[CurrencyPairData]:
        """Records of all sources that extracted successfully."""
        return [
            record
            for result in self.sources.values()
            if result.status == SourceStatus.OK
            for record in result.records
        ]

    @property
    def is_healthy(self) -> bool:
        """At least one source OK and nothing failed outright."""
        ok_count = sum(1 for r in self.sources.values() if r.status == SourceStatus.OK)
        return ok_count >= 1 and not self.errors

    @property
    def duration(self) -> timedelta | None:
        if self.completed_at:
            return self.completed_at - self.started_at
        return None

    def add_warning(self, msg: str) -> None:
        logger.warning(msg)
        self.warnings.append(msg)

    def add_error(self, msg: str) -> None:
        logger.error(msg)
        self.errors.append(msg)

    def summary(self) -> str:
        parts = [f"{name}={result.status.value}" for name, result in self.sources.items()]
        return (
            f"Cycle: {len(self.records)} records, {len(self.events)} changes "
            f"[{', '.join(parts)}]"
        )


# ============================================================================
# Pipeline
# ============================================================================

class SentimentPipeline:
    """
    Fetch -> detect -> persist, once per call to run_cycle().

    Usage:
        pipeline = build_pipeline(get_config())
        report = pipeline.run_cycle()
    """

    def __init__(
        self,
        sources: Sequence[SentimentSource],
        detector: ChangeDetector,
        sink: RecordSink | None = None,
        notifier: ChangeNotifier | None = None,
    ):
        self.sources = list(sources)
        self.detector = detector
        self.sink = sink
        self.notifier = notifier

    def run_cycle(self) -> CycleReport:
        report = CycleReport()
        logger.info(f"Starting cycle with {len(self.sources)} source(s)")

        for source in self.sources:
            result = self._fetch_source(source, report)
            report.sources[result.source] = result
            if result.status == SourceStatus.OK:
                report.events.extend(self.detector.observe_all(result.records))

        records = report.records
        if self.sink is not None and records:
            self._persist(records, report)

        if self.notifier is not None and report.events:
            try:
                self.notifier.notify(report.events)
            except Exception as e:
                report.add_error(f"Notifying signal changes failed - {e}")

        report.completed_at = datetime.now()
        logger.info(
            f"{report.summary()} in {report.duration.total_seconds():.1f}s",
            extra={"records": len(records), "changes": len(report.events)},
        )
        return report

    def _fetch_source(self, source: SentimentSource, report: CycleReport) -> SourceResult:
        """Fetch from a single source with error handling."""
        name = source.source_name
        try:
            extraction = source.fetch_result()

        except FetchError as e:
            report.add_warning(f"{name}: Fetch failed - {e}")
            return SourceResult(source=name, status=SourceStatus.FAILED, error=str(e))

        except Exception as e:
            logger.exception(f"{name}: unexpected error")
            report.add_error(f"{name}: Unexpected error - {e}")
            return SourceResult(source=name, status=SourceStatus.FAILED, error=str(e))

        if extraction.is_degraded:
            report.add_warning(
                f"{name}: {extraction.confidence.value} output ({extraction.note or 'no reason given'})"
            )
            return SourceResult(
                source=name,
                status=SourceStatus.DEGRADED,
                records=list(extraction.records),
                note=extraction.note,
            )

        logger.info(f"  {name}: {len(extraction)} records ({extraction.strategy or 'default'})")
        return SourceResult(
            source=name,
            status=SourceStatus.OK,
            records=list(extraction.records),
        )

    def _persist(self, records: list[CurrencyPairData], report: CycleReport) -> None:
        try:
            self.sink.save_records(records)
        except Exception as e:
            report.add_error(f"Saving records failed - {e}")

        try:
            self.sink.save_changes(report.events)
        except Exception as e:
            report.add_error(f"Saving signal changes failed - {e}")


def restore_signal_states(history: SignalChangeHistory, files: DataFileStore) -> SignalStateStore:
    """
    Seed detection from last_known_signals.csv. Instruments saved without a
    buy percentage take it from their newest record in the daily files.
    """
    states = history.load_last_known_states()
    for pair, state in states.items():
        if state.buy_percentage is None:
            buy = files.last_buy_percentage(pair)
            if buy is not None:
                states[pair] = replace(state, buy_percentage=buy)
                logger.debug(f"Restored buy percentage for {pair} from data files: {buy:.2f}")
    return SignalStateStore(states)


def build_pipeline(config: SentimentConfig | None = None) -> SentimentPipeline:
    """
    Wire the configured sources, a detector seeded from the last known
    signals on disk, the CSV sink and, when enabled, email notification.
    """
    config = config or get_config()

    sources: list[SentimentSource] = []
    if config.sources.current_ratio.enabled:
        sources.append(CurrentRatioAdapter(config.sources.current_ratio, config.http))
    if config.sources.fear_greed.enabled:
        sources.append(FearGreedAdapter(config.sources.fear_greed, config.http))
    if not sources:
        logger.warning("All sources are disabled")

    files = DataFileStore(config.storage.data_dir)
    history = SignalChangeHistory(config.storage.data_dir)
    store = restore_signal_states(history, files)
    detector = ChangeDetector(store)
    sink = CsvRecordSink(files, history, store)

    notifier = None
    if config.notifications.enabled:
        notifier = create_notification_engine(config.notifications, config.storage.data_dir)
        logger.info(f"Email notifications to {', '.join(config.notifications.to_emails)}")

    return SentimentPipeline(sources, detector, sink, notifier)
