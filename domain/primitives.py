from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .enums import Confidence, TradingSignal
from .models import CurrencyPairData


@dataclass(frozen=True)
class ExtractionResult:
    """
    Records produced by one fetch of one source.

    Behaves as a read-only sequence of its records. Anything other than
    Confidence.EXTRACTED is degraded output that must not be treated as a
    successful extraction.
    """
    source: str
    records: tuple[CurrencyPairData, ...]
    confidence: Confidence = Confidence.EXTRACTED
    strategy: str = ""
    fetched_at: datetime = field(default_factory=datetime.now)
    note: str | None = None

    @property
    def is_degraded(self) -> bool:
        return self.confidence != Confidence.EXTRACTED

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[CurrencyPairData]:
        return iter(self.records)

    def __getitem__(self, index: int) -> CurrencyPairData:
        return self.records[index]

    @classmethod
    def extracted(
        cls,
        source: str,
        records: Sequence[CurrencyPairData],
        strategy: str = "",
    ) -> "ExtractionResult":
        return cls(source=source, records=tuple(records), strategy=strategy)

    @classmethod
    def fallback(cls, source: str, record: CurrencyPairData, reason: str) -> "ExtractionResult":
        return cls(
            source=source,
            records=(record,),
            confidence=Confidence.FALLBACK,
            strategy="fallback",
            note=reason,
        )

    @classmethod
    def placeholder(cls, source: str, instruments: Sequence[str], reason: str) -> "ExtractionResult":
        """Synthetic UNKNOWN 50/50 rows standing in for a source that yielded nothing."""
        records = tuple(
            CurrencyPairData(
                currency_pair=instrument,
                buy_percentage=50.0,
                sell_percentage=50.0,
                trading_signal=TradingSignal.UNKNOWN,
            )
            for instrument in instruments
        )
        return cls(
            source=source,
            records=records,
            confidence=Confidence.PLACEHOLDER,
            strategy="placeholder",
            note=reason,
        )
