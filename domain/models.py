"""
Domain models - sentiment records and signal transitions.

Both models are immutable and self-validating. Percentages are kept at the
two decimals they are persisted with and timestamps at whole seconds, so a
record written with domain.csv_format reads back equal.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from .classifier import ThresholdPair, CURRENT_RATIO_THRESHOLDS
from .display import signal_label
from .enums import TradingSignal, SignalChangeImportance, SignalChangeActuality

logger = logging.getLogger(__name__)

# buy + sell must land within 100 +/- this tolerance
CONSISTENCY_TOLERANCE = 1.0

# Inclusive upper bounds per actuality bucket
ACTUALITY_LIMITS: tuple[tuple[SignalChangeActuality, timedelta], ...] = (
    (SignalChangeActuality.VERY_RECENT, timedelta(hours=2)),
    (SignalChangeActuality.RECENT, timedelta(hours=24)),
    (SignalChangeActuality.THIS_WEEK, timedelta(hours=168)),
)


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _round_percentage(v: float) -> float:
    return round(v, 2)


def _truncate_to_second(v: datetime) -> datetime:
    return v.replace(microsecond=0)


# ============================================================================
# Sentiment record
# ============================================================================

class CurrencyPairData(BaseModel):
    """
    Retail positioning snapshot for one instrument.

    The signal is contrarian: a crowd that is mostly long yields SELL.
    A buy/sell split that does not sum to roughly 100 is not rejected;
    the sell side is recomputed from the buy side and a warning logged.
    """
    model_config = {"frozen": True, "extra": "forbid"}

    currency_pair: str = Field(min_length=1, description="Instrument, e.g. EUR/USD")
    buy_percentage: float = Field(description="Share of traders long (0-100 nominal)")
    sell_percentage: float = Field(description="Share of traders short (0-100 nominal)")
    trading_signal: TradingSignal = Field(description="Contrarian signal")
    timestamp: datetime = Field(default_factory=_now, description="Creation time")

    @model_validator(mode="before")
    @classmethod
    def _correct_inconsistent_split(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            buy = float(data["buy_percentage"])
            sell = float(data["sell_percentage"])
        except (KeyError, TypeError, ValueError):
            return data  # field validation reports it

        if abs(buy + sell - 100.0) > CONSISTENCY_TOLERANCE:
            corrected = 100.0 - buy
            logger.warning(
                f"[E405] Inconsistent split for {data.get('currency_pair')}: "
                f"buy={buy:.2f} + sell={sell:.2f} = {buy + sell:.2f}, "
                f"correcting sell to {corrected:.2f}",
                extra={"currency_pair": data.get("currency_pair"), "buy": buy, "sell": sell},
            )
            data = {**data, "sell_percentage": corrected}
        return data

    @field_validator("currency_pair")
    @classmethod
    def _normalize_pair(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("currency_pair cannot be empty")
        return v

    @field_validator("buy_percentage", "sell_percentage")
    @classmethod
    def _round(cls, v: float) -> float:
        return _round_percentage(v)

    @field_validator("timestamp")
    @classmethod
    def _whole_seconds(cls, v: datetime) -> datetime:
        return _truncate_to_second(v)

    @classmethod
    def classified(
        cls,
        currency_pair: str,
        buy_percentage: float,
        sell_percentage: float,
        thresholds: ThresholdPair = CURRENT_RATIO_THRESHOLDS,
        timestamp: datetime | None = None,
    ) -> "CurrencyPairData":
        """Create a record whose signal is derived from the buy percentage."""
        data: dict[str, Any] = {
            "currency_pair": currency_pair,
            "buy_percentage": buy_percentage,
            "sell_percentage": sell_percentage,
            "trading_signal": thresholds.classify(buy_percentage),
        }
        if timestamp is not None:
            data["timestamp"] = timestamp
        return cls(**data)

    def is_consistent(self) -> bool:
        """True if buy + sell lies within [99, 101]."""
        return abs(self.buy_percentage + self.sell_percentage - 100.0) <= CONSISTENCY_TOLERANCE

    def summary(self) -> str:
        return (
            f"{self.currency_pair}: Buy={self.buy_percentage:.0f}%, "
            f"Sell={self.sell_percentage:.0f}%, Signal={self.trading_signal.name}"
        )


# ============================================================================
# Signal transition
# ============================================================================

def derive_importance(from_signal: TradingSignal, to_signal: TradingSignal) -> SignalChangeImportance:
    """Classify a transition by what changed."""
    reversal = {from_signal, to_signal} == {TradingSignal.BUY, TradingSignal.SELL}
    if reversal:
        return SignalChangeImportance.CRITICAL
    if TradingSignal.NEUTRAL in (from_signal, to_signal):
        return SignalChangeImportance.HIGH
    if TradingSignal.UNKNOWN in (from_signal, to_signal):
        return SignalChangeImportance.MEDIUM
    return SignalChangeImportance.LOW


def derive_actuality(elapsed: timedelta) -> SignalChangeActuality:
    """Classify the age of a transition; each bucket includes its upper bound."""
    for actuality, limit in ACTUALITY_LIMITS:
        if elapsed <= limit:
            return actuality
    return SignalChangeActuality.OLD


class SignalChangeEvent(BaseModel):
    """
    A change of an instrument's signal between two consecutive observations.

    Importance is derived from (from_signal, to_signal) once, at
    construction; any importance passed in is replaced. Actuality depends
    on when the event is looked at and is therefore computed per call.
    """
    model_config = {"frozen": True, "extra": "forbid"}

    currency_pair: str = Field(min_length=1)
    from_signal: TradingSignal
    to_signal: TradingSignal
    change_time: datetime
    from_buy_percentage: float
    to_buy_percentage: float
    importance: SignalChangeImportance = SignalChangeImportance.LOW

    @model_validator(mode="before")
    @classmethod
    def _derive_importance(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            from_signal = TradingSignal(data["from_signal"])
            to_signal = TradingSignal(data["to_signal"])
        except (KeyError, ValueError):
            return data  # field validation reports it
        return {**data, "importance": derive_importance(from_signal, to_signal)}

    @field_validator("currency_pair")
    @classmethod
    def _normalize_pair(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("from_buy_percentage", "to_buy_percentage")
    @classmethod
    def _round(cls, v: float) -> float:
        return _round_percentage(v)

    @field_validator("change_time")
    @classmethod
    def _whole_seconds(cls, v: datetime) -> datetime:
        return _truncate_to_second(v)

    def actuality(self, now: datetime | None = None) -> SignalChangeActuality:
        """Recency of this change as seen at `now` (defaults to the current time)."""
        now = now or datetime.now()
        return derive_actuality(now - self.change_time)

    def is_within_hours(self, hours: float, now: datetime | None = None) -> bool:
        now = now or datetime.now()
        return now - self.change_time <= timedelta(hours=hours)

    @property
    def is_direct_reversal(self) -> bool:
        return self.importance == SignalChangeImportance.CRITICAL

    @property
    def change_description(self) -> str:
        return f"{signal_label(self.from_signal)} → {signal_label(self.to_signal)}"

    @property
    def detailed_description(self) -> str:
        return (
            f"{self.change_description} "
            f"({self.from_buy_percentage:.1f}% → {self.to_buy_percentage:.1f}% Buy)"
        )


# ============================================================================
# Serialization helpers
# ============================================================================

def to_json_dict(model: BaseModel) -> dict:
    """Convert model to JSON-serializable dict."""
    return model.model_dump(mode="json")


T = TypeVar("T", bound=BaseModel)


def from_json_dict(model_class: type[T], data: dict) -> T:
    """Create model instance from JSON dict."""
    return model_class.model_validate(data)
