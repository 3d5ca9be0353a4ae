"""
Contrarian signal classification.

A crowd that is heavily long is expected to reverse, so a high buy-side
value maps to SELL and a low one to BUY. The markup source reports the
percentage of traders long while the index source reports a fear/greed
score; the two scales are not equivalent and each gets its own threshold
pair.
"""

from dataclasses import dataclass

from .enums import TradingSignal


def classify(value: float, low_threshold: float, high_threshold: float) -> TradingSignal:
    """
    Map a buy-side percentage (or index value) to a signal.

    value > high -> SELL, value < low -> BUY, otherwise NEUTRAL.
    Both bounds belong to the NEUTRAL band. Values outside 0-100 are
    classified as-is.
    """
    if value > high_threshold:
        return TradingSignal.SELL
    if value < low_threshold:
        return TradingSignal.BUY
    return TradingSignal.NEUTRAL


@dataclass(frozen=True)
class ThresholdPair:
    """Lower and upper bound of the NEUTRAL band."""
    low: float
    high: float

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ValueError(f"low threshold {self.low} exceeds high threshold {self.high}")

    def classify(self, value: float) -> TradingSignal:
        return classify(value, self.low, self.high)

    def describe(self) -> str:
        return f"<{self.low:g} BUY, >{self.high:g} SELL"


# Percentage of traders long (FXSSI current ratio)
CURRENT_RATIO_THRESHOLDS = ThresholdPair(low=40.0, high=60.0)

# Fear & Greed index, 0 = extreme fear, 100 = extreme greed
FEAR_GREED_THRESHOLDS = ThresholdPair(low=45.0, high=55.0)
