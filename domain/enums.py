from enum import Enum


class TradingSignal(str, Enum):
    """Contrarian trading signal derived from retail positioning."""
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"


class SignalChangeImportance(str, Enum):
    """Severity of a signal transition, fixed when the transition is detected."""
    CRITICAL = "critical"  # BUY <-> SELL
    HIGH = "high"          # to or from NEUTRAL
    MEDIUM = "medium"      # to or from UNKNOWN
    LOW = "low"


class SignalChangeActuality(str, Enum):
    """Recency of a signal transition relative to the time it is viewed."""
    VERY_RECENT = "very_recent"  # <= 2 hours
    RECENT = "recent"            # <= 24 hours
    THIS_WEEK = "this_week"      # <= 168 hours
    OLD = "old"


class Confidence(str, Enum):
    """How an extraction result was obtained."""
    EXTRACTED = "extracted"      # parsed from the live source
    FALLBACK = "fallback"        # source failed, neutral default substituted
    PLACEHOLDER = "placeholder"  # parsing found nothing, synthetic rows
