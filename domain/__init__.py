from .enums import TradingSignal, SignalChangeImportance, SignalChangeActuality, Confidence
from .classifier import (
    classify,
    ThresholdPair,
    CURRENT_RATIO_THRESHOLDS,
    FEAR_GREED_THRESHOLDS,
)
from .models import (
    CurrencyPairData,
    SignalChangeEvent,
    derive_importance,
    derive_actuality,
    to_json_dict,
    from_json_dict,
)
from .primitives import ExtractionResult
from .detector import ChangeDetector, SignalState, SignalStateStore

__all__ = [
    # Enums
    "TradingSignal",
    "SignalChangeImportance",
    "SignalChangeActuality",
    "Confidence",
    # Classification
    "classify",
    "ThresholdPair",
    "CURRENT_RATIO_THRESHOLDS",
    "FEAR_GREED_THRESHOLDS",
    # Models
    "CurrencyPairData",
    "SignalChangeEvent",
    "derive_importance",
    "derive_actuality",
    "ExtractionResult",
    # Change detection
    "ChangeDetector",
    "SignalState",
    "SignalStateStore",
    # Serialization
    "to_json_dict",
    "from_json_dict",
]
