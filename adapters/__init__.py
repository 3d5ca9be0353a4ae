from .base import BaseAdapter
from .current_ratio import CurrentRatioAdapter
from .fear_greed import FearGreedAdapter, FearGreedReading

__all__ = [
    "BaseAdapter",
    "CurrentRatioAdapter",
    "FearGreedAdapter",
    "FearGreedReading",
]
