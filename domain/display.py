"""
Display metadata for domain enums.

Labels and icons are looked up here rather than stored on the enums so
they never take part in equality or serialization.
"""

from typing import NamedTuple

from .enums import TradingSignal, SignalChangeImportance, SignalChangeActuality


class DisplayInfo(NamedTuple):
    label: str
    icon: str


SIGNAL_DISPLAY: dict[TradingSignal, DisplayInfo] = {
    TradingSignal.BUY: DisplayInfo("Buy", "▲"),
    TradingSignal.SELL: DisplayInfo("Sell", "▼"),
    TradingSignal.NEUTRAL: DisplayInfo("Sideways", "◆"),
    TradingSignal.UNKNOWN: DisplayInfo("Unknown", "?"),
}

IMPORTANCE_DISPLAY: dict[SignalChangeImportance, DisplayInfo] = {
    SignalChangeImportance.CRITICAL: DisplayInfo("Critical", "🔴"),
    SignalChangeImportance.HIGH: DisplayInfo("High", "🟠"),
    SignalChangeImportance.MEDIUM: DisplayInfo("Medium", "🟡"),
    SignalChangeImportance.LOW: DisplayInfo("Low", "🟢"),
}

ACTUALITY_DISPLAY: dict[SignalChangeActuality, DisplayInfo] = {
    SignalChangeActuality.VERY_RECENT: DisplayInfo("Very recent", "🔴"),
    SignalChangeActuality.RECENT: DisplayInfo("Recent", "🟡"),
    SignalChangeActuality.THIS_WEEK: DisplayInfo("This week", "🟢"),
    SignalChangeActuality.OLD: DisplayInfo("Older", "⚪"),
}


def signal_label(signal: TradingSignal) -> str:
    return SIGNAL_DISPLAY[signal].label


def combined_icon(importance: SignalChangeImportance, actuality: SignalChangeActuality) -> str:
    """Actuality icon, prefixed with an alert marker for critical and high changes."""
    base = ACTUALITY_DISPLAY[actuality].icon
    if importance == SignalChangeImportance.CRITICAL:
        return "🚨" + base
    if importance == SignalChangeImportance.HIGH:
        return "⚠️" + base
    return base
