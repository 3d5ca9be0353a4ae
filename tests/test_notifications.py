"""
Tests for signal change email notification.
"""

import smtplib
from datetime import datetime, timedelta
from email import message_from_string
from email.header import decode_header, make_header
from unittest.mock import patch

import pytest

from config import NotificationConfig
from domain import SignalChangeEvent, TradingSignal
from domain.csv_format import LAST_SENT_HEADER
from services import NotificationEngine, create_notification_engine
from storage import LastSentStore


NOW = datetime(2025, 1, 3, 14, 0, 0)


def change(pair: str, from_signal, to_signal, to_buy: float = 65.0, from_buy: float = 45.0) -> SignalChangeEvent:
    return SignalChangeEvent(
        currency_pair=pair,
        from_signal=from_signal,
        to_signal=to_signal,
        change_time=NOW,
        from_buy_percentage=from_buy,
        to_buy_percentage=to_buy,
    )


def mail_config(**overrides) -> NotificationConfig:
    values = dict(
        enabled=True,
        smtp_host="smtp.example.com",
        username="bot",
        password="secret",
        from_email="bot@example.com",
        to_emails=["me@example.com"],
    )
    values.update(overrides)
    return NotificationConfig(**values)


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def last_sent(tmp_path):
    return LastSentStore(tmp_path)


@pytest.fixture
def engine(last_sent, clock):
    return NotificationEngine(mail_config(), last_sent, clock=clock)


@pytest.fixture
def smtp():
    with patch("services.notifications.smtplib.SMTP") as mock_smtp:
        yield mock_smtp


def sent_server(mock_smtp):
    return mock_smtp.return_value.__enter__.return_value


def sent_message(mock_smtp):
    args = sent_server(mock_smtp).sendmail.call_args.args
    return message_from_string(args[2])


class TestRelevance:
    """Which changes warrant a mail."""

    def test_critical_and_high_by_default(self):
        engine = NotificationEngine(mail_config())
        events = [
            change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL),
            change("GBP/USD", TradingSignal.NEUTRAL, TradingSignal.SELL),
            change("USD/JPY", TradingSignal.UNKNOWN, TradingSignal.BUY),
        ]

        assert [e.currency_pair for e in engine.relevant(events)] == ["EUR/USD", "GBP/USD"]

    def test_notify_all_includes_medium(self):
        engine = NotificationEngine(mail_config(notify_all=True, notify_high=False))
        events = [
            change("GBP/USD", TradingSignal.NEUTRAL, TradingSignal.SELL),
            change("USD/JPY", TradingSignal.UNKNOWN, TradingSignal.BUY),
        ]

        assert [e.currency_pair for e in engine.relevant(events)] == ["USD/JPY"]

    def test_threshold_against_last_sent(self, engine, last_sent):
        last_sent.record([change("EUR/USD", TradingSignal.NEUTRAL, TradingSignal.SELL, to_buy=65.0)], NOW)

        small = change("EUR/USD", TradingSignal.SELL, TradingSignal.NEUTRAL, to_buy=63.0)
        large = change("EUR/USD", TradingSignal.SELL, TradingSignal.NEUTRAL, to_buy=58.0)

        assert engine.relevant([small]) == []
        assert engine.relevant([large]) == [large]

    def test_threshold_reached_exactly(self, engine, last_sent):
        last_sent.record([change("EUR/USD", TradingSignal.NEUTRAL, TradingSignal.SELL, to_buy=65.0)], NOW)
        assert engine.relevant([change("EUR/USD", TradingSignal.SELL, TradingSignal.NEUTRAL, to_buy=62.0)])


class TestNotify:
    """NotificationEngine.notify() against a mocked SMTP server."""

    def test_sends_one_mail(self, engine, smtp):
        events = [
            change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL),
            change("GBP/USD", TradingSignal.NEUTRAL, TradingSignal.SELL),
        ]

        result = engine.notify(events)

        assert result.success
        assert result.sent == events
        smtp.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        server = sent_server(smtp)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "secret")
        assert server.sendmail.call_args.args[:2] == ("bot@example.com", ["me@example.com"])

        msg = sent_message(smtp)
        assert str(make_header(decode_header(msg["Subject"]))) == "[FXSSI] 2 signal changes (1 critical)"
        assert "FXSSI Monitor" in msg["From"]

    def test_single_change_subject(self, engine, smtp):
        engine.notify([change("EUR/USD", TradingSignal.NEUTRAL, TradingSignal.SELL)])

        subject = str(make_header(decode_header(sent_message(smtp)["Subject"])))
        assert subject == "[FXSSI] EUR/USD: Sideways → Sell"

    def test_body_lists_changes(self, engine, smtp):
        engine.notify([change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL)])

        parts = [p.get_payload(decode=True).decode("utf-8") for p in sent_message(smtp).get_payload()]
        text, html = parts
        assert "EUR/USD" in text
        assert "direct reversal" in text
        assert "45.0% → 65.0% Buy" in html

    def test_records_last_sent(self, engine, smtp, last_sent, tmp_path):
        engine.notify([change("EUR/USD", TradingSignal.NEUTRAL, TradingSignal.SELL, to_buy=65.0)])

        assert last_sent.get("EUR/USD").buy_percentage == 65.0
        lines = last_sent.path.read_text(encoding="utf-8").splitlines()
        assert lines == [LAST_SENT_HEADER, "EUR/USD;SELL;65.00;2025-01-03 14:00:00"]

        # survives a restart
        assert LastSentStore(tmp_path).get("EUR/USD").signal == TradingSignal.SELL

    def test_same_pair_not_resent_below_threshold(self, engine, smtp):
        engine.notify([change("EUR/USD", TradingSignal.NEUTRAL, TradingSignal.SELL, to_buy=65.0)])
        result = engine.notify([change("EUR/USD", TradingSignal.SELL, TradingSignal.NEUTRAL, to_buy=64.0)])

        assert not result.success
        assert sent_server(smtp).sendmail.call_count == 1

    def test_disabled_sends_nothing(self, last_sent, smtp):
        engine = NotificationEngine(NotificationConfig(), last_sent)

        result = engine.notify([change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL)])

        assert not result.success
        smtp.assert_not_called()

    def test_hourly_limit(self, clock, smtp):
        engine = NotificationEngine(mail_config(max_per_hour=2), clock=clock)
        event = change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL)

        assert engine.notify([event]).success
        assert engine.notify([event]).success
        limited = engine.notify([event])

        assert not limited.success
        assert "limit" in limited.message
        assert sent_server(smtp).sendmail.call_count == 2

        clock.now = NOW + timedelta(hours=1, seconds=1)
        assert engine.notify([event]).success

    def test_smtp_failure_is_reported_not_raised(self, engine, smtp, last_sent):
        sent_server(smtp).login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        result = engine.notify([change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL)])

        assert not result.success
        assert "Send failed" in result.message
        assert last_sent.get("EUR/USD") is None
        assert engine.sent_last_hour() == 0

    def test_implicit_tls(self, smtp):
        engine = NotificationEngine(mail_config(use_ssl=True, smtp_port=465))

        with patch("services.notifications.smtplib.SMTP_SSL") as smtp_ssl:
            assert engine.notify([change("EUR/USD", TradingSignal.BUY, TradingSignal.SELL)]).success

        smtp.assert_not_called()
        smtp_ssl.assert_called_once_with("smtp.example.com", 465, timeout=10.0)
        sent_server(smtp_ssl).starttls.assert_not_called()


class TestConnectionCheck:

    def test_connection_ok(self, engine, smtp):
        result = engine.test_connection()

        assert result.success
        sent_server(smtp).noop.assert_called_once()
        sent_server(smtp).sendmail.assert_not_called()

    def test_connection_refused(self, engine, smtp):
        smtp.side_effect = ConnectionRefusedError("refused")

        result = engine.test_connection()

        assert not result.success
        assert "refused" in result.message

    def test_send_test_email(self, engine, smtp):
        assert engine.send_test_email().success
        assert sent_server(smtp).sendmail.call_count == 1

    def test_factory_uses_data_dir(self, tmp_path):
        engine = create_notification_engine(mail_config(), tmp_path)
        assert engine.last_sent.path == tmp_path / "signal_changes" / "lastsend.csv"
        assert "Sent last hour:   0/10" in engine.statistics()


class TestLastSentStore:

    def test_skips_malformed_lines(self, tmp_path):
        path = tmp_path / "signal_changes" / "lastsend.csv"
        path.parent.mkdir()
        path.write_text(
            f"{LAST_SENT_HEADER}\nEUR/USD;SELL;65,00;2025-01-03 14:00:00\nbroken line\n",
            encoding="utf-8",
        )

        store = LastSentStore(tmp_path)

        assert len(store) == 1
        assert store.get("eur/usd").buy_percentage == 65.0
