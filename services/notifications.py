"""
Email notification for signal changes.

After each cycle the detected changes are filtered by importance and by
how far the buy share moved since the last mail for the same pair, then
sent as one message. Mails are capped per rolling hour.
"""

import smtplib
import logging
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.header import Header
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from pathlib import Path

from config import NotificationConfig
from domain import SignalChangeEvent, SignalChangeImportance
from domain.display import ACTUALITY_DISPLAY, IMPORTANCE_DISPLAY
from storage import LastSentStore


logger = logging.getLogger(__name__)

EMAIL_TIME_FORMAT = "%d.%m.%Y %H:%M:%S"

IMPORTANCE_COLORS = {
    SignalChangeImportance.CRITICAL: "#d32f2f",
    SignalChangeImportance.HIGH: "#f57c00",
    SignalChangeImportance.MEDIUM: "#fbc02d",
    SignalChangeImportance.LOW: "#388e3c",
}


@dataclass
class NotificationResult:
    """Outcome of one send attempt."""
    success: bool
    message: str
    sent: list[SignalChangeEvent] = field(default_factory=list)


class NotificationEngine:
    """
    Sends signal change mails over SMTP.

    Usage:
        engine = create_notification_engine(config.notifications, config.storage.data_dir)
        engine.notify(report.events)
    """

    def __init__(
        self,
        config: NotificationConfig,
        last_sent: LastSentStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.last_sent = last_sent
        self._clock = clock
        self._sent_times: deque[datetime] = deque()

    # ========================================================================
    # Filtering
    # ========================================================================

    def _wants(self, importance: SignalChangeImportance) -> bool:
        if importance == SignalChangeImportance.CRITICAL:
            return self.config.notify_critical
        if importance == SignalChangeImportance.HIGH:
            return self.config.notify_high
        return self.config.notify_all

    def relevant(self, events: Sequence[SignalChangeEvent]) -> list[SignalChangeEvent]:
        """Changes worth a mail: wanted importance and, per pair, past the threshold."""
        wanted = [e for e in events if self._wants(e.importance)]
        if self.last_sent is None:
            return wanted
        return [e for e in wanted if self.last_sent.should_send(e, self.config.threshold_percent)]

    def sent_last_hour(self) -> int:
        cutoff = self._clock() - timedelta(hours=1)
        while self._sent_times and self._sent_times[0] < cutoff:
            self._sent_times.popleft()
        return len(self._sent_times)

    # ========================================================================
    # Sending
    # ========================================================================

    def notify(self, events: Sequence[SignalChangeEvent]) -> NotificationResult:
        """
        Mail the relevant changes of one cycle.

        Never raises; SMTP failures are logged and reported in the result.
        """
        if not self.config.enabled:
            return NotificationResult(False, "Notifications are disabled")
        if not events:
            return NotificationResult(False, "No signal changes")

        changes = self.relevant(events)
        if not changes:
            logger.debug(f"None of {len(events)} signal change(s) warrants a notification")
            return NotificationResult(False, "No relevant signal changes")

        if self.sent_last_hour() >= self.config.max_per_hour:
            message = f"Email limit reached ({self.config.max_per_hour}/hour)"
            logger.warning(f"{message}, {len(changes)} change(s) not sent")
            return NotificationResult(False, message)

        try:
            self._send_email(
                self._format_subject(changes),
                self._format_text(changes),
                self._format_html(changes),
            )
        except Exception as e:
            logger.error(f"Failed to send signal change notification: {e}")
            return NotificationResult(False, f"Send failed: {e}")

        now = self._clock()
        self._sent_times.append(now)
        if self.last_sent is not None:
            self.last_sent.record(changes, now)

        logger.info(
            f"Notification sent for {len(changes)} signal change(s)",
            extra={"pairs": [e.currency_pair for e in changes]},
        )
        return NotificationResult(True, f"Sent {len(changes)} change(s)", sent=changes)

    def send_test_email(self) -> NotificationResult:
        """Send a short mail to check the configuration end to end."""
        now = self._clock().strftime(EMAIL_TIME_FORMAT)
        text = f"Test message from {self.config.from_name}, sent {now}.\nSMTP: {self._server_label()}"
        html = f"<html><body><h2>{self.config.from_name}</h2><p>Test message sent {now}.</p></body></html>"
        try:
            self._send_email("[FXSSI] Test message", text, html)
        except Exception as e:
            logger.error(f"Test email failed: {e}")
            return NotificationResult(False, f"Send failed: {e}")
        return NotificationResult(True, f"Test email sent to {', '.join(self.config.to_emails)}")

    def test_connection(self) -> NotificationResult:
        """Connect and authenticate without sending anything."""
        logger.info(f"Testing SMTP connection to {self._server_label()}")
        try:
            with self._smtp() as server:
                self._handshake(server)
                server.noop()
        except Exception as e:
            logger.warning(f"SMTP connection test failed: {e}")
            return NotificationResult(False, f"Connection failed: {e}")
        return NotificationResult(True, f"Connection to {self.config.smtp_host} OK")

    def statistics(self) -> str:
        lines = [
            "Email notifications",
            "===================",
            f"Status:           {'enabled' if self.config.enabled else 'disabled'}",
            f"Server:           {self._server_label()}",
            f"Sent last hour:   {self.sent_last_hour()}/{self.config.max_per_hour}",
        ]
        if self.last_sent is not None:
            lines.append(f"Pairs notified:   {len(self.last_sent)}")
        return "\n".join(lines)

    def _server_label(self) -> str:
        return f"{self.config.smtp_host}:{self.config.smtp_port}"

    def _smtp(self) -> smtplib.SMTP:
        factory = smtplib.SMTP_SSL if self.config.use_ssl else smtplib.SMTP
        return factory(self.config.smtp_host, self.config.smtp_port, timeout=self.config.timeout_seconds)

    def _handshake(self, server: smtplib.SMTP) -> None:
        if self.config.use_starttls and not self.config.use_ssl:
            server.starttls()
        if self.config.username:
            server.login(self.config.username, self.config.password)

    def _send_email(self, subject: str, text: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = Header(subject, "utf-8")
        msg["From"] = formataddr((self.config.from_name, self.config.from_email))
        msg["To"] = ", ".join(self.config.to_emails)
        msg["X-Mailer"] = "fxsentiment"

        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        with self._smtp() as server:
            self._handshake(server)
            server.sendmail(self.config.from_email, self.config.to_emails, msg.as_string())

    # ========================================================================
    # Formatting
    # ========================================================================

    def _format_subject(self, changes: list[SignalChangeEvent]) -> str:
        if len(changes) == 1:
            change = changes[0]
            return f"[FXSSI] {change.currency_pair}: {change.change_description}"

        critical = sum(1 for c in changes if c.importance == SignalChangeImportance.CRITICAL)
        if critical:
            return f"[FXSSI] {len(changes)} signal changes ({critical} critical)"
        return f"[FXSSI] {len(changes)} signal changes"

    def _format_text(self, changes: list[SignalChangeEvent]) -> str:
        lines = ["Signal Change Alert", "=" * 40, ""]
        for change in changes:
            line = (
                f"{change.currency_pair}: {change.detailed_description} "
                f"[{IMPORTANCE_DISPLAY[change.importance].label}] "
                f"at {change.change_time.strftime(EMAIL_TIME_FORMAT)}"
            )
            if change.is_direct_reversal:
                line += " (direct reversal)"
            lines.append(line)
        lines.extend(["", f"Sent by {self.config.from_name}"])
        return "\n".join(lines)

    def _format_html(self, changes: list[SignalChangeEvent]) -> str:
        now = self._clock()
        critical = sum(1 for c in changes if c.importance == SignalChangeImportance.CRITICAL)
        high = sum(1 for c in changes if c.importance == SignalChangeImportance.HIGH)

        counts = []
        if critical:
            counts.append(f"{critical} critical")
        if high:
            counts.append(f"{high} high")
        summary = f"{len(changes)} signal change(s)" + (f" ({', '.join(counts)})" if counts else "")

        html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #E74C3C; border-bottom: 2px solid #E74C3C;">Signal Change Alert</h2>
            <p style="font-size: 16px;"><strong>{summary}</strong></p>
        """

        for change in changes:
            color = IMPORTANCE_COLORS[change.importance]
            icon = ACTUALITY_DISPLAY[change.actuality(now)].icon
            reversal = (
                ' <span style="color: #d32f2f; font-weight: bold;">(direct reversal)</span>'
                if change.is_direct_reversal else ""
            )
            html += f"""
            <div style="border-left: 4px solid {color}; padding: 10px; margin: 10px 0;">
                <h4 style="margin: 0 0 5px 0; color: {color};">{icon} {change.currency_pair}</h4>
                <p style="margin: 5px 0;">
                    <strong>Change:</strong> {change.detailed_description}<br>
                    <strong>Time:</strong> {change.change_time.strftime(EMAIL_TIME_FORMAT)}<br>
                    <strong>Importance:</strong> {IMPORTANCE_DISPLAY[change.importance].label}{reversal}
                </p>
            </div>
            """

        html += f"""
            <p style="color: #999; font-size: 0.9em; margin-top: 30px;">
                Sent {now.strftime(EMAIL_TIME_FORMAT)} by {self.config.from_name}
            </p>
        </body>
        </html>
        """
        return html


def create_notification_engine(
    config: NotificationConfig,
    data_dir: Path | str = "data",
) -> NotificationEngine:
    """Engine whose per-pair threshold state lives in the data directory."""
    return NotificationEngine(config, LastSentStore(data_dir))
