"""
Outbound guest notifications (email).

Fire-and-forget: dispatch never raises and never rolls back the state change
that triggered it. Without SMTP credentials messages are only logged.
Set SMTP_HOST, SMTP_USER, SMTP_PASSWORD (and optionally NOTIFY_FROM) in .env.
"""
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache
from typing import Optional

from mesa.core.clock import format_hhmm
from mesa.core.config import Settings, get_settings
from mesa.models.reservation import Reservation
from mesa.models.table import DiningTable
from mesa.models.waitlist import WaitlistEntry

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    to_email: str
    subject: str
    body: str
    kind: str


class Notifier:
    """Delivers one notification. Implementations may raise; dispatch() never does."""

    def send(self, notification: Notification) -> None:
        raise NotImplementedError

    def dispatch(self, notification: Optional[Notification]) -> bool:
        """Send, logging any failure. Returns True if delivered."""
        if notification is None or not notification.to_email:
            return False
        try:
            self.send(notification)
            return True
        except Exception as e:
            logger.warning(f"Notification '{notification.kind}' to {notification.to_email} failed: {e}")
            return False


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of sending them."""

    def __init__(self):
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(f"[notify:{notification.kind}] to={notification.to_email} subject={notification.subject!r}")


class SmtpNotifier(Notifier):
    """Sends plain-text + HTML email over SMTP with STARTTLS."""

    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = (settings.SMTP_USER or "").strip()
        self.password = (settings.SMTP_PASSWORD or "").strip()
        self.from_address = (settings.NOTIFY_FROM or "").strip() or f"MesaFeliz <{self.user}>"

    def send(self, notification: Notification) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = notification.subject
        msg["From"] = self.from_address
        msg["To"] = notification.to_email
        msg.attach(MIMEText(notification.body, "plain"))
        msg.attach(MIMEText(f"<pre style='font-family:sans-serif'>{notification.body}</pre>", "html"))

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.user, [notification.to_email], msg.as_string())
        logger.info(f"Email '{notification.kind}' sent to {notification.to_email}")


# ----------------------------------------------------------------------
# Message builders
# ----------------------------------------------------------------------

def reservation_booked(reservation: Reservation, restaurant_name: str) -> Optional[Notification]:
    if not reservation.customer_email:
        return None
    when = f"{reservation.date.isoformat()} {format_hhmm(reservation.time)}"
    lines = [
        f"Hi {reservation.customer_name or 'there'},",
        "",
        f"Your table for {reservation.party_size} at {restaurant_name} on {when} is booked.",
        f"Confirmation code: {reservation.confirmation_code}",
    ]
    if reservation.deposit_required and not reservation.deposit_paid:
        lines.append(f"A deposit of {reservation.deposit_amount} is required to confirm it.")
    return Notification(
        to_email=reservation.customer_email,
        subject=f"Reservation {reservation.status.value} - {when}",
        body="\n".join(lines),
        kind="reservation_booked",
    )


def reservation_cancelled(reservation: Reservation, restaurant_name: str) -> Optional[Notification]:
    if not reservation.customer_email:
        return None
    when = f"{reservation.date.isoformat()} {format_hhmm(reservation.time)}"
    body = f"Your reservation {reservation.confirmation_code} at {restaurant_name} on {when} was cancelled."
    if reservation.cancel_reason:
        body += f"\nReason: {reservation.cancel_reason}"
    return Notification(
        to_email=reservation.customer_email,
        subject=f"Reservation cancelled - {when}",
        body=body,
        kind="reservation_cancelled",
    )


def waitlist_offer(entry: WaitlistEntry, table: DiningTable, restaurant_name: str) -> Optional[Notification]:
    if not entry.email:
        return None
    return Notification(
        to_email=entry.email,
        subject=f"Your table at {restaurant_name} is ready",
        body=(
            f"Hi {entry.name},\n\nTable {table.number} is ready for your party of {entry.party_size}. "
            "Please check in with the host."
        ),
        kind="waitlist_offer",
    )


def verification_code(email: str, code: str, ttl_minutes: int) -> Notification:
    return Notification(
        to_email=email,
        subject=f"Your verification code: {code}",
        body=f"Your MesaFeliz verification code is {code}. It expires in {ttl_minutes} minutes.",
        kind="verification_code",
    )


@lru_cache
def get_notifier() -> Notifier:
    """SMTP when credentials are configured, log-only otherwise."""
    settings = get_settings()
    if settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASSWORD:
        return SmtpNotifier(settings)
    logger.debug("SMTP not configured; notifications are logged only")
    return LoggingNotifier()
