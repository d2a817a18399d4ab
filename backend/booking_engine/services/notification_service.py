"""Booking notifications: WhatsApp webhook first, email when it is unavailable."""

from __future__ import annotations

import enum
import logging
import smtplib
import threading
import time
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from typing import Callable

import httpx
from fastapi import BackgroundTasks
from jinja2 import Environment, select_autoescape

from booking_engine.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_STRING_ENV = Environment(autoescape=select_autoescape(["html", "xml"]))
_CONFIRMED_SUBJECT = _STRING_ENV.from_string("Booking {{ booking_id }} confirmed")
_CONFIRMED_HTML = _STRING_ENV.from_string(
    "<p>Booking <strong>{{ booking_id }}</strong> for customer {{ customer_ref }} "
    "is confirmed.</p>\n<p>{{ summary }}</p>\n"
)


class BreakerState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Stops calling a failing channel for ``ttl_seconds`` after ``threshold`` failures.

    The breaker closes again once the TTL has elapsed, and any success resets
    the failure count.
    """

    def __init__(
        self,
        *,
        threshold: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = max(1, threshold)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        if self._clock() - self._opened_at >= self.ttl_seconds:
            self._opened_at = None
            self._failures = 0
            return BreakerState.CLOSED
        return BreakerState.OPEN

    def allow(self) -> bool:
        with self._lock:
            return self._current_state() is BreakerState.CLOSED

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.threshold and self._opened_at is None:
                self._opened_at = self._clock()
                logger.warning(
                    "Notification breaker opened after %d failures", self._failures
                )


@dataclass(frozen=True, slots=True)
class BookingConfirmedEvent:
    booking_id: str
    customer_ref: str
    summary: str

    def as_payload(self) -> dict[str, str]:
        return {
            "event": "booking.confirmed",
            "booking_id": self.booking_id,
            "customer_ref": self.customer_ref,
            "summary": self.summary,
        }


def build_booking_confirmed_event(booking) -> BookingConfirmedEvent:
    service_kind = getattr(booking.service_kind, "value", booking.service_kind)
    summary = (
        f"{service_kind.capitalize()} of {booking.amount} units on "
        f"{booking.window_start.isoformat()} to {booking.window_end.isoformat()} "
        f"(zone {booking.zone_tag})"
    )
    return BookingConfirmedEvent(
        booking_id=str(booking.id),
        customer_ref=booking.customer_ref,
        summary=summary,
    )


def build_booking_confirmed_email(event: BookingConfirmedEvent) -> tuple[str, str, str]:
    """Return subject, plain-text body and HTML body."""
    context = event.as_payload()
    subject = _CONFIRMED_SUBJECT.render(**context)
    body = (
        f"Booking {event.booking_id} for customer {event.customer_ref} is confirmed.\n\n"
        f"{event.summary}\n"
    )
    return subject, body, _CONFIRMED_HTML.render(**context)


class NotificationDispatcher:
    """Delivers booking events, owning the breaker that guards the webhook."""

    def __init__(
        self,
        settings: Settings,
        *,
        breaker: CircuitBreaker | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.breaker = breaker or CircuitBreaker(
            threshold=settings.notification_breaker_threshold,
            ttl_seconds=settings.notification_breaker_ttl_seconds,
        )
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.settings.whatsapp_webhook_url) or self._email_configured()

    def _email_configured(self) -> bool:
        return bool(
            self.settings.smtp_host
            and self.settings.smtp_port
            and self.settings.notification_email
        )

    def send_booking_confirmed(self, event: BookingConfirmedEvent) -> str:
        """Deliver an event and return the channel used."""
        if self.settings.whatsapp_webhook_url and self.breaker.allow():
            try:
                self._post_webhook(event)
            except httpx.HTTPError as exc:
                self.breaker.record_failure()
                logger.warning(
                    "WhatsApp delivery failed for booking %s: %s", event.booking_id, exc
                )
            else:
                self.breaker.record_success()
                return "whatsapp"

        subject, body, html = build_booking_confirmed_email(event)
        if self._send_email(subject, body, html):
            return "email"
        logger.info("No notification channel delivered booking %s", event.booking_id)
        return "skipped"

    def _post_webhook(self, event: BookingConfirmedEvent) -> None:
        with httpx.Client(
            timeout=self.settings.whatsapp_timeout_seconds, transport=self._transport
        ) as client:
            response = client.post(
                self.settings.whatsapp_webhook_url, json=event.as_payload()
            )
            response.raise_for_status()

    def _send_email(self, subject: str, body: str, html: str | None = None) -> bool:
        settings = self.settings
        if not self._email_configured():
            logger.info("SMTP settings missing; skipping email notification")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["To"] = settings.notification_email
        message["From"] = settings.smtp_from or settings.smtp_username or "no-reply@booking-engine.local"
        message.set_content(body)
        if html:
            message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=5) as smtp:
                if settings.smtp_username and settings.smtp_password:
                    smtp.starttls()
                    smtp.login(settings.smtp_username, settings.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send notification email: %s", exc)
            return False
        logger.info("Notification email sent to %s", settings.notification_email)
        return True


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_settings())


def notify_booking_confirmed(booking, background_tasks: BackgroundTasks) -> None:
    """Queue the booking-confirmed event; delivery never affects the booking."""
    dispatcher = get_dispatcher()
    if not dispatcher.enabled:
        logger.debug("Notifications disabled; skipping booking %s", booking.id)
        return
    background_tasks.add_task(
        dispatcher.send_booking_confirmed, build_booking_confirmed_event(booking)
    )
