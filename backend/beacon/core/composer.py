"""
Builds per-recipient subscriber emails for status page events and hands them
to the delivery queue. Nothing here sends mail.

Every fan-out event goes through fan_out(): resolve the base URL (skip the
event when unset), pick eligible subscriptions, render one message per
subscriber, enqueue. Event types differ only in their renderer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from html import escape
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from ..models import Incident, StatusPage, Subscriber, Subscription
from .app_settings import primary_base_url
from .errors import ConfigMissing, NotFound

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    SUBSCRIPTION_CONFIRMATION = "subscription_confirmation"
    INCIDENT_CREATED = "incident_created"
    INCIDENT_UPDATE = "incident_update"
    INCIDENT_RESOLVED = "incident_resolved"
    STATUS_CHANGE = "status_change"

    def __str__(self) -> str:
        return self.value


# Subscription flag gating each fan-out type
ELIGIBILITY_FLAGS: Dict[NotificationType, str] = {
    NotificationType.INCIDENT_CREATED: "notify_incidents",
    NotificationType.INCIDENT_UPDATE: "notify_incidents",
    NotificationType.INCIDENT_RESOLVED: "notify_incidents",
    NotificationType.STATUS_CHANGE: "notify_status_changes",
}

STATUS_NAMES = {0: "Down", 1: "Up", 2: "Pending", 3: "Maintenance"}
STATUS_COLORS = {0: "#dc3545", 1: "#28a745", 2: "#ffc107", 3: "#17a2b8"}
UNKNOWN_STATUS_NAME = "Unknown"
UNKNOWN_STATUS_COLOR = "#6c757d"

INCIDENT_STYLE_MARKERS = {
    "danger": "🔴",
    "warning": "🟠",
    "info": "🔵",
    "primary": "ℹ️",
    "dark": "⚫",
}
DEFAULT_STYLE_MARKER = "📢"


class Enqueuer(Protocol):
    def enqueue(self, db: Session, subscriber_id: int, notification_type: str, payload: Dict[str, Any]) -> Any:
        ...


@dataclass(frozen=True)
class Message:
    to: str
    subject: str
    html: str

    def as_dict(self) -> Dict[str, str]:
        return {"to": self.to, "subject": self.subject, "html": self.html}


Renderer = Callable[["EventContext", Subscriber, str], Message]


@dataclass
class EventContext:
    type: NotificationType
    status_page: StatusPage
    renderer: Renderer
    context: Dict[str, Any] = field(default_factory=dict)
    incident: Optional[Incident] = None


# ---------- helpers ----------


def _lookup(table: Dict[int, str], code: Any, default: str) -> str:
    try:
        return table.get(code, default)
    except TypeError:
        # unhashable codes, e.g. lists from a JSON context
        return default


def status_name(code: Any) -> str:
    return _lookup(STATUS_NAMES, code, UNKNOWN_STATUS_NAME)


def status_color(code: Any) -> str:
    return _lookup(STATUS_COLORS, code, UNKNOWN_STATUS_COLOR)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M UTC")


def is_eligible(subscription: Subscription, notification_type: NotificationType) -> bool:
    flag = ELIGIBILITY_FLAGS.get(NotificationType(notification_type))
    if flag is None:
        return False
    return bool(subscription.verified) and bool(getattr(subscription, flag))


def unsubscribe_url(base_url: str, slug: str, subscriber: Subscriber) -> str:
    return f"{base_url}/api/status-page/{slug}/unsubscribe/{subscriber.unsubscribe_token}"


def verify_url(base_url: str, slug: str, subscription: Subscription) -> str:
    return f"{base_url}/api/status-page/{slug}/verify/{subscription.verification_token}"


def _wrap(inner: str, unsubscribe: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{inner}"
        '<hr style="margin: 30px 0; border: none; border-top: 1px solid #ddd;">'
        '<p style="color: #999; font-size: 11px;">'
        f'To unsubscribe from these notifications, click <a href="{escape(unsubscribe)}">here</a>.'
        "</p>"
        "</div>"
    )


def _load_incident(db: Session, incident_id: int) -> Incident:
    incident = db.get(Incident, incident_id)
    if incident is None:
        raise NotFound("Incident not found")
    return incident


def _load_status_page(db: Session, status_page_id: Optional[int]) -> StatusPage:
    page = db.get(StatusPage, status_page_id) if status_page_id is not None else None
    if page is None or not page.slug:
        raise NotFound("Status page not found")
    return page


# ---------- renderers ----------


def render_incident_created(event: EventContext, subscriber: Subscriber, unsubscribe: str) -> Message:
    incident = event.incident
    marker = INCIDENT_STYLE_MARKERS.get(incident.style or "", DEFAULT_STYLE_MARKER)
    content = f'<div style="margin: 20px 0;">{escape(incident.content)}</div>' if incident.content else ""
    inner = (
        f"<h2>{marker} {escape(incident.title)}</h2>"
        f"{content}"
        '<p style="color: #666; font-size: 14px;">'
        f"<strong>Posted:</strong> {format_timestamp(incident.created_at)}</p>"
    )
    return Message(
        to=subscriber.email,
        subject=f"[INCIDENT] {incident.title}",
        html=_wrap(inner, unsubscribe),
    )


def render_incident_update(event: EventContext, subscriber: Subscriber, unsubscribe: str) -> Message:
    incident = event.incident
    updated = incident.last_updated_at or incident.created_at
    inner = (
        "<h2>Incident Update</h2>"
        f"<h3>{escape(incident.title)}</h3>"
        '<div style="background-color: #f5f5f5; padding: 15px; border-radius: 4px; margin: 20px 0;">'
        f"{escape(event.context.get('updateMessage') or '')}"
        "</div>"
        '<p style="color: #666; font-size: 14px;">'
        f"<strong>Last Updated:</strong> {format_timestamp(updated)}</p>"
    )
    return Message(
        to=subscriber.email,
        subject=f"[UPDATE] {incident.title}",
        html=_wrap(inner, unsubscribe),
    )


def render_incident_resolved(event: EventContext, subscriber: Subscriber, unsubscribe: str) -> Message:
    incident = event.incident
    inner = (
        '<h2 style="color: #5cb85c;">✅ Incident Resolved</h2>'
        f"<h3>{escape(incident.title)}</h3>"
        f"<p><strong>Posted:</strong> {format_timestamp(incident.created_at)}</p>"
        "<p>This incident has been resolved. All systems are now operational.</p>"
    )
    return Message(
        to=subscriber.email,
        subject=f"[RESOLVED] {incident.title}",
        html=_wrap(inner, unsubscribe),
    )


def render_status_change(event: EventContext, subscriber: Subscriber, unsubscribe: str) -> Message:
    ctx = event.context
    previous_code = ctx["previousStatusCode"]
    current_code = ctx["currentStatusCode"]
    monitor_name = escape(ctx["monitorName"])
    inner = (
        f'<h2 style="color: {status_color(current_code)};">Status Change Alert</h2>'
        f"<p><strong>{monitor_name}</strong> has changed status:</p>"
        '<div style="background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin: 20px 0;">'
        '<p style="margin: 5px 0;">'
        f'<span style="color: {status_color(previous_code)};">● {status_name(previous_code)}</span>'
        " → "
        f'<span style="color: {status_color(current_code)};">● {status_name(current_code)}</span>'
        "</p></div>"
        '<p style="color: #666; font-size: 14px;">'
        "You are receiving this notification because you subscribed to status change alerts.</p>"
    )
    return Message(
        to=subscriber.email,
        subject=f"Status Change: {ctx['monitorName']} is now {status_name(current_code)}",
        html=_wrap(inner, unsubscribe),
    )


# ---------- shared driver ----------


def fan_out(db: Session, queue: Enqueuer, event: EventContext) -> int:
    """Queue one message per eligible subscription of the event's status page. Returns the count."""
    base_url = primary_base_url(db)
    if not base_url:
        logger.warning("Primary base URL is not set. Skipping %s notifications.", event.type)
        return 0

    page = event.status_page
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.status_page_id == page.id)
        .order_by(Subscription.id.asc())
        .all()
    )
    eligible = [s for s in subscriptions if is_eligible(s, event.type)]
    if not eligible:
        logger.debug("No eligible subscribers for %s on status page %s", event.type, page.slug)
        return 0

    logger.info("Sending %s notification to %s subscribers", event.type, len(eligible))

    queued = 0
    for subscription in eligible:
        subscriber = db.get(Subscriber, subscription.subscriber_id)
        if subscriber is None:
            logger.warning("Subscription %s has no subscriber; skipping", subscription.id)
            continue
        message = event.renderer(event, subscriber, unsubscribe_url(base_url, page.slug, subscriber))
        queue.enqueue(db, subscriber.id, event.type.value, {**event.context, "message": message.as_dict()})
        queued += 1

    logger.info("Queued %s notifications for %s verified subscribers", event.type, queued)
    return queued


# ---------- entry points ----------


def notify_incident_created(db: Session, queue: Enqueuer, incident_id: int) -> int:
    incident = _load_incident(db, incident_id)
    page = _load_status_page(db, incident.status_page_id)
    event = EventContext(
        type=NotificationType.INCIDENT_CREATED,
        status_page=page,
        renderer=render_incident_created,
        context={"incidentId": incident.id},
        incident=incident,
    )
    return fan_out(db, queue, event)


def notify_incident_update(db: Session, queue: Enqueuer, incident_id: int, update_message: str) -> int:
    incident = _load_incident(db, incident_id)
    page = _load_status_page(db, incident.status_page_id)
    event = EventContext(
        type=NotificationType.INCIDENT_UPDATE,
        status_page=page,
        renderer=render_incident_update,
        context={"incidentId": incident.id, "updateMessage": update_message},
        incident=incident,
    )
    return fan_out(db, queue, event)


def notify_incident_resolved(db: Session, queue: Enqueuer, incident_id: int) -> int:
    incident = _load_incident(db, incident_id)
    page = _load_status_page(db, incident.status_page_id)
    event = EventContext(
        type=NotificationType.INCIDENT_RESOLVED,
        status_page=page,
        renderer=render_incident_resolved,
        context={"incidentId": incident.id},
        incident=incident,
    )
    return fan_out(db, queue, event)


def notify_status_change(
    db: Session,
    queue: Enqueuer,
    monitor_id: int,
    monitor_name: str,
    status_page_id: int,
    previous_status: Any,
    current_status: Any,
) -> int:
    page = _load_status_page(db, status_page_id)
    event = EventContext(
        type=NotificationType.STATUS_CHANGE,
        status_page=page,
        renderer=render_status_change,
        context={
            "monitorId": monitor_id,
            "monitorName": monitor_name,
            "previousStatus": status_name(previous_status),
            "currentStatus": status_name(current_status),
            "previousStatusCode": previous_status,
            "currentStatusCode": current_status,
        },
    )
    return fan_out(db, queue, event)


def send_subscription_confirmation(
    db: Session,
    queue: Enqueuer,
    subscriber: Subscriber,
    subscription: Subscription,
    status_page_slug: str,
) -> Any:
    """
    Queue the verification email for a new subscription.
    Unlike fan-out events this raises when the base URL is unset, otherwise the
    subscriber could never verify.
    """
    base_url = primary_base_url(db)
    if not base_url:
        raise ConfigMissing("Primary base URL is not set. Configure it before accepting subscriptions.")

    verify = verify_url(base_url, status_page_slug, subscription)
    unsubscribe = unsubscribe_url(base_url, status_page_slug, subscriber)
    inner = (
        "<h2>Confirm Your Subscription</h2>"
        "<p>Thank you for subscribing to status updates!</p>"
        "<p>Please click the button below to verify your email address:</p>"
        '<p style="text-align: center; margin: 30px 0;">'
        f'<a href="{escape(verify)}" style="background-color: #5cb85c; color: white; padding: 12px 24px; '
        'text-decoration: none; border-radius: 4px; display: inline-block;">Verify Email Address</a>'
        "</p>"
        '<p style="color: #666; font-size: 12px;">'
        "If the button doesn't work, copy and paste this link into your browser:<br>"
        f'<a href="{escape(verify)}">{escape(verify)}</a></p>'
    )
    message = Message(to=subscriber.email, subject="Confirm your subscription", html=_wrap(inner, unsubscribe))

    item = queue.enqueue(
        db,
        subscriber.id,
        NotificationType.SUBSCRIPTION_CONFIRMATION.value,
        {"statusPageSlug": status_page_slug, "message": message.as_dict()},
    )
    logger.info("Queued subscription confirmation for %s", subscriber.email)
    return item
