from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import StatusPage, Subscriber, Subscription
from .composer import Enqueuer, send_subscription_confirmation
from .errors import Invalid, NotFound

logger = logging.getLogger(__name__)


@dataclass
class SubscribeResult:
    subscription: Subscription
    already_subscribed: bool = False

    @property
    def needs_verification(self) -> bool:
        return not self.already_subscribed


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def status_page_id_for_slug(db: Session, slug: str) -> int:
    page = db.query(StatusPage).filter(StatusPage.slug == slug).first()
    if not page:
        raise NotFound("Status page not found")
    return page.id


def _normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip()
    if "@" not in email:
        raise Invalid("Valid email address is required")
    return email


def find_or_create_subscriber(db: Session, email: str) -> Subscriber:
    subscriber = db.query(Subscriber).filter(Subscriber.email == email).first()
    if subscriber:
        return subscriber

    subscriber = Subscriber(email=email, unsubscribe_token=generate_token())
    db.add(subscriber)
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent request
        db.rollback()
        return db.query(Subscriber).filter(Subscriber.email == email).one()
    db.refresh(subscriber)
    logger.info("New subscriber created: %s", email)
    return subscriber


def find_subscription(
    db: Session,
    subscriber_id: int,
    status_page_id: int,
    component_id: Optional[int],
) -> Optional[Subscription]:
    query = db.query(Subscription).filter(
        Subscription.subscriber_id == subscriber_id,
        Subscription.status_page_id == status_page_id,
    )
    if component_id is None:
        query = query.filter(Subscription.component_id.is_(None))
    else:
        query = query.filter(Subscription.component_id == component_id)
    return query.first()


def subscribe(
    db: Session,
    queue: Enqueuer,
    email: Optional[str],
    slug: str,
    component_id: Optional[int] = None,
    notify_incidents: bool = True,
    notify_maintenance: bool = True,
    notify_status_changes: bool = False,
) -> SubscribeResult:
    """
    Subscribe an email address to a status page (optionally one component).

    Idempotent per (email, page, component): a repeat call returns the existing
    subscription with already_subscribed=True and queues nothing. A new
    subscription starts unverified and a confirmation email is queued; failing
    to queue it is logged and does not fail the subscription.
    """
    email = _normalize_email(email)
    component_id = component_id or None  # 0 means all components
    status_page_id = status_page_id_for_slug(db, slug)
    subscriber = find_or_create_subscriber(db, email)

    existing = find_subscription(db, subscriber.id, status_page_id, component_id)
    if existing:
        return SubscribeResult(subscription=existing, already_subscribed=True)

    subscription = Subscription(
        subscriber_id=subscriber.id,
        status_page_id=status_page_id,
        component_id=component_id,
        notify_incidents=notify_incidents,
        notify_maintenance=notify_maintenance,
        notify_status_changes=notify_status_changes,
        verified=False,
        verification_token=generate_token(),
    )
    db.add(subscription)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_subscription(db, subscriber.id, status_page_id, component_id)
        if existing is None:
            raise
        return SubscribeResult(subscription=existing, already_subscribed=True)
    db.refresh(subscription)
    logger.info("New subscription created for %s to status page %s", email, status_page_id)

    try:
        send_subscription_confirmation(db, queue, subscriber, subscription, slug)
        logger.info("Verification email queued for %s", email)
    except Exception as exc:
        db.rollback()
        logger.error("Failed to queue verification email for %s: %s", email, exc)

    return SubscribeResult(subscription=subscription)


def verify(db: Session, token: str) -> Subscription:
    subscription = db.query(Subscription).filter(Subscription.verification_token == token).first()
    if not subscription:
        raise NotFound("This verification link is invalid or has expired.")

    if not subscription.verified:
        subscription.verified = True
        db.commit()
        db.refresh(subscription)

    subscriber = db.get(Subscriber, subscription.subscriber_id)
    logger.info("Subscription verified for: %s", subscriber.email if subscriber else subscription.subscriber_id)
    return subscription


def unsubscribe(db: Session, token: str) -> int:
    """Remove every subscription of the token's subscriber, on every status page."""
    subscriber = db.query(Subscriber).filter(Subscriber.unsubscribe_token == token).first()
    if not subscriber:
        raise NotFound("This unsubscribe link is invalid.")

    removed = db.query(Subscription).filter(Subscription.subscriber_id == subscriber.id).delete(
        synchronize_session=False
    )
    db.commit()
    logger.info("Subscriber unsubscribed: %s (%s subscriptions removed)", subscriber.email, removed)
    return removed


def subscriber_count(db: Session, slug: str) -> int:
    # Counts subscription rows, verified or not
    status_page_id = status_page_id_for_slug(db, slug)
    return db.query(Subscription).filter(Subscription.status_page_id == status_page_id).count()


def list_subscribers(db: Session) -> list[Subscriber]:
    return db.query(Subscriber).order_by(Subscriber.created_at.desc(), Subscriber.id.desc()).all()


def list_subscriptions(db: Session, slug: str) -> list[tuple[Subscription, Optional[Subscriber]]]:
    status_page_id = status_page_id_for_slug(db, slug)
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.status_page_id == status_page_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )
    return [(s, db.get(Subscriber, s.subscriber_id)) for s in subscriptions]
