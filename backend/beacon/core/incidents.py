from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..models import Incident, StatusPage
from .composer import (
    Enqueuer,
    notify_incident_created,
    notify_incident_resolved,
    notify_incident_update,
)
from .errors import Invalid, NotFound

logger = logging.getLogger(__name__)


def _get_incident(db: Session, incident_id: int) -> Incident:
    incident = db.get(Incident, incident_id)
    if incident is None:
        raise NotFound("Incident not found")
    return incident


def _notify(label: str, fn: Callable[[], int]) -> int:
    # The incident change is already committed; a notification failure must not undo it
    try:
        return fn()
    except Exception as exc:
        logger.error("Failed to queue %s notifications: %s", label, exc)
        return 0


def create_incident(
    db: Session,
    queue: Enqueuer,
    slug: str,
    title: str,
    content: Optional[str] = None,
    style: str = "warning",
) -> tuple[Incident, int]:
    title = (title or "").strip()
    if not title:
        raise Invalid("Incident title is required")

    page = db.query(StatusPage).filter(StatusPage.slug == slug).first()
    if not page:
        raise NotFound("Status page not found")

    incident = Incident(status_page_id=page.id, title=title, content=content, style=style)
    db.add(incident)
    db.commit()
    db.refresh(incident)
    logger.info("Incident %s created on status page %s", incident.id, slug)

    queued = _notify("incident", lambda: notify_incident_created(db, queue, incident.id))
    return incident, queued


def update_incident(db: Session, queue: Enqueuer, incident_id: int, message: str) -> tuple[Incident, int]:
    message = (message or "").strip()
    if not message:
        raise Invalid("Update message is required")

    incident = _get_incident(db, incident_id)
    incident.last_updated_at = datetime.utcnow()
    db.commit()
    db.refresh(incident)

    queued = _notify("incident update", lambda: notify_incident_update(db, queue, incident.id, message))
    return incident, queued


def resolve_incident(db: Session, queue: Enqueuer, incident_id: int) -> tuple[Incident, int]:
    incident = _get_incident(db, incident_id)
    now = datetime.utcnow()
    incident.resolved_at = now
    incident.last_updated_at = now
    incident.pin = False
    db.commit()
    db.refresh(incident)
    logger.info("Incident %s resolved", incident.id)

    queued = _notify("incident resolved", lambda: notify_incident_resolved(db, queue, incident.id))
    return incident, queued
