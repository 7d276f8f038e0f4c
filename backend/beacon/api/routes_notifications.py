import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.app_settings import PRIMARY_BASE_URL, primary_base_url, set_setting
from ..core.auth import require_admin
from ..core.database import get_db
from ..core.delivery_queue import DeliveryQueue
from ..core.errors import Invalid
from ..models import NotificationChannel, QueuedNotification
from .deps import get_delivery_queue

router = APIRouter(prefix="/api", tags=["notifications"], dependencies=[Depends(require_admin)])


class QueuedNotificationOut(BaseModel):
    id: int
    subscriber_id: int
    notification_type: str
    subject: str
    payload: dict
    status: str
    attempts: int
    last_error: Optional[str]
    created_at: datetime
    sent_at: Optional[datetime]


class ChannelCreate(BaseModel):
    name: str
    config: Dict[str, Any]
    is_default: bool = False
    active: bool = True


class ChannelOut(BaseModel):
    id: int
    name: str
    type: Optional[str]
    is_default: bool
    active: bool
    created_at: datetime


class DrainResponse(BaseModel):
    ok: bool
    sent: int
    failed: int
    retried: int


class BaseURLRequest(BaseModel):
    url: Optional[str] = None


def _channel_out(channel: NotificationChannel) -> ChannelOut:
    try:
        channel_type = json.loads(channel.config_json).get("type")
    except (TypeError, ValueError, AttributeError):
        channel_type = None
    return ChannelOut(
        id=channel.id,
        name=channel.name,
        type=channel_type,
        is_default=bool(channel.is_default),
        active=bool(channel.active),
        created_at=channel.created_at,
    )


# ---------- Queue ----------


@router.get("/notification-queue", response_model=List[QueuedNotificationOut])
def list_queue(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|sent|failed)$"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(QueuedNotification)
    if status_filter:
        query = query.filter(QueuedNotification.status == status_filter)
    rows = query.order_by(QueuedNotification.created_at.desc()).limit(limit).all()

    result: List[QueuedNotificationOut] = []
    for item in rows:
        try:
            payload = json.loads(item.payload_json)
        except (TypeError, ValueError):
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        result.append(
            QueuedNotificationOut(
                id=item.id,
                subscriber_id=item.subscriber_id,
                notification_type=item.notification_type,
                subject=item.subject,
                payload=payload,
                status=item.status,
                attempts=item.attempts or 0,
                last_error=item.last_error,
                created_at=item.created_at,
                sent_at=item.sent_at,
            )
        )
    return result


@router.post("/notification-queue/drain", response_model=DrainResponse)
def drain_queue(queue: DeliveryQueue = Depends(get_delivery_queue)):
    result = queue.drain()
    return DrainResponse(ok=True, sent=result.sent, failed=result.failed, retried=result.retried)


# ---------- Channels ----------


@router.get("/notification-channels", response_model=List[ChannelOut])
def list_channels(db: Session = Depends(get_db)):
    return [_channel_out(c) for c in db.query(NotificationChannel).order_by(NotificationChannel.id).all()]


@router.post("/notification-channels", response_model=ChannelOut, status_code=status.HTTP_201_CREATED)
def create_channel(payload: ChannelCreate, db: Session = Depends(get_db)):
    if not payload.config.get("type"):
        raise Invalid("Channel config must include a type")

    if payload.is_default:
        # Only one default channel
        db.query(NotificationChannel).filter(NotificationChannel.is_default == True).update(  # noqa: E712
            {NotificationChannel.is_default: False}
        )

    channel = NotificationChannel(
        name=payload.name,
        config_json=json.dumps(payload.config),
        is_default=payload.is_default,
        active=payload.active,
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return _channel_out(channel)


# ---------- Settings ----------


@router.put("/settings/primary-base-url")
def put_primary_base_url(payload: BaseURLRequest, db: Session = Depends(get_db)):
    url = (payload.url or "").strip()
    if url and not url.startswith(("http://", "https://")):
        raise Invalid("Base URL must start with http:// or https://")
    set_setting(db, PRIMARY_BASE_URL, url or None)
    return {"ok": True, "primaryBaseURL": primary_base_url(db)}
