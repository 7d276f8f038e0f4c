import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..core import subscriptions
from ..core.auth import require_admin
from ..core.database import get_db
from ..core.delivery_queue import DeliveryQueue
from ..core.errors import BeaconError, NotFound, error_status
from .deps import get_delivery_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["subscribers"])


# ---------- Schemas ----------


class SubscribeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    component_id: Optional[int] = Field(default=None, alias="componentId")
    notify_incidents: Optional[bool] = Field(default=None, alias="notifyIncidents")
    notify_maintenance: Optional[bool] = Field(default=None, alias="notifyMaintenance")
    notify_status_changes: Optional[bool] = Field(default=None, alias="notifyStatusChanges")


def _error_response(exc: Exception) -> JSONResponse:
    status_code = error_status(exc)
    if not isinstance(exc, BeaconError):
        logger.exception("Unexpected subscriber API error: %s", exc)
    return JSONResponse(status_code=status_code, content={"ok": False, "msg": str(exc)})


def _page(title: str, heading: str, *lines: str) -> str:
    body = "".join(f"<p>{line}</p>" for line in lines)
    return (
        "<html>"
        f"<head><title>{title}</title></head>"
        '<body style="font-family: Arial; text-align: center; padding: 50px;">'
        f"<h2>{heading}</h2>{body}"
        "</body></html>"
    )


# ---------- Public endpoints ----------


@router.post("/status-page/{slug}/subscribe")
def subscribe(
    slug: str,
    payload: SubscribeRequest,
    db: Session = Depends(get_db),
    queue: DeliveryQueue = Depends(get_delivery_queue),
):
    try:
        result = subscriptions.subscribe(
            db,
            queue,
            payload.email,
            slug,
            component_id=payload.component_id,
            notify_incidents=payload.notify_incidents is not False,
            notify_maintenance=payload.notify_maintenance is not False,
            notify_status_changes=bool(payload.notify_status_changes),
        )
    except Exception as exc:
        return _error_response(exc)

    if result.already_subscribed:
        return {
            "ok": True,
            "msg": "Already subscribed. Check your email for verification if you haven't verified yet.",
            "alreadySubscribed": True,
        }
    return {
        "ok": True,
        "msg": "Subscription created! Please check your email to verify your subscription.",
        "needsVerification": True,
    }


@router.get("/status-page/{slug}/verify/{token}", response_class=HTMLResponse)
def verify(slug: str, token: str, db: Session = Depends(get_db)):
    try:
        subscriptions.verify(db, token)
    except NotFound:
        return HTMLResponse(
            _page("Verification Failed", "❌ Verification Failed", "This verification link is invalid or has expired."),
            status_code=404,
        )
    except Exception as exc:
        logger.exception("Verification failed: %s", exc)
        return HTMLResponse(
            _page("Error", "⚠️ Error", "An error occurred during verification."),
            status_code=500,
        )

    return HTMLResponse(
        _page(
            "Email Verified",
            "✅ Email Verified!",
            "Your email address has been verified successfully.",
            "You will now receive status updates.",
        )
    )


@router.get("/status-page/{slug}/unsubscribe/{token}", response_class=HTMLResponse)
def unsubscribe(slug: str, token: str, db: Session = Depends(get_db)):
    try:
        subscriptions.unsubscribe(db, token)
    except NotFound:
        return HTMLResponse(
            _page("Unsubscribe Failed", "❌ Unsubscribe Failed", "This unsubscribe link is invalid."),
            status_code=404,
        )
    except Exception as exc:
        logger.exception("Unsubscribe failed: %s", exc)
        return HTMLResponse(
            _page("Error", "⚠️ Error", "An error occurred while unsubscribing."),
            status_code=500,
        )

    return HTMLResponse(
        _page(
            "Unsubscribed",
            "✅ Unsubscribed",
            "You have been unsubscribed from all status updates.",
            "We're sorry to see you go!",
        )
    )


@router.get("/status-page/{slug}/subscriber-count")
def subscriber_count(slug: str, db: Session = Depends(get_db)):
    try:
        count = subscriptions.subscriber_count(db, slug)
    except Exception as exc:
        return _error_response(exc)
    return {"ok": True, "count": count}


# ---------- Admin endpoints ----------


@router.get("/subscribers", dependencies=[Depends(require_admin)])
def list_subscribers(db: Session = Depends(get_db)):
    subscribers = subscriptions.list_subscribers(db)
    return {"ok": True, "subscribers": [s.to_dict() for s in subscribers]}


@router.get("/status-page/{slug}/subscriptions", dependencies=[Depends(require_admin)])
def list_subscriptions(slug: str, db: Session = Depends(get_db)):
    rows = subscriptions.list_subscriptions(db, slug)
    return {
        "ok": True,
        "subscriptions": [
            {**sub.to_dict(), "subscriber": subscriber.to_dict() if subscriber else None}
            for sub, subscriber in rows
        ],
    }
