from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.auth import require_admin
from ..core.database import get_db
from ..core.delivery_queue import DeliveryQueue
from ..core.errors import Invalid
from ..core.incidents import create_incident, resolve_incident, update_incident
from ..models import Incident, StatusPage
from .deps import get_delivery_queue

router = APIRouter(prefix="/api", tags=["status pages"], dependencies=[Depends(require_admin)])


# ---------- Schemas ----------


class StatusPageCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=64)
    title: str
    description: Optional[str] = None


class StatusPageOut(BaseModel):
    id: int
    slug: str
    title: str
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class IncidentCreate(BaseModel):
    title: str
    content: Optional[str] = None
    style: str = "warning"


class IncidentUpdateRequest(BaseModel):
    message: str


class IncidentOut(BaseModel):
    id: int
    status_page_id: int
    title: str
    content: Optional[str]
    style: Optional[str]
    created_at: datetime
    last_updated_at: Optional[datetime]
    resolved_at: Optional[datetime]

    class Config:
        from_attributes = True


class IncidentResponse(BaseModel):
    ok: bool
    incident: IncidentOut
    queued: int


# ---------- Status pages ----------


@router.get("/status-pages", response_model=List[StatusPageOut])
def list_status_pages(db: Session = Depends(get_db)):
    return db.query(StatusPage).order_by(StatusPage.id).all()


@router.post("/status-pages", response_model=StatusPageOut, status_code=status.HTTP_201_CREATED)
def create_status_page(payload: StatusPageCreate, db: Session = Depends(get_db)):
    slug = payload.slug.strip().lower()
    exists = db.query(StatusPage).filter(StatusPage.slug == slug).first()
    if exists:
        raise Invalid("Slug already exists")

    page = StatusPage(slug=slug, title=payload.title, description=payload.description)
    db.add(page)
    db.commit()
    db.refresh(page)
    return page


# ---------- Incidents ----------


@router.post("/status-page/{slug}/incidents", response_model=IncidentResponse, status_code=status.HTTP_201_CREATED)
def post_incident(
    slug: str,
    payload: IncidentCreate,
    db: Session = Depends(get_db),
    queue: DeliveryQueue = Depends(get_delivery_queue),
):
    incident, queued = create_incident(db, queue, slug, payload.title, payload.content, payload.style)
    return IncidentResponse(ok=True, incident=IncidentOut.model_validate(incident), queued=queued)


@router.post("/incidents/{incident_id}/updates", response_model=IncidentResponse)
def post_incident_update(
    incident_id: int,
    payload: IncidentUpdateRequest,
    db: Session = Depends(get_db),
    queue: DeliveryQueue = Depends(get_delivery_queue),
):
    incident, queued = update_incident(db, queue, incident_id, payload.message)
    return IncidentResponse(ok=True, incident=IncidentOut.model_validate(incident), queued=queued)


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentResponse)
def post_incident_resolve(
    incident_id: int,
    db: Session = Depends(get_db),
    queue: DeliveryQueue = Depends(get_delivery_queue),
):
    incident, queued = resolve_incident(db, queue, incident_id)
    return IncidentResponse(ok=True, incident=IncidentOut.model_validate(incident), queued=queued)


@router.get("/status-page/{slug}/incidents", response_model=List[IncidentOut])
def list_incidents(slug: str, db: Session = Depends(get_db)):
    return (
        db.query(Incident)
        .join(StatusPage, Incident.status_page_id == StatusPage.id)
        .filter(StatusPage.slug == slug)
        .order_by(Incident.created_at.desc())
        .all()
    )
