from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..core.auth import require_admin
from ..core.database import get_db
from ..core.errors import Invalid, NotFound
from ..models import Monitor, StatusPage

router = APIRouter(prefix="/api/monitors", tags=["monitors"], dependencies=[Depends(require_admin)])


# ---------- Schemas ----------

class MonitorBase(BaseModel):
    name: str
    slug: str
    kind: str = Field(..., description="HTTP or TCP")
    target: str = Field(..., description="URL for HTTP, host:port for TCP")

    check_interval_sec: int = 60
    timeout_sec: int = 5
    enabled: bool = True
    status_page_id: Optional[int] = None

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        v = v.upper()
        if v not in ("HTTP", "TCP"):
            raise ValueError("kind must be 'HTTP' or 'TCP'")
        return v


class MonitorCreate(MonitorBase):
    pass


class MonitorOut(MonitorBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------- Endpoints ----------


@router.get("", response_model=List[MonitorOut])
def list_monitors(db: Session = Depends(get_db)):
    return db.query(Monitor).all()


@router.post("", response_model=MonitorOut, status_code=status.HTTP_201_CREATED)
def create_monitor(payload: MonitorCreate, db: Session = Depends(get_db)):
    # Ensure slug uniqueness
    exists = db.query(Monitor).filter(Monitor.slug == payload.slug).first()
    if exists:
        raise Invalid("Slug already exists")
    if payload.status_page_id is not None and db.get(StatusPage, payload.status_page_id) is None:
        raise NotFound("Status page not found")

    m = Monitor(**payload.model_dump())
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


@router.delete("/{monitor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_monitor(monitor_id: int, db: Session = Depends(get_db)):
    m = db.query(Monitor).filter(Monitor.id == monitor_id).first()
    if not m:
        raise NotFound("Monitor not found")

    # Delete status first because of foreign key
    if m.status:
        db.delete(m.status)

    db.delete(m)
    db.commit()
    return
