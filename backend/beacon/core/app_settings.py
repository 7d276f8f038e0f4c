from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models import Setting

PRIMARY_BASE_URL = "primary_base_url"


def get_setting(db: Session, key: str) -> Optional[str]:
    row = db.get(Setting, key)
    return row.value if row else None


def set_setting(db: Session, key: str, value: Optional[str]) -> None:
    row = db.get(Setting, key)
    if row is None:
        row = Setting(key=key, value=value)
        db.add(row)
    else:
        row.value = value
    db.commit()


def primary_base_url(db: Session) -> Optional[str]:
    """
    Public base URL used to build verify/unsubscribe links.
    Stored setting first, then the PRIMARY_BASE_URL environment value.
    """
    value = (get_setting(db, PRIMARY_BASE_URL) or "").strip()
    if not value:
        value = (settings.primary_base_url or "").strip()
    if not value:
        return None
    return value.rstrip("/")
