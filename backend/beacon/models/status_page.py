from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..core.database import Base


class StatusPage(Base):
    __tablename__ = "status_pages"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    incidents = relationship("Incident", back_populates="status_page")


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, index=True)
    status_page_id = Column(Integer, ForeignKey("status_pages.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    style = Column(String, default="warning")  # danger | warning | info | primary | dark
    pin = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    status_page = relationship("StatusPage", back_populates="incidents")
