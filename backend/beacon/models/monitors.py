from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ..core.database import Base

# Heartbeat status codes shared with status change notifications
DOWN = 0
UP = 1
PENDING = 2
MAINTENANCE = 3


class Monitor(Base):
    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)

    # "HTTP" or "TCP"
    kind = Column(String, nullable=False)
    target = Column(String, nullable=False)  # URL or "host:port"

    check_interval_sec = Column(Integer, default=60)
    timeout_sec = Column(Integer, default=5)
    enabled = Column(Boolean, default=True)

    # Status page whose subscribers hear about status flips
    status_page_id = Column(Integer, ForeignKey("status_pages.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    status = relationship(
        "MonitorStatus",
        back_populates="monitor",
        uselist=False,
        cascade="all, delete-orphan",
    )


class MonitorStatus(Base):
    __tablename__ = "monitor_status"

    id = Column(Integer, primary_key=True, index=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id"), unique=True)

    status = Column(Integer, default=PENDING)
    latency_ms = Column(Float, nullable=True)
    last_checked_at = Column(DateTime, nullable=True)

    consecutive_failures = Column(Integer, default=0)
    last_change_at = Column(DateTime, nullable=True)

    monitor = relationship("Monitor", back_populates="status")
