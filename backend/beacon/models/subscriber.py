from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from ..core.database import Base


class Subscriber(Base):
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    unsubscribe_token = Column(String, unique=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    subscriptions = relationship("Subscription", back_populates="subscriber")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "status_page_id", "component_id", name="uq_subscription_target"),
        # NULLs compare distinct in unique constraints, so page-wide rows need their own index
        Index(
            "uq_subscription_page_wide",
            "subscriber_id",
            "status_page_id",
            unique=True,
            sqlite_where=text("component_id IS NULL"),
            postgresql_where=text("component_id IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    subscriber_id = Column(Integer, ForeignKey("subscribers.id"), nullable=False, index=True)
    status_page_id = Column(Integer, ForeignKey("status_pages.id"), nullable=False, index=True)
    component_id = Column(Integer, nullable=True)  # NULL = all components

    notify_incidents = Column(Boolean, default=True)
    notify_maintenance = Column(Boolean, default=True)
    notify_status_changes = Column(Boolean, default=False)

    verified = Column(Boolean, default=False)
    verification_token = Column(String, unique=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    subscriber = relationship("Subscriber", back_populates="subscriptions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subscriber_id": self.subscriber_id,
            "status_page_id": self.status_page_id,
            "component_id": self.component_id,
            "notify_incidents": self.notify_incidents,
            "notify_maintenance": self.notify_maintenance,
            "notify_status_changes": self.notify_status_changes,
            "verified": self.verified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
