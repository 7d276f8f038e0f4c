from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from ..core.database import Base


class QueuedNotification(Base):
    __tablename__ = "notification_queue"

    id = Column(Integer, primary_key=True, index=True)
    subscriber_id = Column(Integer, ForeignKey("subscribers.id"), nullable=False, index=True)
    notification_type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    payload_json = Column(Text, nullable=False)

    status = Column(String, default="pending", index=True)  # pending | sent | failed
    attempts = Column(Integer, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)


class NotificationChannel(Base):
    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    config_json = Column(Text, nullable=False)  # provider config, at least {"type": ...}

    is_default = Column(Boolean, default=False)
    active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
