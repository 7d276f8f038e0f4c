"""
Transport selection for subscriber email.

The default mail-capable channel wins; otherwise the first active SMTP
channel. No transport is a normal state (mail not configured yet) and is
reported as None / False, never as an exception.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import NotificationChannel
from .database import SessionLocal
from .notification_channels import MAIL_CAPABLE_TYPES, ChannelSender, send_notification

logger = logging.getLogger(__name__)

SEND_LABEL = "Status Page Notification"


@dataclass(frozen=True)
class Transport:
    id: int
    name: str
    config: Dict[str, Any]

    @property
    def type(self) -> str:
        return (self.config.get("type") or "").lower()


def _to_transport(channel: NotificationChannel) -> Optional[Transport]:
    try:
        config = json.loads(channel.config_json)
    except (TypeError, ValueError):
        logger.warning("Notification channel %s has unreadable config; skipping", channel.id)
        return None
    if not isinstance(config, dict):
        return None
    return Transport(id=channel.id, name=channel.name, config=config)


class TransportSelector:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        sender: ChannelSender = send_notification,
    ) -> None:
        self._session_factory = session_factory
        self._send = sender

    def select_transport(self) -> Optional[Transport]:
        db = self._session_factory()
        try:
            channels = (
                db.query(NotificationChannel)
                .filter(NotificationChannel.active == True)  # noqa: E712
                .order_by(NotificationChannel.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to load notification channels: %s", exc)
            return None
        finally:
            db.close()

        transports = [t for t in (_to_transport(c) for c in channels) if t is not None]
        defaults = {c.id for c in channels if c.is_default}

        for transport in transports:
            if transport.id in defaults and transport.type in MAIL_CAPABLE_TYPES:
                return transport
        for transport in transports:
            if transport.type == "smtp":
                return transport
        return None

    def send_email(self, to: str, subject: str, html: str) -> bool:
        """
        Send one HTML email through the selected transport.
        Returns False when no transport is configured; provider errors propagate.
        """
        transport = self.select_transport()
        if transport is None:
            logger.warning("No mail transport configured for status page emails")
            logger.warning("Add an SMTP notification channel and mark it as default")
            return False

        config = {
            **transport.config,
            "smtp_to": to,
            "custom_subject": subject,
            "custom_body": html,
            "html_body": True,
        }
        try:
            self._send(config, SEND_LABEL)
        except Exception as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            raise

        logger.info('Email sent to %s via "%s"', to, transport.name)
        return True
