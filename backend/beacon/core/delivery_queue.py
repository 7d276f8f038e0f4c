"""
Durable outbox for subscriber email.

Composers enqueue one pending row per recipient; a single background task
drains the oldest pending rows on a fixed interval and records the outcome
on each row. Rows are never deleted, they are the delivery audit trail.

Per-row state machine:
    pending -> sent                       send succeeded, or no transport configured
    pending -> pending (attempts + 1)     send raised, attempts still below the ceiling
    pending -> failed                     send raised and attempts reached the ceiling
    pending -> failed                     payload has no usable {to, subject, html}
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..models import QueuedNotification
from .database import SessionLocal
from .transport import TransportSelector

logger = logging.getLogger(__name__)

PENDING = "pending"
SENT = "sent"
FAILED = "failed"

DEFAULT_SUBJECT = "Status Page Notification"
INVALID_MESSAGE_FORMAT = "Invalid message format"

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INTERVAL_SECONDS = 60


@dataclass
class DrainResult:
    sent: int = 0
    failed: int = 0
    retried: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed + self.retried


def _message_of(payload: Any) -> Optional[Dict[str, str]]:
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if not isinstance(message, dict):
        return None
    for key in ("to", "subject", "html"):
        value = message.get(key)
        if not isinstance(value, str) or not value:
            return None
    return message


class DeliveryQueue:
    def __init__(
        self,
        transport: TransportSelector,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.transport = transport
        self._session_factory = session_factory
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self._drain_lock = threading.Lock()

    def enqueue(
        self,
        db: Session,
        subscriber_id: int,
        notification_type: str,
        payload: Dict[str, Any],
    ) -> QueuedNotification:
        message = payload.get("message") if isinstance(payload, dict) else None
        subject = message.get("subject") if isinstance(message, dict) else None

        item = QueuedNotification(
            subscriber_id=subscriber_id,
            notification_type=str(notification_type),
            subject=subject or DEFAULT_SUBJECT,
            payload_json=json.dumps(payload, default=str),
            status=PENDING,
            attempts=0,
            created_at=datetime.utcnow(),
        )
        try:
            db.add(item)
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.error("Failed to queue notification: %s", exc)
            raise
        db.refresh(item)

        logger.info("Queued %s for subscriber %s", notification_type, subscriber_id)
        return item

    def drain(self) -> DrainResult:
        """
        Process one batch of pending rows. One row's failure never stops the batch.
        Returns an empty result without touching the store while another drain runs.
        """
        result = DrainResult()
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Notification queue drain already in progress")
            return result

        db = self._session_factory()
        try:
            pending = (
                db.query(QueuedNotification)
                .filter(
                    QueuedNotification.status == PENDING,
                    QueuedNotification.attempts < self.max_attempts,
                )
                .order_by(QueuedNotification.created_at.asc(), QueuedNotification.id.asc())
                .limit(self.batch_size)
                .all()
            )
            if not pending:
                logger.debug("Notification queue empty")
                return result

            logger.info("Processing %s queued notifications", len(pending))
            for item in pending:
                try:
                    self._process(item, result)
                    db.commit()
                except Exception as exc:
                    db.rollback()
                    logger.exception("Could not record outcome for notification %s: %s", item.id, exc)
        finally:
            db.close()
            self._drain_lock.release()

        logger.info(
            "Notification queue drained: %s sent, %s failed, %s to retry",
            result.sent,
            result.failed,
            result.retried,
        )
        return result

    def _process(self, item: QueuedNotification, result: DrainResult) -> None:
        try:
            payload = json.loads(item.payload_json)
        except (TypeError, ValueError):
            payload = None

        message = _message_of(payload)
        if message is None:
            item.status = FAILED
            item.last_error = INVALID_MESSAGE_FORMAT
            result.failed += 1
            return

        try:
            delivered = self.transport.send_email(message["to"], message["subject"], message["html"])
        except Exception as exc:
            logger.error("Failed to process notification %s: %s", item.id, exc)
            item.attempts = (item.attempts or 0) + 1
            item.last_error = str(exc)
            if item.attempts >= self.max_attempts:
                item.status = FAILED
                result.failed += 1
            else:
                result.retried += 1
            return

        if not delivered:
            logger.warning("Mail transport not configured, marking notification %s as sent", item.id)
        item.status = SENT
        item.sent_at = datetime.utcnow()
        result.sent += 1


class QueueProcessor:
    """
    Owns the single recurring drain task for the process.
    start() drains once immediately, then every interval; the next tick waits
    for the previous drain to finish.
    """

    def __init__(self, queue: DeliveryQueue, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        self.queue = queue
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.debug("Notification queue processor already running")
            return
        logger.info("Starting notification queue processor (every %ss)", self.interval_seconds)
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Stopped notification queue processor")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.queue.drain)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Failed to process notification queue: %s", exc)
            await asyncio.sleep(self.interval_seconds)
