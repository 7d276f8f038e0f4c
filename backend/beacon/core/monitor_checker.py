import asyncio
import logging
import time as time_module
from typing import Optional, Tuple
from datetime import datetime

import httpx
from sqlalchemy.orm import Session

from ..models import Monitor, MonitorStatus
from ..models.monitors import DOWN, UP
from .composer import Enqueuer, notify_status_change
from .database import SessionLocal

logger = logging.getLogger(__name__)


async def check_http(target: str, timeout_sec: int) -> Tuple[bool, Optional[float]]:
    """
    Perform a simple HTTP GET check.
    Returns (is_up, latency_ms).
    """
    start = time_module.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout_sec) as client:
            r = await client.get(target)
        latency = (time_module.perf_counter() - start) * 1000.0
        is_up = r.status_code < 500
        return is_up, latency
    except httpx.HTTPError:
        return False, None


async def check_tcp(target: str, timeout_sec: int) -> Tuple[bool, Optional[float]]:
    """
    Opens a TCP connection to host:port.
    target example: '192.168.1.10:25565'
    """
    if ":" not in target:
        return False, None
    host, port_str = target.rsplit(":", 1)
    try:
        port = int(port_str)
    except ValueError:
        return False, None

    start = time_module.perf_counter()
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout_sec,
        )
        writer.close()
        await writer.wait_closed()
        latency = (time_module.perf_counter() - start) * 1000.0
        return True, latency
    except (OSError, asyncio.TimeoutError):
        return False, None


async def check_one_monitor(monitor: Monitor) -> Tuple[bool, Optional[float]]:
    if monitor.kind.upper() == "HTTP":
        return await check_http(monitor.target, monitor.timeout_sec)
    if monitor.kind.upper() == "TCP":
        return await check_tcp(monitor.target, monitor.timeout_sec)
    return False, None


def record_result(
    db: Session,
    monitor: Monitor,
    is_up: bool,
    latency: Optional[float],
    now: datetime,
) -> Tuple[Optional[int], int]:
    """
    Store one check result. Returns (previous_status, current_status);
    previous_status is None on the first check.
    """
    current = UP if is_up else DOWN
    status = monitor.status

    if status is None:
        status = MonitorStatus(
            monitor_id=monitor.id,
            status=current,
            latency_ms=latency,
            last_checked_at=now,
            consecutive_failures=0 if is_up else 1,
            last_change_at=now,
        )
        db.add(status)
        db.commit()
        return None, current

    previous = status.status
    status.status = current
    status.latency_ms = latency
    status.last_checked_at = now
    if previous != current:
        status.last_change_at = now
    status.consecutive_failures = 0 if is_up else (status.consecutive_failures or 0) + 1

    db.commit()
    return previous, current


async def check_monitors_once(db: Session, queue: Enqueuer) -> int:
    """Check every due monitor; returns the number of status flips seen."""
    monitors = db.query(Monitor).filter(Monitor.enabled == True).all()  # noqa: E712
    now = datetime.utcnow()
    flips = 0

    for m in monitors:
        status = m.status

        # Respect per-monitor check interval
        if status and status.last_checked_at:
            elapsed = (now - status.last_checked_at).total_seconds()
            if elapsed < m.check_interval_sec:
                continue

        is_up, latency = await check_one_monitor(m)
        previous, current = record_result(db, m, is_up, latency, now)

        if previous is None or previous == current:
            continue
        flips += 1
        logger.info("Monitor %s changed status %s -> %s", m.name, previous, current)

        if m.status_page_id is None:
            continue
        try:
            notify_status_change(db, queue, m.id, m.name, m.status_page_id, previous, current)
        except Exception as exc:
            logger.error("Failed to queue status change notification for %s: %s", m.name, exc)

    return flips


async def monitor_checker_loop(queue: Enqueuer, interval_seconds: int = 30):
    """
    Background task that periodically checks all enabled monitors.
    """
    while True:
        db = SessionLocal()
        try:
            await check_monitors_once(db, queue)
        except Exception as exc:
            logger.exception("Monitor check cycle failed: %s", exc)
        finally:
            db.close()

        await asyncio.sleep(interval_seconds)
