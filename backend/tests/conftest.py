from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from beacon import models  # noqa: F401  (registers tables on Base.metadata)
from beacon.config import settings
from beacon.core.app_settings import PRIMARY_BASE_URL, set_setting
from beacon.core.database import Base
from beacon.core.delivery_queue import DeliveryQueue
from beacon.core.transport import TransportSelector
from beacon.models import NotificationChannel, StatusPage, Subscriber, Subscription

BASE_URL = "https://status.example.com"


class FakeSender:
    """Stands in for the channel provider; records every send."""

    def __init__(self, error: Optional[Exception] = None, fail_for: Tuple[str, ...] = ()) -> None:
        self.calls: List[Tuple[Dict[str, Any], str]] = []
        self.error = error
        self.fail_for = set(fail_for)

    def __call__(self, config: Dict[str, Any], label: str) -> None:
        self.calls.append((config, label))
        if self.error is not None:
            raise self.error
        if config.get("smtp_to") in self.fail_for:
            raise ConnectionError(f"SMTP connection to {config['smtp_to']} refused")

    @property
    def recipients(self) -> List[str]:
        return [config["smtp_to"] for config, _label in self.calls]


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch) -> None:
    # Keep environment-provided values out of tests.
    monkeypatch.setattr(settings, "primary_base_url", None)
    monkeypatch.setattr(settings, "admin_token", None)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'beacon-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> Callable[[], Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def transport(session_factory, sender) -> TransportSelector:
    return TransportSelector(session_factory, sender)


@pytest.fixture
def queue(transport, session_factory) -> DeliveryQueue:
    return DeliveryQueue(transport, session_factory)


@pytest.fixture
def base_url(db) -> str:
    set_setting(db, PRIMARY_BASE_URL, BASE_URL)
    return BASE_URL


@pytest.fixture
def smtp_channel(db) -> NotificationChannel:
    channel = NotificationChannel(
        name="Mailer",
        config_json=json.dumps({"type": "smtp", "smtp_host": "mail.example.com", "smtp_port": 587}),
        is_default=True,
        active=True,
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return channel


@pytest.fixture
def make_page(db) -> Callable[..., StatusPage]:
    def _make(slug: str = "main", title: str = "Main Status") -> StatusPage:
        page = StatusPage(slug=slug, title=title)
        db.add(page)
        db.commit()
        db.refresh(page)
        return page

    return _make


@pytest.fixture
def status_page(make_page) -> StatusPage:
    return make_page()


@pytest.fixture
def add_subscription(db) -> Callable[..., Subscription]:
    counter = {"n": 0}

    def _add(
        page: StatusPage,
        email: str,
        verified: bool = True,
        notify_incidents: bool = True,
        notify_status_changes: bool = False,
        component_id: Optional[int] = None,
    ) -> Subscription:
        counter["n"] += 1
        subscriber = db.query(Subscriber).filter(Subscriber.email == email).first()
        if subscriber is None:
            subscriber = Subscriber(email=email, unsubscribe_token=f"unsub-{email}")
            db.add(subscriber)
            db.flush()
        subscription = Subscription(
            subscriber_id=subscriber.id,
            status_page_id=page.id,
            component_id=component_id,
            notify_incidents=notify_incidents,
            notify_maintenance=True,
            notify_status_changes=notify_status_changes,
            verified=verified,
            verification_token=f"verify-{counter['n']}-{email}",
        )
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    return _add
