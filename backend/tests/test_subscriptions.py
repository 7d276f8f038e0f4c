from __future__ import annotations

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from beacon.core import subscriptions
from beacon.core.errors import Invalid, NotFound
from beacon.models import QueuedNotification, Subscriber, Subscription


def _subscriptions(db) -> list[Subscription]:
    db.expire_all()
    return db.query(Subscription).order_by(Subscription.id).all()


def _queued(db) -> list[QueuedNotification]:
    db.expire_all()
    return db.query(QueuedNotification).order_by(QueuedNotification.id).all()


def test_subscribe_creates_unverified_subscription_and_queues_confirmation(db, queue, base_url, status_page) -> None:
    result = subscriptions.subscribe(db, queue, "a@x.com", "main", notify_incidents=True)

    assert result.already_subscribed is False
    assert result.needs_verification is True

    (sub,) = _subscriptions(db)
    assert sub.verified is False
    assert sub.notify_incidents is True
    assert sub.notify_maintenance is True
    assert sub.notify_status_changes is False
    assert sub.component_id is None
    assert sub.verification_token

    subscriber = db.get(Subscriber, sub.subscriber_id)
    assert subscriber.email == "a@x.com"
    assert subscriber.unsubscribe_token

    (queued,) = _queued(db)
    assert queued.subscriber_id == subscriber.id
    assert queued.notification_type == "subscription_confirmation"
    assert queued.status == "pending"


def test_subscribe_twice_does_not_duplicate(db, queue, base_url, status_page) -> None:
    subscriptions.subscribe(db, queue, "a@x.com", "main")
    second = subscriptions.subscribe(db, queue, "a@x.com", "main")

    assert second.already_subscribed is True
    assert len(_subscriptions(db)) == 1
    assert len(_queued(db)) == 1


def test_subscribe_per_component_reuses_subscriber(db, queue, base_url, status_page) -> None:
    subscriptions.subscribe(db, queue, "a@x.com", "main")
    other = subscriptions.subscribe(db, queue, "a@x.com", "main", component_id=4)
    again = subscriptions.subscribe(db, queue, "a@x.com", "main", component_id=4)

    assert other.already_subscribed is False
    assert again.already_subscribed is True
    subs = _subscriptions(db)
    assert [s.component_id for s in subs] == [None, 4]
    assert db.query(Subscriber).count() == 1


def test_subscribe_rejects_invalid_email(db, queue, status_page) -> None:
    with pytest.raises(Invalid):
        subscriptions.subscribe(db, queue, "not-an-email", "main")
    with pytest.raises(Invalid):
        subscriptions.subscribe(db, queue, None, "main")
    assert db.query(Subscriber).count() == 0


def test_subscribe_unknown_page(db, queue) -> None:
    with pytest.raises(NotFound):
        subscriptions.subscribe(db, queue, "a@x.com", "nope")


def test_subscribe_succeeds_when_confirmation_cannot_be_queued(db, queue, status_page) -> None:
    # No base URL configured: the confirmation composer raises, the subscription stays.
    result = subscriptions.subscribe(db, queue, "a@x.com", "main")

    assert result.needs_verification is True
    assert len(_subscriptions(db)) == 1
    assert _queued(db) == []


def test_verify_is_idempotent(db, status_page, add_subscription) -> None:
    sub = add_subscription(status_page, "a@x.com", verified=False)

    first = subscriptions.verify(db, sub.verification_token)
    second = subscriptions.verify(db, sub.verification_token)

    assert first.verified is True
    assert second.verified is True
    assert _subscriptions(db)[0].verified is True


def test_verify_unknown_token(db) -> None:
    with pytest.raises(NotFound):
        subscriptions.verify(db, "missing")


def test_unsubscribe_removes_every_page_subscription(db, make_page, add_subscription) -> None:
    main = make_page("main")
    docs = make_page("docs")
    add_subscription(main, "a@x.com")
    add_subscription(docs, "a@x.com", verified=False)
    add_subscription(main, "b@x.com")

    removed = subscriptions.unsubscribe(db, "unsub-a@x.com")

    assert removed == 2
    remaining = _subscriptions(db)
    assert len(remaining) == 1
    assert db.get(Subscriber, remaining[0].subscriber_id).email == "b@x.com"
    # The subscriber row stays as an audit record
    assert db.query(Subscriber).filter(Subscriber.email == "a@x.com").count() == 1


def test_unsubscribe_unknown_token(db) -> None:
    with pytest.raises(NotFound):
        subscriptions.unsubscribe(db, "missing")


def test_resubscribe_after_unsubscribe_starts_unverified(db, queue, base_url, status_page, add_subscription) -> None:
    add_subscription(status_page, "a@x.com", verified=True)
    subscriptions.unsubscribe(db, "unsub-a@x.com")

    result = subscriptions.subscribe(db, queue, "a@x.com", "main")

    assert result.already_subscribed is False
    (sub,) = _subscriptions(db)
    assert sub.verified is False


def test_subscriber_count_counts_subscription_rows(db, make_page, add_subscription) -> None:
    main = make_page("main")
    add_subscription(main, "a@x.com")
    add_subscription(main, "a@x.com", component_id=2)
    add_subscription(main, "b@x.com", verified=False)
    add_subscription(make_page("docs"), "c@x.com")

    assert subscriptions.subscriber_count(db, "main") == 3


def test_subscriber_count_unknown_page(db) -> None:
    with pytest.raises(NotFound):
        subscriptions.subscriber_count(db, "nope")


def test_page_wide_subscription_is_unique_in_the_store(db, status_page) -> None:
    subscriber = subscriptions.find_or_create_subscriber(db, "a@x.com")
    for token in ("t1", "t2"):
        db.add(Subscription(subscriber_id=subscriber.id, status_page_id=status_page.id, verification_token=token))

    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert db.query(Subscription).count() == 0


def test_concurrent_subscribe_reports_already_subscribed(db, queue, base_url, status_page, monkeypatch) -> None:
    subscriptions.subscribe(db, queue, "a@x.com", "main")

    # The second request checks before the first one's row is visible.
    real_find = subscriptions.find_subscription
    calls = []

    def stale_first_lookup(*args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return real_find(*args)

    monkeypatch.setattr(subscriptions, "find_subscription", stale_first_lookup)
    result = subscriptions.subscribe(db, queue, "a@x.com", "main")

    assert result.already_subscribed is True
    assert len(_subscriptions(db)) == 1
    assert len(_queued(db)) == 1


def test_concurrent_first_subscribe_reuses_subscriber(db, session_factory, status_page) -> None:
    def insert_elsewhere(session) -> None:
        other = session_factory()
        try:
            other.add(Subscriber(email="a@x.com", unsubscribe_token="elsewhere"))
            other.commit()
        finally:
            other.close()

    event.listen(db, "before_commit", insert_elsewhere, once=True)
    subscriber = subscriptions.find_or_create_subscriber(db, "a@x.com")

    assert subscriber.unsubscribe_token == "elsewhere"
    assert db.query(Subscriber).count() == 1


def test_component_zero_means_all_components(db, queue, base_url, status_page) -> None:
    subscriptions.subscribe(db, queue, "a@x.com", "main")
    again = subscriptions.subscribe(db, queue, "a@x.com", "main", component_id=0)

    assert again.already_subscribed is True
    (sub,) = _subscriptions(db)
    assert sub.component_id is None
