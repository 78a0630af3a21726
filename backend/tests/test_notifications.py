import logging
import threading
from decimal import Decimal

import pytest

from clubledger import create_app
from clubledger.extensions import db, notifications
from clubledger.models import Article
from clubledger.services import sales_service
from clubledger.services.errors import InsufficientStock


@pytest.fixture
def failing_handler(app):
    def explode(event_type, payload):
        raise RuntimeError("subscriber is down")

    notifications.subscribe("sale.committed", explode, app=app)
    yield explode
    notifications.unsubscribe("sale.committed", explode, app=app)


def test_failing_subscriber_does_not_undo_the_sale(db_session, cola, events, failing_handler, caplog):
    with caplog.at_level(logging.ERROR):
        transaction = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])

    assert transaction.id is not None
    assert db.session.get(Article, cola.id).stock == Decimal("9")
    # the wildcard recorder still ran after the failing handler
    assert [e for e, _ in events if e == "sale.committed"] == ["sale.committed"]
    assert "Notification handler" in caplog.text
    assert "subscriber is down" in caplog.text


def test_rolled_back_unit_publishes_nothing(db_session, cola, events):
    with pytest.raises(InsufficientStock):
        sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 50}])
    assert events == []


def test_dispatch_counts_notified_and_failed(app):
    received = []
    state = app.extensions["clubledger.notifications"]

    def ok(event_type, payload):
        received.append(payload["n"])

    def broken(event_type, payload):
        raise ValueError("nope")

    notifications.subscribe("test.ping", broken, app=app)
    notifications.subscribe("test.ping", ok, app=app)
    try:
        result = state.dispatch("test.ping", {"n": 1})
    finally:
        notifications.unsubscribe("test.ping", broken, app=app)
        notifications.unsubscribe("test.ping", ok, app=app)

    assert result == {"event_type": "test.ping", "notified": 1, "failed": 1}
    assert received == [1]


def test_async_hub_delivers_on_worker_thread():
    async_app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "NOTIFICATIONS_ASYNC": True,
    })
    seen = []

    def handler(event_type, payload):
        seen.append((event_type, payload["n"], threading.current_thread().name))

    notifications.subscribe("test.ping", handler, app=async_app)
    try:
        with async_app.app_context():
            for n in range(3):
                notifications.publish("test.ping", {"n": n})
            assert notifications.flush(timeout=5) is True
    finally:
        notifications.shutdown(app=async_app)

    assert [n for _, n, _ in seen] == [0, 1, 2]
    assert {name for _, _, name in seen} == {"clubledger-notifications"}
