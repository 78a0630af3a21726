"""
Concurrent sales and cancellations against a file-backed SQLite database.

Each worker thread runs in its own app context and therefore its own session
and connection, so the units of work really compete for the write lock.
"""

import threading
from decimal import Decimal

import pytest

from clubledger import create_app
from clubledger.extensions import db
from clubledger.models import Article, StockMovement, Transaction
from clubledger.services import cancellation_service, catalog_service, sales_service, stock_service
from clubledger.services.errors import InsufficientStock, InvalidState

WORKERS = 8


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'NOTIFICATIONS_ASYNC': False,
        'UNIT_OF_WORK_ATTEMPTS': 10,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _run_concurrently(app, target, count):
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                result = ("ok", target(index))
            except Exception as exc:
                result = ("error", exc)
            finally:
                db.session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_last_unit_is_sold_exactly_once(file_app):
    with file_app.app_context():
        article_id = catalog_service.create_article(name="Cola", price="1.00", initial_stock=str(WORKERS - 1)).id

    outcomes = _run_concurrently(
        file_app,
        lambda i: sales_service.create_sale("CASH", None, [{"article_id": article_id, "quantity": 1}]).id,
        WORKERS,
    )

    successes = [value for kind, value in outcomes if kind == "ok"]
    failures = [value for kind, value in outcomes if kind == "error"]
    assert len(successes) == WORKERS - 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStock)

    with file_app.app_context():
        assert db.session.get(Article, article_id).stock == Decimal("0")
        assert db.session.query(StockMovement).filter_by(article_id=article_id, type="SALE").count() == WORKERS - 1
        assert stock_service.verify_stock_ledger() == []


def test_concurrent_cancellations_refund_once(file_app):
    with file_app.app_context():
        article_id = catalog_service.create_article(name="Beer", price="2.50", initial_stock="5").id
        sale_id = sales_service.create_sale("CASH", None, [{"article_id": article_id, "quantity": 2}]).id

    outcomes = _run_concurrently(
        file_app,
        lambda i: cancellation_service.cancel_transaction(sale_id, user_id=i)["refund"].id,
        2,
    )

    kinds = sorted(kind for kind, _ in outcomes)
    assert kinds == ["error", "ok"]
    error = next(value for kind, value in outcomes if kind == "error")
    assert isinstance(error, InvalidState)

    with file_app.app_context():
        refunds = db.session.query(Transaction).filter_by(original_transaction_id=sale_id).count()
        assert refunds == 1
        assert db.session.get(Article, article_id).stock == Decimal("5")
        assert stock_service.verify_stock_ledger() == []
