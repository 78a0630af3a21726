from decimal import Decimal

import pytest

from clubledger.extensions import db
from clubledger.models import Article, AuditLog, Customer, StockMovement, Transaction
from clubledger.models.catalog import MOVEMENT_CORRECTION
from clubledger.services import cancellation_service, sales_service, stock_service
from clubledger.services.errors import InvalidState, NotFound


def test_cola_scenario(db_session, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 3}])
    assert sale.total_amount == Decimal("3.00")
    assert db.session.get(Article, cola.id).stock == Decimal("7")

    result = cancellation_service.cancel_transaction(sale.id, user_id=1)
    refund = result["refund"]

    assert db.session.get(Article, cola.id).stock == Decimal("10")
    assert refund.type == "REFUND"
    assert refund.total_amount == Decimal("-3.00")
    assert refund.items[0].quantity == Decimal("-3")
    assert refund.original_transaction_id == sale.id

    with pytest.raises(InvalidState) as excinfo:
        cancellation_service.cancel_transaction(sale.id, user_id=1)
    assert "already cancelled" in excinfo.value.message


def test_sale_then_cancel_restores_stock_and_balance(db_session, cola, beer, alice):
    before_stock = {a.id: a.stock for a in (cola, beer)}
    before_balance = db.session.get(Customer, alice.id).balance

    sale = sales_service.create_sale("ACCOUNT", alice.id, [
        {"article_id": cola.id, "quantity": "2"},
        {"article_id": beer.id, "quantity": "1.5"},
    ])
    assert db.session.get(Customer, alice.id).balance == before_balance - sale.total_amount

    cancellation_service.cancel_transaction(sale.id, user_id=3)

    for article_id, stock in before_stock.items():
        assert db.session.get(Article, article_id).stock == stock
        assert stock_service.movement_sum(article_id) == stock
    assert db.session.get(Customer, alice.id).balance == before_balance


def test_refund_is_exact_negation(db_session, cola, beer):
    sale = sales_service.create_sale("CASH", None, [
        {"article_id": beer.id, "quantity": "3"},
        {"article_id": cola.id, "quantity": "1"},
    ])

    refund = cancellation_service.cancel_transaction(sale.id)["refund"]

    original = sales_service.get_transaction(sale.id)
    assert original.cancelled is True
    assert original.cancelled_at is not None
    assert refund.payment_method == original.payment_method
    assert refund.total_amount == -original.total_amount
    pairs = list(zip(original.items, refund.items))
    assert len(pairs) == 2
    for item, negated in pairs:
        assert negated.article_id == item.article_id
        assert negated.quantity == -item.quantity
        assert negated.price_per_unit == item.price_per_unit
        assert negated.total_price == -item.total_price
    assert [r.id for r in original.refunds] == [refund.id]


def test_cancellation_uses_correction_movements(db_session, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 4}])
    cancellation_service.cancel_transaction(sale.id, user_id=9)

    correction = db.session.query(StockMovement).filter_by(type=MOVEMENT_CORRECTION).one()
    assert correction.quantity == Decimal("4")
    assert correction.reason == "Cancellation"
    assert correction.user_id == 9


def test_cancellation_is_not_repriced(db_session, cola):
    from clubledger.services import catalog_service

    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 2}])
    catalog_service.update_article(cola.id, price="9.99")

    refund = cancellation_service.cancel_transaction(sale.id)["refund"]
    assert refund.total_amount == Decimal("-2.00")


def test_cancel_succeeds_even_if_stock_went_negative_meanwhile(app, db_session, cola, monkeypatch):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 5}])
    monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_STOCK", True)
    stock_service.adjust_stock(cola.id, "-8", "Spilled")
    monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_STOCK", False)

    cancellation_service.cancel_transaction(sale.id)

    assert db.session.get(Article, cola.id).stock == Decimal("2")


def test_refunds_and_unknown_ids_cannot_be_cancelled(db_session, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])
    refund = cancellation_service.cancel_transaction(sale.id)["refund"]

    with pytest.raises(InvalidState):
        cancellation_service.cancel_transaction(refund.id)
    with pytest.raises(NotFound):
        cancellation_service.cancel_transaction(31337)

    assert db.session.query(Transaction).count() == 2


def test_cancellation_is_audited_and_announced(db_session, events, cola, alice):
    sale = sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 1}])
    refund = cancellation_service.cancel_transaction(sale.id, user_id=5)["refund"]

    entry = db.session.query(AuditLog).filter_by(action="TRANSACTION_CANCELLED").one()
    assert entry.user_id == 5
    assert entry.changes["refund_id"] == refund.id

    cancelled = [payload for event_type, payload in events if event_type == "transaction.cancelled"]
    assert len(cancelled) == 1
    assert cancelled[0]["transaction_id"] == sale.id
    assert cancelled[0]["refund_id"] == refund.id
    assert cancelled[0]["amount"] == "-1.00"
