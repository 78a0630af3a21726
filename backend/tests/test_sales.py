from decimal import Decimal

import pytest

from clubledger.extensions import db
from clubledger.models import Article, AuditLog, Customer, StockMovement, Transaction
from clubledger.models.catalog import MOVEMENT_SALE
from clubledger.services import catalog_service, sales_service
from clubledger.services.errors import (
    InsufficientBalance,
    InsufficientStock,
    InvalidState,
    NotFound,
    ValidationFailed,
)


def test_cash_sale_depletes_stock_and_snapshots_price(db_session, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 3}])

    assert sale.total_amount == Decimal("3.00")
    assert sale.type == "SALE"
    assert sale.customer_id is None
    assert len(sale.items) == 1
    assert sale.items[0].price_per_unit == Decimal("1.00")
    assert sale.items[0].total_price == Decimal("3.00")
    assert db.session.get(Article, cola.id).stock == Decimal("7")

    movement = db.session.query(StockMovement).filter_by(article_id=cola.id, type=MOVEMENT_SALE).one()
    assert movement.quantity == Decimal("-3")
    assert movement.reason == "Sale"


def test_total_equals_sum_of_item_totals(db_session, cola, beer):
    sale = sales_service.create_sale("CASH", None, [
        {"article_id": beer.id, "quantity": "2"},
        {"article_id": cola.id, "quantity": "0.5"},
        {"article_id": beer.id, "quantity": "1"},
    ])

    assert sale.total_amount == sum(item.total_price for item in sale.items)
    assert sale.total_amount == Decimal("8.00")
    assert db.session.get(Article, beer.id).stock == Decimal("17")


def test_price_change_does_not_rewrite_history(db_session, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 2}])
    catalog_service.update_article(cola.id, price="1.50")

    stored = sales_service.get_transaction(sale.id)
    assert stored.items[0].price_per_unit == Decimal("1.00")
    assert stored.total_amount == Decimal("2.00")


def test_account_sale_debits_balance(db_session, cola, alice):
    sale = sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 4}])

    customer = db.session.get(Customer, alice.id)
    assert customer.balance == Decimal("6.00")
    assert customer.last_activity == sale.created_at


def test_cash_sale_with_customer_updates_last_activity_only(db_session, cola, alice):
    sales_service.create_sale("CASH", alice.id, [{"article_id": cola.id, "quantity": 1}])

    customer = db.session.get(Customer, alice.id)
    assert customer.balance == Decimal("10.00")
    assert customer.last_activity is not None


def test_insufficient_balance_reports_numbers_and_rolls_back(db_session, beer, alice):
    with pytest.raises(InsufficientBalance) as excinfo:
        sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": beer.id, "quantity": 5}])

    assert excinfo.value.message == "Insufficient balance: available €10.00, required €12.50"
    assert excinfo.value.details["available"] == "10.00"
    assert db.session.get(Article, beer.id).stock == Decimal("20")
    assert db.session.get(Customer, alice.id).balance == Decimal("10.00")
    assert db.session.query(Transaction).count() == 0
    assert db.session.query(StockMovement).filter_by(type=MOVEMENT_SALE).count() == 0


def test_overdraft_limit_extends_available_balance(app, db_session, beer, alice, monkeypatch):
    monkeypatch.setitem(app.config, "ACCOUNT_OVERDRAFT_LIMIT", Decimal("5.00"))

    sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": beer.id, "quantity": 5}])

    assert db.session.get(Customer, alice.id).balance == Decimal("-2.50")


def test_insufficient_stock_leaves_no_partial_sale(db_session, cola, beer):
    with pytest.raises(InsufficientStock) as excinfo:
        sales_service.create_sale("CASH", None, [
            {"article_id": beer.id, "quantity": 2},
            {"article_id": cola.id, "quantity": 11},
        ])

    assert "Insufficient stock for Cola: available 10, required 11" == excinfo.value.message
    assert db.session.get(Article, beer.id).stock == Decimal("20")
    assert db.session.get(Article, cola.id).stock == Decimal("10")
    assert db.session.query(Transaction).count() == 0
    assert db.session.query(AuditLog).filter_by(action="SALE_CREATED").count() == 0


def test_duplicate_lines_are_checked_cumulatively(db_session, cola):
    with pytest.raises(InsufficientStock):
        sales_service.create_sale("CASH", None, [
            {"article_id": cola.id, "quantity": 6},
            {"article_id": cola.id, "quantity": 6},
        ])
    assert db.session.get(Article, cola.id).stock == Decimal("10")


def test_inactive_and_missing_articles_are_rejected(db_session, cola):
    catalog_service.set_article_active(cola.id, False)

    with pytest.raises(InvalidState):
        sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])
    with pytest.raises(NotFound):
        sales_service.create_sale("CASH", None, [{"article_id": 4242, "quantity": 1}])


def test_missing_customer_is_not_found(db_session, cola):
    with pytest.raises(NotFound):
        sales_service.create_sale("ACCOUNT", 4242, [{"article_id": cola.id, "quantity": 1}])
    assert db.session.get(Article, cola.id).stock == Decimal("10")


@pytest.mark.parametrize("payment_method, customer_id, items", [
    ("CASH", None, []),
    ("CASH", None, [{"article_id": 1, "quantity": 0}]),
    ("CASH", None, [{"article_id": 1, "quantity": "-1"}]),
    ("CASH", None, [{"article_id": 1}]),
    ("CARD", None, [{"article_id": 1, "quantity": 1}]),
    ("ACCOUNT", None, [{"article_id": 1, "quantity": 1}]),
])
def test_invalid_requests(db_session, payment_method, customer_id, items):
    with pytest.raises(ValidationFailed):
        sales_service.create_sale(payment_method, customer_id, items)


def test_sale_committed_event_is_published_after_commit(db_session, events, cola, alice):
    sale = sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 2}])

    committed = [payload for event_type, payload in events if event_type == "sale.committed"]
    assert committed == [{
        "transaction_id": sale.id,
        "customer_id": alice.id,
        "customer_name": "Alice",
        "payment_method": "ACCOUNT",
        "amount": "2.00",
        "timestamp": committed[0]["timestamp"],
    }]


def test_failed_sale_publishes_nothing(db_session, events, cola):
    with pytest.raises(InsufficientStock):
        sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 50}])
    assert [e for e in events if e[0] == "sale.committed"] == []


def test_list_transactions_filters(db_session, cola, alice):
    first = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])
    second = sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 1}])

    assert [t.id for t in sales_service.list_transactions()] == [second.id, first.id]
    assert [t.id for t in sales_service.list_transactions(customer_id=alice.id)] == [second.id]
    assert [t.id for t in sales_service.list_transactions(payment_method="CASH")] == [first.id]
    with pytest.raises(NotFound):
        sales_service.get_transaction(999)
