"""
Sale engine: one request -> stock depletion, balance debit, persisted transaction.

Sale invariants (authoritative)

- Steps run inside one unit of work: load and lock articles, check stock,
  snapshot prices, book SALE movements, debit the account, persist the
  transaction and its items. Any failure rolls all of it back.
- Articles are locked in ascending id order so two sales touching the same
  articles cannot deadlock each other.
- price_per_unit is the article price at sale time; total_amount equals the
  sum of the item totals.
- "sale.committed" is published only after the commit.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import Transaction, TransactionItem
from ..models.catalog import MOVEMENT_SALE
from ..models.sales import PAYMENT_ACCOUNT, PAYMENT_METHODS, TRANSACTION_SALE
from ..money import ZERO_MONEY, to_money
from ..time_utils import to_utc_z, utcnow
from .. import validation
from . import audit_service
from .concurrency import publish_after_commit, run_in_unit_of_work
from .customer_service import debit, load_customer
from .errors import NotFound, ValidationFailed
from .stock_service import book_movement, load_article

SALE_COMMITTED = "sale.committed"


def _normalize_items(items) -> list[tuple[int, Decimal]]:
    if not items:
        raise ValidationFailed("A sale needs at least one item")
    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationFailed(f"items[{index}] must be an object")
        article_id = validation.integer_id(item.get("article_id"), f"items[{index}].article_id")
        quantity = validation.quantity(item.get("quantity"), f"items[{index}].quantity", positive=True)
        lines.append((article_id, quantity))
    return lines


def create_sale(
    payment_method: str,
    customer_id: int | None = None,
    items=None,
    *,
    user_id: int | None = None,
) -> Transaction:
    """
    Book a sale.

    items: [{"article_id": int, "quantity": decimal}], quantity > 0.
    ACCOUNT sales require a customer; CASH sales may name one for the
    highscore.
    """
    validation.choice(payment_method, "payment_method", PAYMENT_METHODS)
    lines = _normalize_items(items)
    if customer_id is not None:
        customer_id = validation.integer_id(customer_id, "customer_id")
    if payment_method == PAYMENT_ACCOUNT and customer_id is None:
        raise ValidationFailed("ACCOUNT sales require a customer_id")

    def _op():
        articles = {}
        for article_id in sorted({article_id for article_id, _ in lines}):
            articles[article_id] = load_article(article_id, lock=True, require_active=True)

        customer = load_customer(customer_id, lock=True) if customer_id is not None else None

        sale = Transaction(
            type=TRANSACTION_SALE,
            payment_method=payment_method,
            total_amount=ZERO_MONEY,
            customer_id=customer.id if customer else None,
            user_id=user_id,
            cancelled=False,
            created_at=utcnow(),
        )
        db.session.add(sale)

        total = ZERO_MONEY
        for article_id, quantity in lines:
            article = articles[article_id]
            book_movement(article, -quantity, "Sale", MOVEMENT_SALE, user_id=user_id)
            line_total = to_money(article.price * quantity)
            total += line_total
            sale.items.append(TransactionItem(
                article_id=article.id,
                quantity=quantity,
                price_per_unit=article.price,
                total_price=line_total,
            ))

        if payment_method == PAYMENT_ACCOUNT:
            debit(customer, total)
        if customer is not None:
            customer.last_activity = sale.created_at

        sale.total_amount = total
        db.session.flush()

        audit_service.record(
            action="SALE_CREATED",
            entity_type="Transaction",
            entity_id=sale.id,
            user_id=user_id,
            changes={
                "payment_method": payment_method,
                "customer_id": sale.customer_id,
                "total_amount": total,
                "items": [
                    {"article_id": item.article_id, "quantity": item.quantity, "price_per_unit": item.price_per_unit}
                    for item in sale.items
                ],
            },
        )
        publish_after_commit(SALE_COMMITTED, {
            "transaction_id": sale.id,
            "customer_id": sale.customer_id,
            "customer_name": customer.name if customer else None,
            "payment_method": payment_method,
            "amount": str(total),
            "timestamp": to_utc_z(sale.created_at),
        })
        return sale

    return run_in_unit_of_work(_op)


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFound(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return transaction


def list_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    customer_id: int | None = None,
    payment_method: str | None = None,
    limit: int = 200,
) -> list[Transaction]:
    """Newest first. Dates are inclusive calendar days in UTC."""
    query = db.session.query(Transaction)
    if start_date:
        query = query.filter(Transaction.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Transaction.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if customer_id is not None:
        query = query.filter(Transaction.customer_id == customer_id)
    if payment_method:
        validation.choice(payment_method, "payment_method", PAYMENT_METHODS)
        query = query.filter(Transaction.payment_method == payment_method)
    return query.order_by(Transaction.id.desc()).limit(max(1, min(limit, 1000))).all()
