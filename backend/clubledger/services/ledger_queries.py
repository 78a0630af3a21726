# Overview: Typed aggregation queries over the ledger tables.
"""
All report numbers come from here. Each function takes a UTC-naive
half-open window [start, end) and returns plain rows with Decimal values.

"Active sale" below means type SALE and not cancelled. Cancelled sales and
their REFUND rows never count as revenue; they are reported separately.
"""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Article, Customer, Invoice, PurchaseDocument, Transaction, TransactionItem
from ..models.documents import INVOICE_PAID, PURCHASE_INVOICE
from ..models.sales import PAYMENT_METHODS, TRANSACTION_SALE
from ..money import ZERO_MONEY, to_money, to_quantity

SCORE_AMOUNT = "AMOUNT"
SCORE_COUNT = "COUNT"
SCORE_MODES = (SCORE_AMOUNT, SCORE_COUNT)


def _window(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query


def _active_sales(query, start, end):
    query = query.filter(Transaction.type == TRANSACTION_SALE, Transaction.cancelled.is_(False))
    return _window(query, Transaction.created_at, start, end)


def sales_totals(start: datetime | None, end: datetime | None) -> dict:
    """Count and revenue of active sales, overall and per payment method."""
    rows = _active_sales(
        db.session.query(
            Transaction.payment_method,
            func.count(Transaction.id),
            func.sum(Transaction.total_amount),
        ),
        start,
        end,
    ).group_by(Transaction.payment_method).all()

    by_method = {method: {"count": 0, "amount": ZERO_MONEY} for method in PAYMENT_METHODS}
    for method, count, amount in rows:
        by_method[method] = {"count": int(count), "amount": to_money(amount)}
    return {
        "count": sum(v["count"] for v in by_method.values()),
        "amount": sum((v["amount"] for v in by_method.values()), ZERO_MONEY),
        "by_payment_method": by_method,
    }


def cancelled_totals(start: datetime | None, end: datetime | None) -> dict:
    """Sales cancelled inside the window, by cancellation time."""
    query = db.session.query(func.count(Transaction.id), func.sum(Transaction.total_amount)).filter(
        Transaction.type == TRANSACTION_SALE,
        Transaction.cancelled.is_(True),
    )
    count, amount = _window(query, Transaction.cancelled_at, start, end).one()
    return {"count": int(count or 0), "amount": to_money(amount)}


def article_totals(
    start: datetime | None,
    end: datetime | None,
    *,
    order_by: str = "amount",
    limit: int | None = None,
) -> list[dict]:
    quantity = func.sum(TransactionItem.quantity).label("quantity")
    amount = func.sum(TransactionItem.total_price).label("amount")
    query = _active_sales(
        db.session.query(Article.id, Article.name, Article.category, quantity, amount)
        .join(TransactionItem, TransactionItem.article_id == Article.id)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id),
        start,
        end,
    ).group_by(Article.id, Article.name, Article.category)
    primary = quantity if order_by == "quantity" else amount
    query = query.order_by(primary.desc(), Article.id.asc())
    if limit:
        query = query.limit(limit)
    return [
        {
            "article_id": article_id,
            "name": name,
            "category": category,
            "quantity": to_quantity(qty),
            "amount": to_money(total),
        }
        for article_id, name, category, qty, total in query.all()
    ]


def category_totals(start: datetime | None, end: datetime | None) -> list[dict]:
    amount = func.sum(TransactionItem.total_price).label("amount")
    rows = _active_sales(
        db.session.query(Article.category, amount)
        .join(TransactionItem, TransactionItem.article_id == Article.id)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id),
        start,
        end,
    ).group_by(Article.category).order_by(amount.desc()).all()
    return [{"category": category or "-", "amount": to_money(total)} for category, total in rows]


def sale_timestamps(start: datetime | None, end: datetime | None) -> list[tuple[datetime, object]]:
    """(created_at, total_amount) per active sale; bucketing is done by the caller."""
    return _active_sales(
        db.session.query(Transaction.created_at, Transaction.total_amount),
        start,
        end,
    ).order_by(Transaction.created_at.asc()).all()


def customer_scores(
    start: datetime | None,
    end: datetime | None,
    mode: str,
    *,
    include_inactive_articles: bool = False,
) -> list[dict]:
    """
    Highscore rows, best first.

    Only items of articles flagged counts_for_highscore contribute. Ties are
    ordered by the customer's first qualifying transaction in the window.
    """
    amount = func.sum(TransactionItem.total_price)
    quantity = func.sum(TransactionItem.quantity)
    score = amount if mode == SCORE_AMOUNT else quantity
    first_tx = func.min(Transaction.id)

    query = (
        db.session.query(
            Customer.id,
            Customer.name,
            Customer.nickname,
            score.label("score"),
            func.count(Transaction.id.distinct()),
            amount,
            quantity,
            first_tx,
        )
        .join(Transaction, Transaction.customer_id == Customer.id)
        .join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
        .join(Article, Article.id == TransactionItem.article_id)
        .filter(Article.counts_for_highscore.is_(True))
    )
    if not include_inactive_articles:
        query = query.filter(Article.active.is_(True))
    query = _active_sales(query, start, end)
    rows = (
        query.group_by(Customer.id, Customer.name, Customer.nickname)
        .order_by(score.desc(), first_tx.asc())
        .all()
    )
    return [
        {
            "customer_id": customer_id,
            "customer_name": name,
            "customer_nickname": nickname,
            "score": to_money(score_value) if mode == SCORE_AMOUNT else to_quantity(score_value),
            "transaction_count": int(tx_count),
            "total_amount": to_money(total_amount),
            "total_items": to_quantity(total_items),
        }
        for customer_id, name, nickname, score_value, tx_count, total_amount, total_items, _ in rows
    ]


def paid_purchase_expenses(start_date: date, end_date: date) -> dict:
    """Paid supplier invoices by document date (inclusive), grouped by supplier."""
    amount = func.sum(PurchaseDocument.total_amount).label("amount")
    rows = (
        db.session.query(PurchaseDocument.supplier, func.count(PurchaseDocument.id), amount)
        .filter(
            PurchaseDocument.type == PURCHASE_INVOICE,
            PurchaseDocument.paid.is_(True),
            PurchaseDocument.document_date >= start_date,
            PurchaseDocument.document_date <= end_date,
        )
        .group_by(PurchaseDocument.supplier)
        .order_by(amount.desc())
        .all()
    )
    by_supplier = [
        {"supplier": supplier or "-", "count": int(count), "amount": to_money(total)}
        for supplier, count, total in rows
    ]
    return {
        "count": sum(r["count"] for r in by_supplier),
        "amount": sum((r["amount"] for r in by_supplier), ZERO_MONEY),
        "by_supplier": by_supplier,
    }


def paid_invoice_income(start: datetime | None, end: datetime | None) -> dict:
    count, amount = _window(
        db.session.query(func.count(Invoice.id), func.sum(Invoice.total_amount)).filter(
            Invoice.status == INVOICE_PAID
        ),
        Invoice.paid_at,
        start,
        end,
    ).one()
    return {"count": int(count or 0), "amount": to_money(amount)}


def article_stock_snapshot() -> list[Article]:
    return db.session.query(Article).order_by(Article.category.asc(), Article.name.asc(), Article.id.asc()).all()


def customer_balance_total():
    total = db.session.query(func.sum(Customer.balance)).scalar()
    return to_money(total)
