# Overview: Stock ledger primitives; the only code path that writes Article.stock.
"""
Stock ledger invariants (authoritative)

- Article.stock == SUM(StockMovement.quantity) for that article after every
  committed unit of work.
- Every change of Article.stock appends exactly one StockMovement carrying
  the same delta; both are flushed in the same DB transaction.
- With ALLOW_NEGATIVE_STOCK=False a decreasing movement that would take the
  article below zero is rejected with InsufficientStock. Increasing
  movements are always accepted.
- The stock check and the write happen under the article's row lock (or the
  SQLite database write lock), so two writers cannot both pass the check.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Article, StockMovement
from ..models.catalog import (
    MOVEMENT_CORRECTION,
    MOVEMENT_DELIVERY,
    MOVEMENT_INVENTORY,
    MOVEMENT_TYPES,
)
from ..money import to_quantity
from .. import validation
from . import audit_service
from .concurrency import lock_for_update, run_in_unit_of_work
from .errors import InsufficientStock, InvalidState, NotFound, ValidationFailed


def negative_stock_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))


def load_article(article_id: int, *, lock: bool = False, require_active: bool = False) -> Article:
    query = db.session.query(Article).filter_by(id=article_id)
    if lock:
        query = lock_for_update(query)
    article = query.first()
    if article is None:
        raise NotFound(f"Article {article_id} not found", details={"article_id": article_id})
    if require_active and not article.active:
        raise InvalidState(f"Article {article.name} is inactive", details={"article_id": article_id})
    return article


def book_movement(
    article: Article,
    delta: Decimal,
    reason: str | None,
    movement_type: str,
    *,
    user_id: int | None = None,
) -> StockMovement:
    """
    Core adjust-and-append without locking, retry or commit.

    Caller must hold the article lock inside a unit of work. Used by
    adjust_stock() and by the sale, cancellation and purchase services.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationFailed(f"Unknown movement type {movement_type}")

    current = article.stock
    new_stock = current + delta
    if delta < 0 and new_stock < 0 and not negative_stock_allowed():
        raise InsufficientStock(article.id, article.name, available=current, required=-delta)

    article.stock = new_stock
    movement = StockMovement(
        article_id=article.id,
        type=movement_type,
        quantity=delta,
        reason=reason,
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    article_id: int,
    delta,
    reason: str | None,
    movement_type: str = MOVEMENT_CORRECTION,
    *,
    user_id: int | None = None,
) -> Article:
    """Apply one signed stock change and its movement row atomically."""
    delta = validation.quantity(delta, "delta")
    if delta == 0:
        raise ValidationFailed("delta must not be zero")
    validation.choice(movement_type, "movement_type", MOVEMENT_TYPES)

    def _op():
        article = load_article(article_id, lock=True)
        before = article.stock
        movement = book_movement(article, delta, reason, movement_type, user_id=user_id)
        audit_service.record(
            action="STOCK_ADJUSTED",
            entity_type="Article",
            entity_id=article.id,
            user_id=user_id,
            changes={
                "stock": {"before": before, "after": article.stock},
                "movement_id": movement.id,
                "type": movement_type,
                "reason": reason,
            },
        )
        return article

    return run_in_unit_of_work(_op)


def process_delivery(article_id: int, quantity, reason: str = "Delivery", *, user_id: int | None = None) -> Article:
    quantity = validation.quantity(quantity, "quantity", positive=True)
    return adjust_stock(article_id, quantity, reason, MOVEMENT_DELIVERY, user_id=user_id)


def process_inventory_count(
    article_id: int,
    actual_stock,
    reason: str = "Inventory count",
    *,
    user_id: int | None = None,
) -> Article:
    """Book the difference between counted and system stock. No-op when equal."""
    actual_stock = validation.quantity(actual_stock, "actual_stock")

    def _op():
        article = load_article(article_id, lock=True)
        before = article.stock
        difference = actual_stock - before
        if difference == 0:
            return article
        movement = book_movement(article, difference, reason, MOVEMENT_INVENTORY, user_id=user_id)
        audit_service.record(
            action="INVENTORY_COUNTED",
            entity_type="Article",
            entity_id=article.id,
            user_id=user_id,
            changes={
                "stock": {"before": before, "after": article.stock},
                "movement_id": movement.id,
            },
        )
        return article

    return run_in_unit_of_work(_op)


def list_movements(article_id: int, limit: int = 50) -> list[StockMovement]:
    load_article(article_id)
    return (
        db.session.query(StockMovement)
        .filter_by(article_id=article_id)
        .order_by(StockMovement.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )


def movement_sum(article_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.article_id == article_id)
        .scalar()
    )
    return to_quantity(total)


def verify_stock_ledger() -> list[dict]:
    """
    Articles whose stock differs from the sum of their movements.

    Empty list means the stock ledger is consistent.
    """
    sums = dict(
        db.session.query(StockMovement.article_id, func.sum(StockMovement.quantity))
        .group_by(StockMovement.article_id)
        .all()
    )
    mismatches = []
    for article in db.session.query(Article).order_by(Article.id).all():
        ledger = sums.get(article.id)
        ledger = to_quantity(ledger)
        if ledger != article.stock:
            mismatches.append({
                "article_id": article.id,
                "name": article.name,
                "stock": str(article.stock),
                "movement_sum": str(ledger),
            })
    return mismatches
