# Overview: Article master data; stock changes are delegated to the stock ledger.

from __future__ import annotations

from ..extensions import db
from ..models import Article
from ..models.catalog import MOVEMENT_INVENTORY
from .. import validation
from . import audit_service
from .concurrency import run_in_unit_of_work
from .errors import ValidationFailed
from .stock_service import book_movement, load_article

# Fields callers may change through update_article(); stock is not one of them.
UPDATABLE_FIELDS = {
    "name",
    "category",
    "price",
    "min_stock",
    "unit",
    "purchase_unit",
    "units_per_purchase",
    "counts_for_highscore",
}


def create_article(
    *,
    name: str,
    price,
    initial_stock=0,
    min_stock=0,
    unit: str = "piece",
    category: str | None = None,
    purchase_unit: str | None = None,
    units_per_purchase=None,
    counts_for_highscore: bool = True,
    user_id: int | None = None,
) -> Article:
    """
    Create an article. A positive initial stock is booked as an INVENTORY
    movement so the stock ledger balances from the first row.
    """
    if not name or not name.strip():
        raise ValidationFailed("name is required")
    price = validation.money(price, "price")
    initial_stock = validation.quantity(initial_stock, "initial_stock", allow_negative=False)
    min_stock = validation.quantity(min_stock, "min_stock", allow_negative=False)
    if units_per_purchase is not None:
        units_per_purchase = validation.quantity(units_per_purchase, "units_per_purchase", positive=True)

    def _op():
        article = Article(
            name=name.strip(),
            price=price,
            stock=0,
            min_stock=min_stock,
            unit=unit or "piece",
            category=category,
            purchase_unit=purchase_unit,
            units_per_purchase=units_per_purchase,
            counts_for_highscore=bool(counts_for_highscore),
            active=True,
        )
        db.session.add(article)
        db.session.flush()
        if initial_stock > 0:
            book_movement(article, initial_stock, "Initial stock", MOVEMENT_INVENTORY, user_id=user_id)
        audit_service.record(
            action="ARTICLE_CREATED",
            entity_type="Article",
            entity_id=article.id,
            user_id=user_id,
            changes={"name": article.name, "price": article.price, "stock": article.stock},
        )
        return article

    return run_in_unit_of_work(_op)


def update_article(article_id: int, *, user_id: int | None = None, **fields) -> Article:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailed(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            details={"fields": sorted(unknown)},
        )
    if "price" in fields:
        fields["price"] = validation.money(fields["price"], "price")
    if "min_stock" in fields:
        fields["min_stock"] = validation.quantity(fields["min_stock"], "min_stock", allow_negative=False)
    if fields.get("units_per_purchase") is not None:
        fields["units_per_purchase"] = validation.quantity(
            fields["units_per_purchase"], "units_per_purchase", positive=True
        )

    def _op():
        article = load_article(article_id, lock=True)
        before = {key: getattr(article, key) for key in fields}
        for key, value in fields.items():
            setattr(article, key, value)
        audit_service.record(
            action="ARTICLE_UPDATED",
            entity_type="Article",
            entity_id=article.id,
            user_id=user_id,
            changes=audit_service.diff(before, fields),
        )
        return article

    return run_in_unit_of_work(_op)


def set_article_active(article_id: int, active: bool, *, user_id: int | None = None) -> Article:
    """Articles are deactivated instead of deleted."""
    def _op():
        article = load_article(article_id, lock=True)
        if article.active != bool(active):
            audit_service.record(
                action="ARTICLE_ACTIVATED" if active else "ARTICLE_DEACTIVATED",
                entity_type="Article",
                entity_id=article.id,
                user_id=user_id,
            )
        article.active = bool(active)
        return article

    return run_in_unit_of_work(_op)


def get_article(article_id: int) -> Article:
    return load_article(article_id)


def list_articles(include_inactive: bool = False) -> list[Article]:
    query = db.session.query(Article)
    if not include_inactive:
        query = query.filter(Article.active.is_(True))
    return query.order_by(Article.category.asc(), Article.name.asc()).all()


def list_low_stock() -> list[Article]:
    """Active articles at or below their minimum stock, lowest first."""
    return (
        db.session.query(Article)
        .filter(Article.active.is_(True), Article.stock <= Article.min_stock)
        .order_by(Article.stock.asc(), Article.name.asc())
        .all()
    )
