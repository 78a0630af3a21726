from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z, utcnow
from .types import Money, Quantity

MOVEMENT_SALE = "SALE"
MOVEMENT_DELIVERY = "DELIVERY"
MOVEMENT_INVENTORY = "INVENTORY"
MOVEMENT_CORRECTION = "CORRECTION"
MOVEMENT_TYPES = (MOVEMENT_SALE, MOVEMENT_DELIVERY, MOVEMENT_INVENTORY, MOVEMENT_CORRECTION)


class Article(db.Model):
    """
    Sellable article with its current stock level.

    STOCK: `stock` is a running total kept in lock-step with the
    StockMovement log (sum of movement deltas == stock after every commit).
    It is written only by the stock ledger primitives; never assign it
    directly from route or report code.

    Articles are never deleted, only deactivated.
    """
    __tablename__ = "articles"
    __table_args__ = (
        db.Index("ix_articles_active_category_name", "active", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    price = db.Column(Money, nullable=False)
    stock = db.Column(Quantity, nullable=False, default=0)
    min_stock = db.Column(Quantity, nullable=False, default=0)

    # Base unit the article is sold in (e.g. bottle) and the unit it is bought in (e.g. crate)
    unit = db.Column(db.String(32), nullable=False, default="piece")
    purchase_unit = db.Column(db.String(32), nullable=True)
    units_per_purchase = db.Column(Quantity, nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    counts_for_highscore = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Article id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": decimal_str(self.price),
            "stock": decimal_str(self.stock),
            "min_stock": decimal_str(self.min_stock),
            "unit": self.unit,
            "purchase_unit": self.purchase_unit,
            "units_per_purchase": decimal_str(self.units_per_purchase),
            "active": self.active,
            "counts_for_highscore": self.counts_for_highscore,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """Append-only stock log. One row per change of Article.stock, same delta."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_article_id_id", "article_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(Quantity, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    article = db.relationship("Article", backref=db.backref("stock_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "article_id": self.article_id,
            "type": self.type,
            "quantity": decimal_str(self.quantity),
            "reason": self.reason,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
