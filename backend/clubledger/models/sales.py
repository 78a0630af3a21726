from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z, utcnow
from .types import Money, Quantity

TRANSACTION_SALE = "SALE"
TRANSACTION_REFUND = "REFUND"

PAYMENT_CASH = "CASH"
PAYMENT_ACCOUNT = "ACCOUNT"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_ACCOUNT)


class Transaction(db.Model):
    """
    POS transaction (SALE or REFUND).

    Immutable once created except for the cancellation fields on a SALE.
    A cancelled SALE has exactly one REFUND whose original_transaction_id
    points back to it; the REFUND carries the exact negation of the sale.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_type_cancelled_created", "type", "cancelled", "created_at"),
        db.Index("ix_transactions_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default=TRANSACTION_SALE)
    payment_method = db.Column(db.String(16), nullable=False)
    total_amount = db.Column(Money, nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)

    cancelled = db.Column(db.Boolean, nullable=False, default=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)

    original_transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id"), nullable=True, unique=True
    )

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy="dynamic"))
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.id",
        lazy="selectin",
    )
    original_transaction = db.relationship(
        "Transaction",
        remote_side=[id],
        backref=db.backref("refunds", lazy="select"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "payment_method": self.payment_method,
            "total_amount": decimal_str(self.total_amount),
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "cancelled": self.cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "original_transaction_id": self.original_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line of a transaction. Price is the snapshot taken at sale time."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.Index("ix_transaction_items_article_transaction", "article_id", "transaction_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False)

    quantity = db.Column(Quantity, nullable=False)
    price_per_unit = db.Column(Money, nullable=False)
    total_price = db.Column(Money, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")
    article = db.relationship("Article")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "article_id": self.article_id,
            "quantity": decimal_str(self.quantity),
            "price_per_unit": decimal_str(self.price_per_unit),
            "total_price": decimal_str(self.total_price),
        }
