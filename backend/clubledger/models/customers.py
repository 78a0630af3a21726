from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z, utcnow
from .types import Money


class Customer(db.Model):
    """
    Club member with a prepaid account.

    BALANCE: changed only inside a committed sale, cancellation or top-up.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_customers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    nickname = db.Column(db.String(255), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    balance = db.Column(Money, nullable=False, default=0)
    last_activity = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "nickname": self.nickname,
            "active": self.active,
            "balance": decimal_str(self.balance),
            "last_activity": to_utc_z(self.last_activity),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class AccountTopUp(db.Model):
    """Deposit onto a customer account (cash or bank transfer)."""
    __tablename__ = "account_top_ups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount = db.Column(Money, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("top_ups", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount": decimal_str(self.amount),
            "method": self.method,
            "reference": self.reference,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
