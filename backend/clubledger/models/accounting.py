from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import validates

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z, utcnow
from .types import Money


class FiscalYear(db.Model):
    """
    Fiscal year with a one-way OPEN -> CLOSED lifecycle.

    `closed` is write-once: it can be set to True exactly once and never back.
    """
    __tablename__ = "fiscal_years"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    closed = db.Column(db.Boolean, nullable=False, default=False)
    closed_at = db.Column(db.DateTime, nullable=True)
    closed_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @validates("closed")
    def _validate_closed(self, key, value):
        if self.closed and not value:
            raise ValueError("a closed fiscal year cannot be reopened")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "closed": bool(self.closed),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by": self.closed_by,
            "created_at": to_utc_z(self.created_at),
        }


class YearEndReport(db.Model):
    """
    Immutable year-end snapshot. Inventory snapshots are JSON lists with
    decimal values serialized as strings.
    """
    __tablename__ = "year_end_reports"
    __table_args__ = (
        db.UniqueConstraint("fiscal_year_id", name="uq_year_end_reports_fiscal_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    fiscal_year_id = db.Column(db.Integer, db.ForeignKey("fiscal_years.id"), nullable=False)

    income_total = db.Column(Money, nullable=False)
    expenses_total = db.Column(Money, nullable=False)
    profit = db.Column(Money, nullable=False)
    cash_on_hand = db.Column(Money, nullable=False)
    bank_accounts = db.Column(db.JSON, nullable=False, default=list)
    customer_balance_total = db.Column(Money, nullable=False)

    inventory_system = db.Column(db.JSON, nullable=False, default=list)
    inventory_physical = db.Column(db.JSON, nullable=False, default=list)
    inventory_diff = db.Column(db.JSON, nullable=False, default=list)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    fiscal_year = db.relationship("FiscalYear", backref=db.backref("report", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fiscal_year_id": self.fiscal_year_id,
            "income_total": decimal_str(self.income_total),
            "expenses_total": decimal_str(self.expenses_total),
            "profit": decimal_str(self.profit),
            "cash_on_hand": decimal_str(self.cash_on_hand),
            "bank_accounts": self.bank_accounts,
            "customer_balance_total": decimal_str(self.customer_balance_total),
            "inventory_system": self.inventory_system,
            "inventory_physical": self.inventory_physical,
            "inventory_diff": self.inventory_diff,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(YearEndReport, "before_update")
def _reject_report_update(mapper, connection, target):
    raise ValueError("year-end reports are immutable")
