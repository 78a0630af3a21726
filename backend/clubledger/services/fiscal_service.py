"""
Fiscal closing: freeze a year's numbers into one immutable YearEndReport.

Closing invariants (authoritative)

- FiscalYear goes OPEN -> CLOSED exactly once. The closed flag is checked
  and set under the fiscal year's row lock in the same unit of work that
  writes the report, so two concurrent closes cannot both succeed.
- Closing is a snapshot only: no article stock and no customer balance is
  written.
- Physical counts missing from the request default to the system stock
  (no variance). Variance = physical - system, per article.
- Snapshot values are JSON with decimals as strings.
"""
from __future__ import annotations

from ..extensions import db
from ..models import FiscalYear, Invoice, PurchaseDocument, YearEndReport
from ..models.documents import INVOICE_PAID, PURCHASE_INVOICE
from ..money import decimal_str
from ..time_utils import utcnow
from .. import validation
from . import audit_service, ledger_queries
from .concurrency import lock_for_update, run_in_unit_of_work
from .errors import InvalidState, NotFound, ValidationFailed
from .reporting_service import compute_profit_loss, date_range_window


def create_fiscal_year(name: str, start_date, end_date, *, user_id: int | None = None) -> FiscalYear:
    if not name or not name.strip():
        raise ValidationFailed("name is required")
    start_date = validation.iso_date(start_date, "start_date")
    end_date = validation.iso_date(end_date, "end_date")
    if end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")

    def _op():
        fiscal_year = FiscalYear(name=name.strip(), start_date=start_date, end_date=end_date, closed=False)
        db.session.add(fiscal_year)
        db.session.flush()
        audit_service.record(
            action="FISCAL_YEAR_CREATED",
            entity_type="FiscalYear",
            entity_id=fiscal_year.id,
            user_id=user_id,
            changes={"name": fiscal_year.name, "start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
        return fiscal_year

    return run_in_unit_of_work(_op)


def list_fiscal_years() -> list[FiscalYear]:
    return db.session.query(FiscalYear).order_by(FiscalYear.start_date.desc()).all()


def get_fiscal_year(fiscal_year_id: int) -> FiscalYear:
    fiscal_year = db.session.get(FiscalYear, fiscal_year_id)
    if fiscal_year is None:
        raise NotFound(f"Fiscal year {fiscal_year_id} not found", details={"fiscal_year_id": fiscal_year_id})
    return fiscal_year


def _physical_counts(physical_inventory) -> dict:
    counts = {}
    for index, entry in enumerate(physical_inventory or []):
        if not isinstance(entry, dict):
            raise ValidationFailed(f"physical_inventory[{index}] must be an object")
        article_id = validation.integer_id(entry.get("article_id"), f"physical_inventory[{index}].article_id")
        counts[article_id] = validation.quantity(
            entry.get("physical_stock"), f"physical_inventory[{index}].physical_stock"
        )
    return counts


def _bank_accounts(bank_accounts) -> list[dict]:
    normalized = []
    for index, account in enumerate(bank_accounts or []):
        if not isinstance(account, dict):
            raise ValidationFailed(f"bank_accounts[{index}] must be an object")
        name = (account.get("name") or "").strip()
        if not name:
            raise ValidationFailed(f"bank_accounts[{index}].name is required")
        balance = validation.money(account.get("balance"), f"bank_accounts[{index}].balance", allow_negative=True)
        normalized.append({"name": name, "balance": decimal_str(balance)})
    return normalized


def close_fiscal_year(
    fiscal_year_id: int,
    cash_on_hand=0,
    bank_accounts=None,
    physical_inventory=None,
    *,
    user_id: int | None = None,
) -> YearEndReport:
    cash_on_hand = validation.money(cash_on_hand, "cash_on_hand")
    accounts = _bank_accounts(bank_accounts)
    counts = _physical_counts(physical_inventory)

    def _op():
        fiscal_year = lock_for_update(db.session.query(FiscalYear).filter_by(id=fiscal_year_id)).first()
        if fiscal_year is None:
            raise NotFound(f"Fiscal year {fiscal_year_id} not found", details={"fiscal_year_id": fiscal_year_id})
        if fiscal_year.closed:
            raise InvalidState(
                f"Fiscal year {fiscal_year.name} is already closed",
                details={"fiscal_year_id": fiscal_year.id},
            )

        pl = compute_profit_loss(fiscal_year.start_date, fiscal_year.end_date)

        articles = ledger_queries.article_stock_snapshot()
        known = {article.id for article in articles}
        unknown = sorted(set(counts) - known)
        if unknown:
            raise ValidationFailed("Physical inventory names unknown articles", details={"article_ids": unknown})

        system, physical, diff = [], [], []
        for article in articles:
            counted = counts.get(article.id, article.stock)
            system.append({
                "article_id": article.id,
                "name": article.name,
                "system_stock": decimal_str(article.stock),
                "unit": article.unit,
            })
            physical.append({
                "article_id": article.id,
                "name": article.name,
                "physical_stock": decimal_str(counted),
                "unit": article.unit,
            })
            diff.append({
                "article_id": article.id,
                "name": article.name,
                "diff": decimal_str(counted - article.stock),
                "unit": article.unit,
            })

        report = YearEndReport(
            fiscal_year_id=fiscal_year.id,
            income_total=pl["income_total"],
            expenses_total=pl["expenses_total"],
            profit=pl["profit"],
            cash_on_hand=cash_on_hand,
            bank_accounts=accounts,
            customer_balance_total=ledger_queries.customer_balance_total(),
            inventory_system=system,
            inventory_physical=physical,
            inventory_diff=diff,
            created_by=user_id,
        )
        db.session.add(report)

        fiscal_year.closed = True
        fiscal_year.closed_at = utcnow()
        fiscal_year.closed_by = user_id
        db.session.flush()

        audit_service.record(
            action="FISCAL_YEAR_CLOSED",
            entity_type="FiscalYear",
            entity_id=fiscal_year.id,
            user_id=user_id,
            changes={
                "closed": {"before": False, "after": True},
                "report_id": report.id,
                "profit": report.profit,
            },
        )
        return report

    return run_in_unit_of_work(_op)


def get_year_end_report(fiscal_year_id: int) -> YearEndReport:
    fiscal_year = get_fiscal_year(fiscal_year_id)
    if fiscal_year.report is None:
        raise NotFound(
            f"Fiscal year {fiscal_year.name} has no year-end report",
            details={"fiscal_year_id": fiscal_year_id},
        )
    return fiscal_year.report


def get_fiscal_year_preview(fiscal_year_id: int) -> dict:
    """Tables shown before closing: sold articles, paid and unpaid invoices, expense documents."""
    fiscal_year = get_fiscal_year(fiscal_year_id)
    start, end = date_range_window(fiscal_year.start_date, fiscal_year.end_date)

    sold_articles = [
        {
            "id": row["article_id"],
            "article": row["name"],
            "category": row["category"],
            "quantity": decimal_str(row["quantity"]),
            "amount": decimal_str(row["amount"]),
        }
        for row in ledger_queries.article_totals(start, end)
    ]
    paid_invoices = (
        db.session.query(Invoice)
        .filter(Invoice.status == INVOICE_PAID, Invoice.paid_at >= start, Invoice.paid_at < end)
        .order_by(Invoice.paid_at.asc())
        .all()
    )
    unpaid_invoices = (
        db.session.query(Invoice)
        .filter(Invoice.status != INVOICE_PAID, Invoice.created_at >= start, Invoice.created_at < end)
        .order_by(Invoice.created_at.asc())
        .all()
    )
    expense_docs = (
        db.session.query(PurchaseDocument)
        .filter(
            PurchaseDocument.type == PURCHASE_INVOICE,
            PurchaseDocument.paid.is_(True),
            PurchaseDocument.document_date >= fiscal_year.start_date,
            PurchaseDocument.document_date <= fiscal_year.end_date,
        )
        .order_by(PurchaseDocument.document_date.asc())
        .all()
    )
    return {
        "fiscal_year": fiscal_year.to_dict(),
        "sold_articles": sold_articles,
        "paid_invoices": [invoice.to_dict() for invoice in paid_invoices],
        "expense_docs": [doc.to_dict() for doc in expense_docs],
        "unpaid_invoices": [invoice.to_dict() for invoice in unpaid_invoices],
    }
