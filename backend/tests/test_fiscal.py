from decimal import Decimal

import pytest

from clubledger.extensions import db
from clubledger.models import Article, Customer, FiscalYear, YearEndReport
from clubledger.services import fiscal_service, sales_service
from clubledger.services.errors import InvalidState, NotFound, ValidationFailed
from clubledger.time_utils import utcnow


@pytest.fixture
def fiscal_year(db_session):
    today = utcnow().date()
    return fiscal_service.create_fiscal_year(
        f"FY {today.year}", today.replace(month=1, day=1), today.replace(month=12, day=31)
    )


def test_close_fiscal_year_snapshots_without_mutating(db_session, fiscal_year, cola, beer, alice):
    sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 2}])

    report = fiscal_service.close_fiscal_year(
        fiscal_year.id,
        cash_on_hand="150.00",
        bank_accounts=[{"name": "Checking", "balance": "1200.50"}],
        physical_inventory=[{"article_id": cola.id, "physical_stock": "7"}],
        user_id=4,
    )

    assert report.income_total == Decimal("2.00")
    assert report.expenses_total == Decimal("0.00")
    assert report.profit == Decimal("2.00")
    assert report.cash_on_hand == Decimal("150.00")
    assert report.bank_accounts == [{"name": "Checking", "balance": "1200.50"}]
    assert report.customer_balance_total == Decimal("8.00")

    diffs = {row["article_id"]: row["diff"] for row in report.inventory_diff}
    assert diffs == {cola.id: "-1.000", beer.id: "0.000"}
    physical = {row["article_id"]: row["physical_stock"] for row in report.inventory_physical}
    assert physical[beer.id] == "20.000"

    # snapshot only
    assert db.session.get(Article, cola.id).stock == Decimal("8")
    assert db.session.get(Customer, alice.id).balance == Decimal("8.00")

    closed = db.session.get(FiscalYear, fiscal_year.id)
    assert closed.closed is True
    assert closed.closed_by == 4
    assert fiscal_service.get_year_end_report(fiscal_year.id).id == report.id


def test_closing_twice_fails(db_session, fiscal_year):
    fiscal_service.close_fiscal_year(fiscal_year.id)

    with pytest.raises(InvalidState):
        fiscal_service.close_fiscal_year(fiscal_year.id)
    assert db.session.query(YearEndReport).count() == 1


def test_closed_year_and_report_are_frozen(db_session, fiscal_year):
    report = fiscal_service.close_fiscal_year(fiscal_year.id, cash_on_hand="10.00")

    with pytest.raises(ValueError):
        db.session.get(FiscalYear, fiscal_year.id).closed = False
    db.session.rollback()

    stored = db.session.get(YearEndReport, report.id)
    stored.cash_on_hand = Decimal("99.00")
    with pytest.raises(ValueError):
        db.session.flush()
    db.session.rollback()
    assert db.session.get(YearEndReport, report.id).cash_on_hand == Decimal("10.00")


def test_close_rejects_unknown_articles_and_missing_years(db_session, fiscal_year):
    with pytest.raises(ValidationFailed):
        fiscal_service.close_fiscal_year(fiscal_year.id, physical_inventory=[{"article_id": 999, "physical_stock": "1"}])
    assert db.session.get(FiscalYear, fiscal_year.id).closed is False

    with pytest.raises(NotFound):
        fiscal_service.close_fiscal_year(12345)
    with pytest.raises(NotFound):
        fiscal_service.get_year_end_report(fiscal_year.id)


def test_create_fiscal_year_validates_dates(db_session):
    with pytest.raises(ValidationFailed):
        fiscal_service.create_fiscal_year("Backwards", "2026-12-31", "2026-01-01")

    fiscal_service.create_fiscal_year("FY 2025", "2025-01-01", "2025-12-31")
    fiscal_service.create_fiscal_year("FY 2026", "2026-01-01", "2026-12-31")
    assert [fy.name for fy in fiscal_service.list_fiscal_years()] == ["FY 2026", "FY 2025"]


def test_preview_lists_year_activity(db_session, fiscal_year, cola):
    sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 3}])

    preview = fiscal_service.get_fiscal_year_preview(fiscal_year.id)

    assert preview["sold_articles"] == [{
        "id": cola.id,
        "article": "Cola",
        "category": "Soft drinks",
        "quantity": "3.000",
        "amount": "3.00",
    }]
    assert preview["paid_invoices"] == []
    assert preview["unpaid_invoices"] == []
    assert preview["expense_docs"] == []
