# Overview: Daily summary, period sales and profit/loss, computed fresh from the ledger.

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta

from flask import current_app

from ..money import ZERO_MONEY, decimal_str, to_money
from ..time_utils import business_tz, start_of_local_day, to_local, to_utc_z, utcnow
from .. import validation
from . import ledger_queries
from .errors import ValidationFailed

GROUP_BY_PERIODS = ("day", "month")


def _tz():
    return business_tz(current_app.config.get("BUSINESS_TIMEZONE"))


def date_range_window(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """Inclusive local calendar dates -> UTC-naive half-open window."""
    tz = _tz()
    return start_of_local_day(start_date, 0, tz), start_of_local_day(end_date + timedelta(days=1), 0, tz)


def business_day_for(now: datetime, start_hour: int) -> date:
    """Business day containing `now`; before start_hour it is still yesterday."""
    local_now = to_local(now, _tz())
    day = local_now.date()
    if local_now.hour < start_hour:
        day -= timedelta(days=1)
    return day


def get_daily_summary(day: date | None = None, *, now: datetime | None = None) -> dict:
    """
    Revenue totals, top articles and hourly distribution for one business day.

    The business day starts at DAILY_SUMMARY_START_HOUR (calendar midnight by
    default) and is unrelated to the highscore reset hour. Cancelled sales
    are counted by the time they were cancelled.
    """
    start_hour = int(current_app.config.get("DAILY_SUMMARY_START_HOUR", 0))
    if day is None:
        day = business_day_for(now or utcnow(), start_hour)
    tz = _tz()
    start = start_of_local_day(day, start_hour, tz)
    end = start_of_local_day(day + timedelta(days=1), start_hour, tz)

    totals = ledger_queries.sales_totals(start, end)
    cancelled = ledger_queries.cancelled_totals(start, end)
    cash = totals["by_payment_method"]["CASH"]
    account = totals["by_payment_method"]["ACCOUNT"]

    top_articles = [
        {
            "id": row["article_id"],
            "name": row["name"],
            "category": row["category"],
            "quantity_sold": decimal_str(row["quantity"]),
            "revenue": decimal_str(row["amount"]),
        }
        for row in ledger_queries.article_totals(start, end, order_by="quantity", limit=10)
    ]

    buckets: dict[int, dict] = {}
    for created_at, amount in ledger_queries.sale_timestamps(start, end):
        hour = to_local(created_at, tz).hour
        bucket = buckets.setdefault(hour, {"hour": hour, "transactions": 0, "revenue": ZERO_MONEY})
        bucket["transactions"] += 1
        bucket["revenue"] += amount
    hourly = [
        {"hour": b["hour"], "transactions": b["transactions"], "revenue": decimal_str(b["revenue"])}
        for b in sorted(buckets.values(), key=lambda b: (b["hour"] - start_hour) % 24)
    ]

    return {
        "date": day.isoformat(),
        "start_hour": start_hour,
        "window": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "summary": {
            "total_revenue": decimal_str(totals["amount"]),
            "total_transactions": totals["count"],
            "cash_revenue": decimal_str(cash["amount"]),
            "cash_transactions": cash["count"],
            "account_revenue": decimal_str(account["amount"]),
            "account_transactions": account["count"],
            "cancelled_revenue": decimal_str(cancelled["amount"]),
            "cancelled_transactions": cancelled["count"],
        },
        "top_articles": top_articles,
        "hourly_distribution": hourly,
    }


def get_sales_report(start_date, end_date, group_by: str = "day") -> dict:
    """Active sales grouped by local calendar day or month."""
    start_date = validation.iso_date(start_date, "start_date")
    end_date = validation.iso_date(end_date, "end_date")
    if end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")
    validation.choice(group_by, "group_by", GROUP_BY_PERIODS)

    start, end = date_range_window(start_date, end_date)
    tz = _tz()
    fmt = "%Y-%m-%d" if group_by == "day" else "%Y-%m"
    periods: "OrderedDict[str, dict]" = OrderedDict()
    for created_at, amount in ledger_queries.sale_timestamps(start, end):
        key = to_local(created_at, tz).strftime(fmt)
        row = periods.setdefault(key, {"period": key, "transactions": 0, "revenue": ZERO_MONEY})
        row["transactions"] += 1
        row["revenue"] += amount

    return {
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "group_by": group_by,
        "periods": [
            {"period": r["period"], "transactions": r["transactions"], "revenue": decimal_str(r["revenue"])}
            for r in periods.values()
        ],
        "categories": [
            {"category": r["category"], "amount": decimal_str(r["amount"])}
            for r in ledger_queries.category_totals(start, end)
        ],
    }


def compute_profit_loss(start_date: date, end_date: date) -> dict:
    """
    Profit/loss numbers as Decimals.

    Income: active POS sales in the window plus outgoing invoices paid in it.
    Top-ups are deposits, not income. Expenses: paid supplier invoices by
    document date.
    """
    start, end = date_range_window(start_date, end_date)
    sales = ledger_queries.sales_totals(start, end)
    invoices = ledger_queries.paid_invoice_income(start, end)
    expenses = ledger_queries.paid_purchase_expenses(start_date, end_date)

    income_total = to_money(sales["amount"] + invoices["amount"])
    expenses_total = to_money(expenses["amount"])
    return {
        "income_pos": sales["amount"],
        "income_cash": sales["by_payment_method"]["CASH"]["amount"],
        "income_account": sales["by_payment_method"]["ACCOUNT"]["amount"],
        "income_invoices": invoices["amount"],
        "income_total": income_total,
        "expenses_total": expenses_total,
        "profit": income_total - expenses_total,
        "income_by_category": ledger_queries.category_totals(start, end),
        "income_by_article": ledger_queries.article_totals(start, end, limit=50),
        "expenses_by_supplier": expenses["by_supplier"],
    }


def get_profit_loss(start_date, end_date) -> dict:
    start_date = validation.iso_date(start_date, "start_date")
    end_date = validation.iso_date(end_date, "end_date")
    if end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")

    pl = compute_profit_loss(start_date, end_date)
    return {
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "summary": {
            "total_income": decimal_str(pl["income_total"]),
            "total_expenses": decimal_str(pl["expenses_total"]),
            "profit": decimal_str(pl["profit"]),
        },
        "details": {
            "income_by_category": [
                {"category": r["category"], "amount": decimal_str(r["amount"])}
                for r in pl["income_by_category"]
            ],
            "income_by_article": [
                {"article": r["name"], "quantity": decimal_str(r["quantity"]), "amount": decimal_str(r["amount"])}
                for r in pl["income_by_article"]
            ],
            "expenses_by_supplier": [
                {"supplier": r["supplier"], "count": r["count"], "amount": decimal_str(r["amount"])}
                for r in pl["expenses_by_supplier"]
            ],
            "income_by_type": {
                "transactions": decimal_str(pl["income_pos"]),
                "cash": decimal_str(pl["income_cash"]),
                "account": decimal_str(pl["income_account"]),
                "invoices": decimal_str(pl["income_invoices"]),
            },
        },
    }
