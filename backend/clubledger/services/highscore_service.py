"""
Highscore leaderboards, recomputed from committed sales on every call.

Windows (business timezone):
- DAILY: rolling day starting at HIGHSCORE_DAILY_RESET_HOUR. Before the
  reset hour, "today" is still the window that began yesterday.
- YEARLY: calendar year starting January 1st, 00:00.

Scores: AMOUNT = sum of item totals, COUNT = sum of item quantities, over
non-cancelled sales with a customer, counting only articles flagged
counts_for_highscore (and active, unless HIGHSCORE_COUNT_INACTIVE_ARTICLES).
"""
from __future__ import annotations

from datetime import datetime, timedelta

from flask import Flask, current_app
from sqlalchemy import func

from ..extensions import db, notifications
from ..models import Article, Transaction, TransactionItem
from ..models.sales import TRANSACTION_SALE
from ..time_utils import business_tz, local_to_utc, start_of_local_day, to_local, to_utc_z, utcnow
from .. import validation
from . import audit_service, ledger_queries
from .cancellation_service import TRANSACTION_CANCELLED
from .concurrency import publish_after_commit, run_in_unit_of_work
from .customer_service import load_customer
from .errors import ValidationFailed
from .sales_service import SALE_COMMITTED

PERIOD_DAILY = "DAILY"
PERIOD_YEARLY = "YEARLY"
PERIOD_TYPES = (PERIOD_DAILY, PERIOD_YEARLY)

HIGHSCORE_UPDATED = "highscore.updated"
HIGHSCORE_RESET = "highscore.reset"

# (id, name, description, predicate(total_transactions, total_spent, favourite_count))
ACHIEVEMENTS = (
    ("century", "Century customer", "100 purchases", lambda tx, spent, fav: tx >= 100),
    ("regular", "Regular", "10 purchases", lambda tx, spent, fav: tx >= 10),
    ("big_spender", "Big spender", "Spent €500", lambda tx, spent, fav: spent >= 500),
    ("loyal_fan", "Loyal fan", "Bought the favourite article 50 times", lambda tx, spent, fav: fav >= 50),
)


def period_start(period_type: str, now: datetime | None = None) -> datetime:
    """UTC-naive start of the window containing `now` (UTC-naive)."""
    validation.choice(period_type, "period_type", PERIOD_TYPES)
    now = now or utcnow()
    tz = business_tz(current_app.config.get("BUSINESS_TIMEZONE"))
    local_now = to_local(now, tz)

    if period_type == PERIOD_YEARLY:
        return local_to_utc(datetime(local_now.year, 1, 1), tz)

    reset_hour = int(current_app.config.get("HIGHSCORE_DAILY_RESET_HOUR", 12))
    start = start_of_local_day(local_now.date(), reset_hour, tz)
    if now < start:
        start = start_of_local_day(local_now.date() - timedelta(days=1), reset_hour, tz)
    return start


def _scores(period_type: str, score_mode: str, now: datetime | None) -> tuple[datetime, list[dict]]:
    validation.choice(score_mode, "score_mode", ledger_queries.SCORE_MODES)
    start = period_start(period_type, now)
    rows = ledger_queries.customer_scores(
        start,
        None,
        score_mode,
        include_inactive_articles=bool(current_app.config.get("HIGHSCORE_COUNT_INACTIVE_ARTICLES", False)),
    )
    return start, rows


def get_highscore(period_type: str = PERIOD_DAILY, score_mode: str = "AMOUNT", now: datetime | None = None) -> dict:
    start, rows = _scores(period_type, score_mode, now)
    limit = int(current_app.config.get("HIGHSCORE_DISPLAY_COUNT", 10))
    entries = []
    for index, row in enumerate(rows[:limit]):
        entry = dict(row)
        entry["rank"] = index + 1
        entries.append(entry)
    return {
        "type": period_type,
        "mode": score_mode,
        "start_date": start,
        "entries": entries,
        "last_updated": utcnow(),
    }


def get_customer_position(
    customer_id: int,
    period_type: str = PERIOD_DAILY,
    score_mode: str = "AMOUNT",
    now: datetime | None = None,
) -> dict | None:
    """Rank and score of one customer. Equal scores share a rank. None when unranked."""
    load_customer(customer_id)
    _, rows = _scores(period_type, score_mode, now)
    for row in rows:
        if row["customer_id"] == customer_id:
            rank = 1 + sum(1 for other in rows if other["score"] > row["score"])
            return {
                "customer_id": row["customer_id"],
                "customer_name": row["customer_name"],
                "customer_nickname": row["customer_nickname"],
                "score": row["score"],
                "rank": rank,
            }
    return None


def get_customer_achievements(customer_id: int) -> list[dict]:
    load_customer(customer_id)
    active = db.session.query(Transaction).filter(
        Transaction.customer_id == customer_id,
        Transaction.type == TRANSACTION_SALE,
        Transaction.cancelled.is_(False),
    )
    total_transactions = active.count()
    total_spent = active.with_entities(func.sum(Transaction.total_amount)).scalar() or 0
    favourite = (
        db.session.query(Article.name, func.count(TransactionItem.id).label("times"))
        .join(TransactionItem, TransactionItem.article_id == Article.id)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(
            Transaction.customer_id == customer_id,
            Transaction.type == TRANSACTION_SALE,
            Transaction.cancelled.is_(False),
        )
        .group_by(Article.id, Article.name)
        .order_by(func.count(TransactionItem.id).desc())
        .first()
    )
    favourite_count = favourite.times if favourite else 0

    achieved = []
    for key, name, description, predicate in ACHIEVEMENTS:
        if predicate(total_transactions, total_spent, favourite_count):
            if key == "loyal_fan":
                name = f"{favourite.name} fan"
            achieved.append({"id": key, "name": name, "description": description})
    return achieved


def serialize_highscore(board: dict) -> dict:
    return {
        "type": board["type"],
        "mode": board["mode"],
        "start_date": to_utc_z(board["start_date"]),
        "last_updated": to_utc_z(board["last_updated"]),
        "entries": [_serialize_row(entry) for entry in board["entries"]],
    }


def _serialize_row(row: dict | None) -> dict | None:
    if row is None:
        return None
    return {k: (str(v) if k in ("score", "total_amount", "total_items") else v) for k, v in row.items()}


def _all_boards() -> dict:
    return {
        "daily": {
            "amount": serialize_highscore(get_highscore(PERIOD_DAILY, "AMOUNT")),
            "count": serialize_highscore(get_highscore(PERIOD_DAILY, "COUNT")),
        },
        "yearly": {
            "amount": serialize_highscore(get_highscore(PERIOD_YEARLY, "AMOUNT")),
            "count": serialize_highscore(get_highscore(PERIOD_YEARLY, "COUNT")),
        },
    }


def _touches_highscore(transaction_id: int) -> bool:
    hit = (
        db.session.query(TransactionItem.id)
        .join(Article, Article.id == TransactionItem.article_id)
        .filter(TransactionItem.transaction_id == transaction_id, Article.counts_for_highscore.is_(True))
        .first()
    )
    return hit is not None


def refresh_after_commit(event_type: str, payload: dict) -> dict | None:
    """
    Recompute the leaderboards after a sale or cancellation and publish them.

    Runs as a notification handler, after the commit. Errors propagate to the
    hub, which logs them; the sale is never affected.
    """
    customer_id = payload.get("customer_id")
    transaction_id = payload.get("transaction_id")
    if customer_id is None or transaction_id is None:
        return None
    if not _touches_highscore(transaction_id):
        return None

    update = _all_boards()
    update["customer_position"] = {
        "customer_id": customer_id,
        "daily": {
            "amount": _serialize_row(get_customer_position(customer_id, PERIOD_DAILY, "AMOUNT")),
            "count": _serialize_row(get_customer_position(customer_id, PERIOD_DAILY, "COUNT")),
        },
    }
    update["trigger"] = event_type
    notifications.publish(HIGHSCORE_UPDATED, update)
    return update


def register_highscore_refresh(app: Flask) -> None:
    notifications.subscribe(SALE_COMMITTED, refresh_after_commit, app=app)
    notifications.subscribe(TRANSACTION_CANCELLED, refresh_after_commit, app=app)


def archive_yearly_highscore(user_id: int | None = None, period_type: str = PERIOD_YEARLY) -> dict:
    """
    Write the current yearly leaderboard to the audit trail and announce a reset.

    Scores are never deleted; the yearly window simply rolls over on January 1st.
    """
    if period_type != PERIOD_YEARLY:
        raise ValidationFailed("Only the yearly highscore can be reset manually")

    def _op():
        board = serialize_highscore(get_highscore(PERIOD_YEARLY, "AMOUNT"))
        audit_service.record(
            action="RESET_YEARLY_HIGHSCORE",
            entity_type="Highscore",
            entity_id="yearly",
            user_id=user_id,
            changes={"archived_highscore": board},
        )
        publish_after_commit(HIGHSCORE_RESET, {"reset": True, "reset_type": PERIOD_YEARLY, "archived": board})
        return board

    return run_in_unit_of_work(_op)
