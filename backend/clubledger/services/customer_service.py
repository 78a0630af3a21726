# Overview: Customer accounts; balance writes happen only in a unit of work.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import AccountTopUp, Customer
from ..money import ZERO_MONEY, to_money
from ..time_utils import utcnow
from .. import validation
from . import audit_service
from .concurrency import lock_for_update, run_in_unit_of_work
from .errors import InsufficientBalance, InvalidState, NotFound, ValidationFailed

TOP_UP_CASH = "CASH"
TOP_UP_TRANSFER = "TRANSFER"
TOP_UP_METHODS = (TOP_UP_CASH, TOP_UP_TRANSFER)


def load_customer(customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def overdraft_limit() -> Decimal:
    return to_money(current_app.config.get("ACCOUNT_OVERDRAFT_LIMIT", ZERO_MONEY))


def debit(customer: Customer, amount: Decimal) -> None:
    """Take amount off a locked customer's balance or raise InsufficientBalance."""
    available = customer.balance + overdraft_limit()
    if available < amount:
        raise InsufficientBalance(customer.id, available=available, required=amount)
    customer.balance = customer.balance - amount


def credit(customer: Customer, amount: Decimal) -> None:
    customer.balance = customer.balance + amount


def create_customer(name: str, nickname: str | None = None, *, user_id: int | None = None) -> Customer:
    if not name or not name.strip():
        raise ValidationFailed("name is required")
    name = name.strip()

    def _op():
        existing = db.session.query(Customer.id).filter(Customer.name == name).first()
        if existing:
            raise InvalidState(f"A customer named {name} already exists", details={"name": name})
        customer = Customer(
            name=name,
            nickname=nickname,
            balance=ZERO_MONEY,
            active=True,
            last_activity=utcnow(),
        )
        db.session.add(customer)
        db.session.flush()
        audit_service.record(
            action="CUSTOMER_CREATED",
            entity_type="Customer",
            entity_id=customer.id,
            user_id=user_id,
            changes={"name": name},
        )
        return customer

    return run_in_unit_of_work(_op)


def top_up_account(
    customer_id: int,
    amount,
    method: str = TOP_UP_CASH,
    reference: str | None = None,
    *,
    user_id: int | None = None,
) -> tuple[AccountTopUp, Customer]:
    """Record a deposit and credit the balance in one unit of work."""
    amount = validation.money(amount, "amount")
    if amount <= 0:
        raise ValidationFailed("amount must be greater than 0")
    validation.choice(method, "method", TOP_UP_METHODS)

    def _op():
        customer = load_customer(customer_id, lock=True)
        before = customer.balance
        top_up = AccountTopUp(
            customer_id=customer.id,
            amount=amount,
            method=method,
            reference=reference,
            user_id=user_id,
        )
        db.session.add(top_up)
        credit(customer, amount)
        customer.last_activity = utcnow()
        db.session.flush()
        audit_service.record(
            action="ACCOUNT_TOP_UP",
            entity_type="Customer",
            entity_id=customer.id,
            user_id=user_id,
            changes={
                "balance": {"before": before, "after": customer.balance},
                "top_up_id": top_up.id,
                "method": method,
            },
        )
        return top_up, customer

    return run_in_unit_of_work(_op)


def get_customer(customer_id: int) -> Customer:
    return load_customer(customer_id)


def list_customers(search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            func.lower(Customer.name).like(pattern) | func.lower(func.coalesce(Customer.nickname, "")).like(pattern)
        )
    return query.order_by(Customer.name.asc()).all()

