"""
Cancellation engine: reverse a committed sale exactly once.

- The cancelled flag is checked and flipped inside the same unit of work
  that writes the refund, under the original transaction's row lock. Two
  concurrent cancels cannot both succeed; the loser sees InvalidState.
- The refund is the exact negation of the original rows. Nothing is
  re-priced from the live catalog.
- Stock comes back through CORRECTION movements, which only increase
  stock and therefore never fail the non-negative policy.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Transaction, TransactionItem
from ..models.catalog import MOVEMENT_CORRECTION
from ..models.sales import PAYMENT_ACCOUNT, TRANSACTION_REFUND, TRANSACTION_SALE
from ..time_utils import to_utc_z, utcnow
from . import audit_service
from .concurrency import lock_for_update, publish_after_commit, run_in_unit_of_work
from .customer_service import credit, load_customer
from .errors import InvalidState, NotFound
from .stock_service import book_movement, load_article

TRANSACTION_CANCELLED = "transaction.cancelled"


def cancel_transaction(transaction_id: int, user_id: int | None = None) -> dict:
    """Returns {"original": Transaction, "refund": Transaction}."""
    def _op():
        original = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if original is None:
            raise NotFound(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
        if original.type != TRANSACTION_SALE:
            raise InvalidState("Only sales can be cancelled", details={"transaction_id": transaction_id})
        if original.cancelled:
            raise InvalidState(
                f"Transaction {transaction_id} is already cancelled",
                details={"transaction_id": transaction_id, "cancelled_at": to_utc_z(original.cancelled_at)},
            )

        now = utcnow()
        original.cancelled = True
        original.cancelled_at = now
        original.cancelled_by = user_id

        refund = Transaction(
            type=TRANSACTION_REFUND,
            payment_method=original.payment_method,
            total_amount=-original.total_amount,
            customer_id=original.customer_id,
            user_id=user_id,
            cancelled=False,
            original_transaction_id=original.id,
            created_at=now,
        )
        db.session.add(refund)

        for item in sorted(original.items, key=lambda i: i.article_id):
            article = load_article(item.article_id, lock=True)
            book_movement(article, item.quantity, "Cancellation", MOVEMENT_CORRECTION, user_id=user_id)

        for item in original.items:
            refund.items.append(TransactionItem(
                article_id=item.article_id,
                quantity=-item.quantity,
                price_per_unit=item.price_per_unit,
                total_price=-item.total_price,
            ))

        customer = None
        if original.customer_id is not None:
            customer = load_customer(original.customer_id, lock=True)
            if original.payment_method == PAYMENT_ACCOUNT:
                credit(customer, original.total_amount)

        db.session.flush()

        audit_service.record(
            action="TRANSACTION_CANCELLED",
            entity_type="Transaction",
            entity_id=original.id,
            user_id=user_id,
            changes={
                "cancelled": {"before": False, "after": True},
                "refund_id": refund.id,
                "total_amount": original.total_amount,
            },
        )
        publish_after_commit(TRANSACTION_CANCELLED, {
            "transaction_id": original.id,
            "refund_id": refund.id,
            "customer_id": original.customer_id,
            "customer_name": customer.name if customer else None,
            "amount": str(refund.total_amount),
            "timestamp": to_utc_z(now),
        })
        return {"original": original, "refund": refund}

    return run_in_unit_of_work(_op)
