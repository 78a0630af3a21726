# Overview: Purchase documents (supplier side) and outgoing invoices; both feed profit/loss.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence, Invoice, InvoiceItem, PurchaseDocument, PurchaseDocumentItem
from ..models.catalog import MOVEMENT_DELIVERY
from ..models.documents import (
    INVOICE_CANCELLED,
    INVOICE_DRAFT,
    INVOICE_PAID,
    INVOICE_SENT,
    PURCHASE_DOCUMENT_TYPES,
    PURCHASE_INVOICE,
)
from ..money import ZERO_MONEY, ZERO_QUANTITY, to_money
from ..time_utils import business_tz, to_local, utcnow
from .. import validation
from . import audit_service
from .concurrency import lock_for_update, run_in_unit_of_work
from .errors import InvalidState, NotFound, ValidationFailed
from .stock_service import book_movement, load_article

PURCHASE_PAYMENT_METHODS = ("CASH", "TRANSFER")
INVOICE_STATUSES = (INVOICE_DRAFT, INVOICE_SENT, INVOICE_PAID, INVOICE_CANCELLED)

# Allowed invoice status transitions; PAID and CANCELLED are terminal.
_INVOICE_TRANSITIONS = {
    INVOICE_DRAFT: {INVOICE_SENT, INVOICE_PAID, INVOICE_CANCELLED},
    INVOICE_SENT: {INVOICE_PAID, INVOICE_CANCELLED},
    INVOICE_PAID: set(),
    INVOICE_CANCELLED: set(),
}


def _current_year() -> int:
    tz = business_tz(current_app.config.get("BUSINESS_TIMEZONE"))
    return to_local(utcnow(), tz).year


def next_document_number(prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for a prefix, e.g. "RE-2025-" -> "RE-2025-0001".

    Runs inside the caller's unit of work. The UPDATE takes the row lock, so
    concurrent allocations for the same prefix are serialized; a lost race
    on the first insert surfaces as IntegrityError and the unit is retried.
    """
    if not prefix:
        raise ValidationFailed("prefix is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.prefix == prefix)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(prefix=prefix)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(prefix=prefix, next_number=2))
        db.session.flush()
        number = 1
    return f"{prefix}{number:0{pad}d}"


def _purchase_prefix(document_type: str) -> str:
    code = "RE" if document_type == PURCHASE_INVOICE else "LS"
    return f"{code}-{_current_year()}-"


def create_purchase_document(
    *,
    type: str,
    document_date,
    supplier: str | None = None,
    description: str | None = None,
    total_amount=None,
    paid: bool = False,
    payment_method: str | None = None,
    due_date=None,
    items=None,
    user_id: int | None = None,
) -> PurchaseDocument:
    """
    Record a supplier document and book its goods receipt.

    items: [{"article_id", "purchase_units", "units"}]. Each item books a
    DELIVERY movement of purchase_units * article.units_per_purchase + units.
    Items that add up to nothing are skipped.
    """
    validation.choice(type, "type", PURCHASE_DOCUMENT_TYPES)
    document_date = validation.iso_date(document_date, "document_date")
    due_date = validation.iso_date(due_date, "due_date", required=False)
    total_amount = validation.money(total_amount, "total_amount", required=False)
    if paid:
        if payment_method is None:
            raise ValidationFailed("payment_method is required for paid documents")
        validation.choice(payment_method, "payment_method", PURCHASE_PAYMENT_METHODS)

    lines = []
    for index, item in enumerate(items or []):
        if not isinstance(item, dict):
            raise ValidationFailed(f"items[{index}] must be an object")
        article_id = validation.integer_id(item.get("article_id"), f"items[{index}].article_id")
        purchase_units = validation.quantity(
            item.get("purchase_units", 0), f"items[{index}].purchase_units", allow_negative=False
        )
        units = validation.quantity(item.get("units", 0), f"items[{index}].units", allow_negative=False)
        lines.append((article_id, purchase_units, units))

    def _op():
        number = next_document_number(_purchase_prefix(type))
        document = PurchaseDocument(
            type=type,
            document_number=number,
            supplier=supplier,
            document_date=document_date,
            description=description,
            total_amount=total_amount,
            paid=bool(paid),
            paid_at=utcnow() if paid else None,
            payment_method=payment_method if paid else None,
            due_date=due_date,
            user_id=user_id,
        )
        db.session.add(document)
        db.session.flush()

        booked = []
        for article_id, purchase_units, units in sorted(lines, key=lambda line: line[0]):
            article = load_article(article_id, lock=True)
            per_purchase = article.units_per_purchase or ZERO_QUANTITY
            if purchase_units and not article.units_per_purchase:
                raise ValidationFailed(
                    f"Article {article.name} has no purchase unit conversion",
                    details={"article_id": article.id},
                )
            quantity = purchase_units * per_purchase + units
            if quantity <= 0:
                continue
            movement = book_movement(
                article, quantity, f"Receipt {number}", MOVEMENT_DELIVERY, user_id=user_id
            )
            document.items.append(PurchaseDocumentItem(
                article_id=article.id,
                description=article.name,
                quantity=quantity,
                purchase_unit_quantity=purchase_units,
                base_unit_quantity=units,
                stock_movement_id=movement.id,
            ))
            booked.append({"article_id": article.id, "quantity": quantity})

        db.session.flush()
        audit_service.record(
            action="PURCHASE_DOCUMENT_CREATED",
            entity_type="PurchaseDocument",
            entity_id=document.id,
            user_id=user_id,
            changes={
                "document_number": number,
                "type": type,
                "total_amount": total_amount,
                "paid": bool(paid),
                "items": booked,
            },
        )
        return document

    return run_in_unit_of_work(_op)


def get_purchase_document(document_id: int) -> PurchaseDocument:
    document = db.session.get(PurchaseDocument, document_id)
    if document is None:
        raise NotFound(f"Purchase document {document_id} not found", details={"document_id": document_id})
    return document


def list_purchase_documents(start_date=None, end_date=None, type: str | None = None) -> list[PurchaseDocument]:
    query = db.session.query(PurchaseDocument)
    if type:
        validation.choice(type, "type", PURCHASE_DOCUMENT_TYPES)
        query = query.filter(PurchaseDocument.type == type)
    start_date = validation.iso_date(start_date, "start_date", required=False)
    end_date = validation.iso_date(end_date, "end_date", required=False)
    if start_date:
        query = query.filter(PurchaseDocument.document_date >= start_date)
    if end_date:
        query = query.filter(PurchaseDocument.document_date <= end_date)
    return query.order_by(PurchaseDocument.document_date.desc(), PurchaseDocument.id.desc()).all()


def mark_purchase_document_paid(
    document_id: int,
    payment_method: str,
    *,
    user_id: int | None = None,
) -> PurchaseDocument:
    validation.choice(payment_method, "payment_method", PURCHASE_PAYMENT_METHODS)

    def _op():
        document = lock_for_update(
            db.session.query(PurchaseDocument).filter_by(id=document_id)
        ).first()
        if document is None:
            raise NotFound(f"Purchase document {document_id} not found", details={"document_id": document_id})
        if document.paid:
            raise InvalidState(f"Purchase document {document.document_number} is already paid")
        document.paid = True
        document.paid_at = utcnow()
        document.payment_method = payment_method
        audit_service.record(
            action="PURCHASE_DOCUMENT_PAID",
            entity_type="PurchaseDocument",
            entity_id=document.id,
            user_id=user_id,
            changes={"paid": {"before": False, "after": True}, "payment_method": payment_method},
        )
        return document

    return run_in_unit_of_work(_op)


def create_invoice(
    *,
    customer_name: str,
    items,
    description: str | None = None,
    due_date=None,
    user_id: int | None = None,
) -> Invoice:
    """Outgoing invoice numbered <year>-0001; total = sum of quantity * price per unit."""
    if not customer_name or not customer_name.strip():
        raise ValidationFailed("customer_name is required")
    if not items:
        raise ValidationFailed("An invoice needs at least one item")
    due_date = validation.iso_date(due_date, "due_date", required=False)

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationFailed(f"items[{index}] must be an object")
        text = (item.get("description") or "").strip()
        if not text:
            raise ValidationFailed(f"items[{index}].description is required")
        quantity = validation.quantity(item.get("quantity"), f"items[{index}].quantity", positive=True)
        price = validation.money(item.get("price_per_unit"), f"items[{index}].price_per_unit")
        lines.append((text, quantity, price, to_money(quantity * price)))

    def _op():
        invoice = Invoice(
            invoice_number=next_document_number(f"{_current_year()}-"),
            customer_name=customer_name.strip(),
            description=description,
            total_amount=sum((line[3] for line in lines), ZERO_MONEY),
            status=INVOICE_DRAFT,
            due_date=due_date,
            user_id=user_id,
        )
        for text, quantity, price, total in lines:
            invoice.items.append(InvoiceItem(
                description=text,
                quantity=quantity,
                price_per_unit=price,
                total_price=total,
            ))
        db.session.add(invoice)
        db.session.flush()
        audit_service.record(
            action="INVOICE_CREATED",
            entity_type="Invoice",
            entity_id=invoice.id,
            user_id=user_id,
            changes={"invoice_number": invoice.invoice_number, "total_amount": invoice.total_amount},
        )
        return invoice

    return run_in_unit_of_work(_op)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def list_invoices(status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice)
    if status:
        validation.choice(status, "status", INVOICE_STATUSES)
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def update_invoice_status(invoice_id: int, status: str, *, user_id: int | None = None) -> Invoice:
    validation.choice(status, "status", INVOICE_STATUSES)

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        if status not in _INVOICE_TRANSITIONS[invoice.status]:
            raise InvalidState(
                f"Invoice {invoice.invoice_number} cannot go from {invoice.status} to {status}",
                details={"status": invoice.status},
            )
        before = invoice.status
        invoice.status = status
        if status == INVOICE_PAID:
            invoice.paid_at = utcnow()
        audit_service.record(
            action="INVOICE_STATUS_CHANGED",
            entity_type="Invoice",
            entity_id=invoice.id,
            user_id=user_id,
            changes={"status": {"before": before, "after": status}},
        )
        return invoice

    return run_in_unit_of_work(_op)


def mark_invoice_paid(invoice_id: int, *, user_id: int | None = None) -> Invoice:
    return update_invoice_status(invoice_id, INVOICE_PAID, user_id=user_id)
