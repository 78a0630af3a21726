from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z, utcnow
from .types import Money, Quantity

PURCHASE_DELIVERY_NOTE = "DELIVERY_NOTE"
PURCHASE_INVOICE = "INVOICE"
PURCHASE_DOCUMENT_TYPES = (PURCHASE_DELIVERY_NOTE, PURCHASE_INVOICE)

INVOICE_DRAFT = "DRAFT"
INVOICE_SENT = "SENT"
INVOICE_PAID = "PAID"
INVOICE_CANCELLED = "CANCELLED"


class PurchaseDocument(db.Model):
    """
    Incoming supplier document: delivery note or invoice.

    Paid INVOICE documents are the expense side of profit/loss.
    Items book DELIVERY stock movements when the document is created.
    """
    __tablename__ = "purchase_documents"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_purchase_documents_number"),
        db.Index("ix_purchase_documents_type_paid_date", "type", "paid", "document_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    document_number = db.Column(db.String(32), nullable=False)
    supplier = db.Column(db.String(255), nullable=True)
    document_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    total_amount = db.Column(Money, nullable=True)

    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship("PurchaseDocumentItem", back_populates="document", order_by="PurchaseDocumentItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "document_number": self.document_number,
            "supplier": self.supplier,
            "document_date": self.document_date.isoformat() if self.document_date else None,
            "description": self.description,
            "total_amount": decimal_str(self.total_amount),
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at),
            "payment_method": self.payment_method,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseDocumentItem(db.Model):
    __tablename__ = "purchase_document_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("purchase_documents.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    # Booked quantity in the article's base unit
    quantity = db.Column(Quantity, nullable=False)
    purchase_unit_quantity = db.Column(Quantity, nullable=False, default=0)
    base_unit_quantity = db.Column(Quantity, nullable=False, default=0)

    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    document = db.relationship("PurchaseDocument", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "article_id": self.article_id,
            "description": self.description,
            "quantity": decimal_str(self.quantity),
            "purchase_unit_quantity": decimal_str(self.purchase_unit_quantity),
            "base_unit_quantity": decimal_str(self.base_unit_quantity),
            "stock_movement_id": self.stock_movement_id,
        }


class Invoice(db.Model):
    """Outgoing invoice. PAID invoices count as extra income in profit/loss."""
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
        db.Index("ix_invoices_status_paid_at", "status", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    total_amount = db.Column(Money, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INVOICE_DRAFT)
    due_date = db.Column(db.Date, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    items = db.relationship("InvoiceItem", back_populates="invoice", order_by="InvoiceItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "description": self.description,
            "total_amount": decimal_str(self.total_amount),
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_at": to_utc_z(self.paid_at),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(Quantity, nullable=False)
    price_per_unit = db.Column(Money, nullable=False)
    total_price = db.Column(Money, nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "quantity": decimal_str(self.quantity),
            "price_per_unit": decimal_str(self.price_per_unit),
            "total_price": decimal_str(self.total_price),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-prefix document number sequences.

    Prevents two concurrent documents from receiving the same number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", name="uq_document_sequences_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
