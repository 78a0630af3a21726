from decimal import Decimal

import pytest

from clubledger.extensions import db
from clubledger.models import Article, StockMovement
from clubledger.services import catalog_service, document_service
from clubledger.services.errors import InvalidState, ValidationFailed
from clubledger.time_utils import utcnow


@pytest.fixture
def crate_water(db_session):
    """Water sold per bottle, bought in crates of 12."""
    return catalog_service.create_article(
        name="Water", price="0.80", initial_stock="4", purchase_unit="crate", units_per_purchase="12"
    )


def test_document_numbers_are_sequential_per_prefix(db_session):
    year = utcnow().year
    today = utcnow().date()

    first = document_service.create_purchase_document(type="INVOICE", document_date=today, supplier="A")
    second = document_service.create_purchase_document(type="INVOICE", document_date=today, supplier="B")
    note = document_service.create_purchase_document(type="DELIVERY_NOTE", document_date=today)

    assert first.document_number == f"RE-{year}-0001"
    assert second.document_number == f"RE-{year}-0002"
    assert note.document_number == f"LS-{year}-0001"


def test_delivery_items_book_stock_in_base_units(db_session, crate_water, cola):
    document = document_service.create_purchase_document(
        type="DELIVERY_NOTE",
        document_date=utcnow().date(),
        supplier="Beverage wholesale",
        items=[
            {"article_id": crate_water.id, "purchase_units": "2", "units": "3"},
            {"article_id": cola.id, "units": "6"},
            {"article_id": cola.id, "units": "0"},
        ],
    )

    assert db.session.get(Article, crate_water.id).stock == Decimal("31")
    assert db.session.get(Article, cola.id).stock == Decimal("16")
    assert [item.quantity for item in document.items] == [Decimal("27"), Decimal("6")]

    movement = (
        db.session.query(StockMovement)
        .filter_by(article_id=crate_water.id, type="DELIVERY")
        .one()
    )
    assert movement.quantity == Decimal("27")
    assert movement.reason == f"Receipt {document.document_number}"


def test_purchase_units_need_a_conversion(db_session, cola):
    with pytest.raises(ValidationFailed):
        document_service.create_purchase_document(
            type="DELIVERY_NOTE",
            document_date=utcnow().date(),
            items=[{"article_id": cola.id, "purchase_units": "1"}],
        )
    assert db.session.get(Article, cola.id).stock == Decimal("10")


def test_paying_a_purchase_document_twice_fails(db_session):
    document = document_service.create_purchase_document(
        type="INVOICE", document_date="2026-03-01", supplier="Brewery", total_amount="80.00"
    )

    paid = document_service.mark_purchase_document_paid(document.id, "TRANSFER")
    assert paid.paid is True
    assert paid.payment_method == "TRANSFER"

    with pytest.raises(InvalidState):
        document_service.mark_purchase_document_paid(document.id, "CASH")


def test_paid_documents_need_a_payment_method(db_session):
    with pytest.raises(ValidationFailed):
        document_service.create_purchase_document(
            type="INVOICE", document_date="2026-03-01", total_amount="10.00", paid=True
        )


def test_invoice_total_and_status_transitions(db_session):
    invoice = document_service.create_invoice(
        customer_name="Youth team",
        items=[
            {"description": "Drinks package", "quantity": "3", "price_per_unit": "12.50"},
            {"description": "Room hire", "quantity": "1", "price_per_unit": "40.00"},
        ],
    )
    assert invoice.invoice_number == f"{utcnow().year}-0001"
    assert invoice.total_amount == Decimal("77.50")
    assert invoice.status == "DRAFT"

    document_service.update_invoice_status(invoice.id, "SENT")
    paid = document_service.mark_invoice_paid(invoice.id)
    assert paid.status == "PAID"
    assert paid.paid_at is not None

    with pytest.raises(InvalidState):
        document_service.update_invoice_status(invoice.id, "CANCELLED")


def test_invoice_requires_items(db_session):
    with pytest.raises(ValidationFailed):
        document_service.create_invoice(customer_name="Nobody", items=[])


def test_non_object_items_are_rejected(db_session):
    with pytest.raises(ValidationFailed):
        document_service.create_purchase_document(
            type="DELIVERY_NOTE", document_date="2026-03-01", items=["Cola"]
        )
    with pytest.raises(ValidationFailed):
        document_service.create_invoice(customer_name="Youth team", items=[42])


def test_purchase_document_route_rejects_non_object_items(client, db_session):
    response = client.post(
        "/api/purchase-documents",
        json={"type": "DELIVERY_NOTE", "document_date": "2026-03-01", "items": ["Cola"]},
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "VALIDATION_FAILED"
