# Overview: Flask API routes for purchase documents and outgoing invoices.

from flask import Blueprint, jsonify, request

from ..services import document_service
from ..services.errors import LedgerError
from . import error_response, internal_error


documents_bp = Blueprint("documents", __name__, url_prefix="/api")


@documents_bp.get("/purchase-documents")
def list_purchase_documents_route():
    try:
        documents = document_service.list_purchase_documents(
            request.args.get("start_date"),
            request.args.get("end_date"),
            request.args.get("type"),
        )
        return jsonify({"documents": [d.to_dict() for d in documents]}), 200
    except LedgerError as e:
        return error_response(e)


@documents_bp.post("/purchase-documents")
def create_purchase_document_route():
    """Items: [{"article_id": int, "purchase_units": "2", "units": "3"}]"""
    try:
        data = request.get_json() or {}
        document = document_service.create_purchase_document(
            type=data.get("type"),
            document_date=data.get("document_date"),
            supplier=data.get("supplier"),
            description=data.get("description"),
            total_amount=data.get("total_amount"),
            paid=bool(data.get("paid", False)),
            payment_method=data.get("payment_method"),
            due_date=data.get("due_date"),
            items=data.get("items"),
            user_id=data.get("user_id"),
        )
        return jsonify({"document": document.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create purchase document")


@documents_bp.get("/purchase-documents/<int:document_id>")
def get_purchase_document_route(document_id: int):
    try:
        return jsonify({"document": document_service.get_purchase_document(document_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@documents_bp.post("/purchase-documents/<int:document_id>/pay")
def pay_purchase_document_route(document_id: int):
    try:
        data = request.get_json() or {}
        document = document_service.mark_purchase_document_paid(
            document_id, data.get("payment_method"), user_id=data.get("user_id")
        )
        return jsonify({"document": document.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@documents_bp.get("/invoices")
def list_invoices_route():
    try:
        invoices = document_service.list_invoices(request.args.get("status"))
        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200
    except LedgerError as e:
        return error_response(e)


@documents_bp.post("/invoices")
def create_invoice_route():
    try:
        data = request.get_json() or {}
        invoice = document_service.create_invoice(
            customer_name=data.get("customer_name"),
            items=data.get("items"),
            description=data.get("description"),
            due_date=data.get("due_date"),
            user_id=data.get("user_id"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create invoice")


@documents_bp.get("/invoices/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        return jsonify({"invoice": document_service.get_invoice(invoice_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@documents_bp.post("/invoices/<int:invoice_id>/status")
def invoice_status_route(invoice_id: int):
    try:
        data = request.get_json() or {}
        invoice = document_service.update_invoice_status(
            invoice_id, data.get("status"), user_id=data.get("user_id")
        )
        return jsonify({"invoice": invoice.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
