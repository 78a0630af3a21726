# Overview: Flask API routes for fiscal years and year-end closing.

from flask import Blueprint, jsonify, request

from ..services import audit_service, fiscal_service
from ..services.errors import LedgerError
from . import error_response, internal_error


accounting_bp = Blueprint("accounting", __name__, url_prefix="/api/accounting")


@accounting_bp.get("/fiscal-years")
def list_fiscal_years_route():
    years = fiscal_service.list_fiscal_years()
    return jsonify({"fiscal_years": [fy.to_dict() for fy in years]}), 200


@accounting_bp.post("/fiscal-years")
def create_fiscal_year_route():
    try:
        data = request.get_json() or {}
        fiscal_year = fiscal_service.create_fiscal_year(
            data.get("name"),
            data.get("start_date"),
            data.get("end_date"),
            user_id=data.get("user_id"),
        )
        return jsonify({"fiscal_year": fiscal_year.to_dict()}), 201
    except LedgerError as e:
        return error_response(e)


@accounting_bp.post("/fiscal-years/<int:fiscal_year_id>/close")
def close_fiscal_year_route(fiscal_year_id: int):
    """
    Body: {"cash_on_hand": "120.00",
           "bank_accounts": [{"name": "Checking", "balance": "900.00"}],
           "physical_inventory": [{"article_id": 1, "physical_stock": "8"}],
           "user_id": int?}
    """
    try:
        data = request.get_json() or {}
        report = fiscal_service.close_fiscal_year(
            fiscal_year_id,
            data.get("cash_on_hand", "0"),
            data.get("bank_accounts"),
            data.get("physical_inventory"),
            user_id=data.get("user_id"),
        )
        return jsonify({"report": report.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to close fiscal year")


@accounting_bp.get("/fiscal-years/<int:fiscal_year_id>/report")
def year_end_report_route(fiscal_year_id: int):
    try:
        report = fiscal_service.get_year_end_report(fiscal_year_id)
        return jsonify({"report": report.to_dict(), "fiscal_year": report.fiscal_year.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@accounting_bp.get("/fiscal-years/<int:fiscal_year_id>/preview")
def fiscal_year_preview_route(fiscal_year_id: int):
    try:
        return jsonify(fiscal_service.get_fiscal_year_preview(fiscal_year_id)), 200
    except LedgerError as e:
        return error_response(e)


@accounting_bp.get("/audit")
def audit_log_route():
    entries = audit_service.list_entries(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        action=request.args.get("action"),
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"entries": [entry.to_dict() for entry in entries]}), 200
