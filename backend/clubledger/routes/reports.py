# Overview: Flask API routes for reporting; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import reporting_service
from ..services.errors import LedgerError
from .. import validation
from . import error_response, internal_error


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily-summary")
def daily_summary_route():
    """Query: date=YYYY-MM-DD (defaults to the current business day)."""
    try:
        day = validation.iso_date(request.args.get("date"), "date", required=False)
        return jsonify(reporting_service.get_daily_summary(day)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to build daily summary")


@reports_bp.get("/sales")
def sales_report_route():
    try:
        report = reporting_service.get_sales_report(
            request.args.get("start_date"),
            request.args.get("end_date"),
            request.args.get("group_by", "day"),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return error_response(e)


@reports_bp.get("/profit-loss")
def profit_loss_route():
    try:
        report = reporting_service.get_profit_loss(
            request.args.get("start_date"),
            request.args.get("end_date"),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to build profit/loss report")
