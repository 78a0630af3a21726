# Overview: Flask API routes for sales and cancellations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import cancellation_service, sales_service
from ..services.errors import LedgerError
from ..time_utils import parse_iso_date
from . import error_response, internal_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/transactions")


@sales_bp.post("/")
def create_sale_route():
    """
    Book a sale.

    Body: {"payment_method": "CASH"|"ACCOUNT", "customer_id": int?,
           "items": [{"article_id": int, "quantity": "1"}], "user_id": int?}
    """
    try:
        data = request.get_json() or {}
        transaction = sales_service.create_sale(
            data.get("payment_method"),
            data.get("customer_id"),
            data.get("items"),
            user_id=data.get("user_id"),
        )
        return jsonify({"transaction": transaction.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create sale")


@sales_bp.post("/<int:transaction_id>/cancel")
def cancel_transaction_route(transaction_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = cancellation_service.cancel_transaction(transaction_id, data.get("user_id"))
        return jsonify({
            "original": result["original"].to_dict(),
            "refund": result["refund"].to_dict(),
        }), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel transaction")


@sales_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        transaction = sales_service.get_transaction(transaction_id)
        data = transaction.to_dict()
        data["refunds"] = [refund.to_dict() for refund in transaction.refunds]
        if transaction.original_transaction is not None:
            data["original_transaction"] = transaction.original_transaction.to_dict()
        return jsonify({"transaction": data}), 200

    except LedgerError as e:
        return error_response(e)


@sales_bp.get("/")
def list_transactions_route():
    try:
        customer_id = request.args.get("customer_id", type=int)
        transactions = sales_service.list_transactions(
            start_date=parse_iso_date(request.args.get("start_date")),
            end_date=parse_iso_date(request.args.get("end_date")),
            customer_id=customer_id,
            payment_method=request.args.get("payment_method"),
        )
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200

    except LedgerError as e:
        return error_response(e)
    except ValueError:
        return jsonify({"error": "Dates must be ISO dates (YYYY-MM-DD)"}), 400
