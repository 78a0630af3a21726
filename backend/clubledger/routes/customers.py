# Overview: Flask API routes for customer accounts.

from flask import Blueprint, jsonify, request

from ..services import customer_service, highscore_service
from ..services.errors import LedgerError
from . import error_response, internal_error


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/")
def list_customers_route():
    customers = customer_service.list_customers(request.args.get("search"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("/")
def create_customer_route():
    try:
        data = request.get_json() or {}
        customer = customer_service.create_customer(
            data.get("name"), data.get("nickname"), user_id=data.get("user_id")
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create customer")


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(customer_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@customers_bp.post("/<int:customer_id>/top-up")
def top_up_route(customer_id: int):
    """Body: {"amount": "20.00", "method": "CASH"|"TRANSFER", "reference": str?, "user_id": int?}"""
    try:
        data = request.get_json() or {}
        top_up, customer = customer_service.top_up_account(
            customer_id,
            data.get("amount"),
            data.get("method", customer_service.TOP_UP_CASH),
            data.get("reference"),
            user_id=data.get("user_id"),
        )
        return jsonify({"top_up": top_up.to_dict(), "customer": customer.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to top up account")


@customers_bp.get("/<int:customer_id>/achievements")
def achievements_route(customer_id: int):
    try:
        return jsonify({"achievements": highscore_service.get_customer_achievements(customer_id)}), 200
    except LedgerError as e:
        return error_response(e)
