# Overview: Flask API routes for articles and the stock ledger.

from flask import Blueprint, jsonify, request

from ..models.catalog import MOVEMENT_CORRECTION
from ..services import catalog_service, stock_service
from ..services.errors import LedgerError
from . import error_response, internal_error


articles_bp = Blueprint("articles", __name__, url_prefix="/api/articles")


@articles_bp.get("/")
def list_articles_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    articles = catalog_service.list_articles(include_inactive=include_inactive)
    return jsonify({"articles": [a.to_dict() for a in articles]}), 200


@articles_bp.get("/low-stock")
def low_stock_route():
    return jsonify({"articles": [a.to_dict() for a in catalog_service.list_low_stock()]}), 200


@articles_bp.post("/")
def create_article_route():
    try:
        data = request.get_json() or {}
        article = catalog_service.create_article(
            name=data.get("name"),
            price=data.get("price"),
            initial_stock=data.get("initial_stock", 0),
            min_stock=data.get("min_stock", 0),
            unit=data.get("unit", "piece"),
            category=data.get("category"),
            purchase_unit=data.get("purchase_unit"),
            units_per_purchase=data.get("units_per_purchase"),
            counts_for_highscore=data.get("counts_for_highscore", True),
            user_id=data.get("user_id"),
        )
        return jsonify({"article": article.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create article")


@articles_bp.get("/<int:article_id>")
def get_article_route(article_id: int):
    try:
        return jsonify({"article": catalog_service.get_article(article_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@articles_bp.patch("/<int:article_id>")
def update_article_route(article_id: int):
    try:
        data = dict(request.get_json() or {})
        user_id = data.pop("user_id", None)
        article = catalog_service.update_article(article_id, user_id=user_id, **data)
        return jsonify({"article": article.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update article")


@articles_bp.post("/<int:article_id>/active")
def set_active_route(article_id: int):
    try:
        data = request.get_json() or {}
        article = catalog_service.set_article_active(
            article_id, bool(data.get("active", True)), user_id=data.get("user_id")
        )
        return jsonify({"article": article.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)


@articles_bp.post("/<int:article_id>/stock")
def adjust_stock_route(article_id: int):
    """Body: {"delta": "-2", "reason": "...", "type": "CORRECTION", "user_id": int?}"""
    try:
        data = request.get_json() or {}
        article = stock_service.adjust_stock(
            article_id,
            data.get("delta"),
            data.get("reason"),
            data.get("type", MOVEMENT_CORRECTION),
            user_id=data.get("user_id"),
        )
        return jsonify({"article": article.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to adjust stock")


@articles_bp.post("/<int:article_id>/delivery")
def delivery_route(article_id: int):
    try:
        data = request.get_json() or {}
        article = stock_service.process_delivery(
            article_id,
            data.get("quantity"),
            data.get("reason") or "Delivery",
            user_id=data.get("user_id"),
        )
        return jsonify({"article": article.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)


@articles_bp.post("/<int:article_id>/inventory")
def inventory_count_route(article_id: int):
    try:
        data = request.get_json() or {}
        article = stock_service.process_inventory_count(
            article_id,
            data.get("actual_stock"),
            data.get("reason") or "Inventory count",
            user_id=data.get("user_id"),
        )
        return jsonify({"article": article.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)


@articles_bp.get("/<int:article_id>/movements")
def movements_route(article_id: int):
    try:
        limit = request.args.get("limit", default=50, type=int)
        movements = stock_service.list_movements(article_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except LedgerError as e:
        return error_response(e)
