# Overview: Flask API routes for the highscore leaderboards.

from flask import Blueprint, jsonify, request

from ..services import highscore_service
from ..services.errors import LedgerError
from . import error_response


highscore_bp = Blueprint("highscore", __name__, url_prefix="/api/highscore")


@highscore_bp.get("/")
def get_highscore_route():
    try:
        board = highscore_service.get_highscore(
            request.args.get("type", highscore_service.PERIOD_DAILY),
            request.args.get("mode", "AMOUNT"),
        )
        return jsonify(highscore_service.serialize_highscore(board)), 200
    except LedgerError as e:
        return error_response(e)


@highscore_bp.get("/customers/<int:customer_id>")
def customer_position_route(customer_id: int):
    try:
        position = highscore_service.get_customer_position(
            customer_id,
            request.args.get("type", highscore_service.PERIOD_DAILY),
            request.args.get("mode", "AMOUNT"),
        )
        if position is not None:
            position = dict(position, score=str(position["score"]))
        return jsonify({"position": position}), 200
    except LedgerError as e:
        return error_response(e)


@highscore_bp.post("/reset")
def reset_highscore_route():
    try:
        data = request.get_json(silent=True) or {}
        archived = highscore_service.archive_yearly_highscore(
            data.get("user_id"), data.get("type", highscore_service.PERIOD_YEARLY)
        )
        return jsonify({"archived": archived}), 200
    except LedgerError as e:
        return error_response(e)
