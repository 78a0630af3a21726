from flask import current_app, jsonify

from ..services.errors import (
    ConcurrencyConflict,
    InsufficientBalance,
    InsufficientStock,
    InvalidState,
    LedgerError,
    NotFound,
    PersistenceFailure,
    ValidationFailed,
)

_STATUS = (
    (NotFound, 404),
    (InvalidState, 409),
    (ValidationFailed, 400),
    (InsufficientStock, 422),
    (InsufficientBalance, 422),
    (ConcurrencyConflict, 503),
    (PersistenceFailure, 500),
)


def status_for(exc: LedgerError) -> int:
    for cls, status in _STATUS:
        if isinstance(exc, cls):
            return status
    return 400


def error_response(exc: LedgerError):
    """JSON body for a service error. Conflicts and store failures stay generic."""
    status = status_for(exc)
    if isinstance(exc, ConcurrencyConflict):
        return jsonify({"error": "Please retry", "code": exc.code}), status
    if isinstance(exc, PersistenceFailure):
        current_app.logger.error("Persistence failure: %s", exc.__cause__ or exc)
        return jsonify({"error": "Internal server error", "code": exc.code}), status
    return jsonify({"error": exc.message, "code": exc.code, "details": exc.details}), status


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
