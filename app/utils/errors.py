"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Activity not found")
    return api_error(E.VALIDATION_REQUIRED, "name is required")
    return api_error(E.SCHEDULE_CYCLE, "would create a cycle", details={...})

Blueprints that call the service layer attach the shared exception
handlers once with ``register_error_handlers(bp)``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConflictError,
    CyclicDependencyError,
    NotFoundError,
    ReferencedItemError,
    StaleRecordError,
    ValidationError,
)
from app.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_       prefix for standard application errors
     • SCHEDULE_  prefix for dependency-chain errors
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_STALE = "ERR_CONFLICT_STALE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"

    # Dependency chain
    SCHEDULE_CYCLE = "SCHEDULE_CYCLE"
    SCHEDULE_REFERENCED = "SCHEDULE_REFERENCED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_STALE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.SCHEDULE_CYCLE: 422,
    E.SCHEDULE_REFERENCED: 409,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offending fields, dependent item IDs, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp: Blueprint) -> None:
    """Map service-layer exceptions to the error envelope for *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(CyclicDependencyError)
    def _handle_cycle(error: CyclicDependencyError):
        return api_error(E.SCHEDULE_CYCLE, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @bp.errorhandler(ReferencedItemError)
    def _handle_referenced(error: ReferencedItemError):
        return api_error(
            E.SCHEDULE_REFERENCED, str(error),
            details={"item_id": error.item_id, "dependent_ids": error.dependent_ids},
        )

    @bp.errorhandler(StaleRecordError)
    def _handle_stale(error: StaleRecordError):
        return api_error(
            E.CONFLICT_STALE, str(error),
            details={"resource": error.resource, "id": error.resource_id},
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_STATE, str(error))

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")
