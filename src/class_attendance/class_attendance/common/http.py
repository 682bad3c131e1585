"""JSON helpers shared by the controllers."""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request, session
from werkzeug.exceptions import HTTPException

from ..access.model import Principal
from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DomainError,
    FileTooLargeError,
    InvalidTransitionError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first.
_STATUS_BY_ERROR = (
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (UnsupportedFileTypeError, 415),
    (FileTooLargeError, 413),
    (ValidationError, 400),
    (InvalidTransitionError, 409),
    (ConflictError, 409),
)


def status_for(exc: DomainError) -> int:
    for kind, status in _STATUS_BY_ERROR:
        if isinstance(exc, kind):
            return status
    return 400


def current_principal() -> Optional[Principal]:
    """Principal placed in the Flask session by the external login flow."""

    user_id = session.get("user_id")
    role = session.get("role")
    if user_id is None or role is None:
        return None
    try:
        return Principal(user_id=int(user_id), role=Role(str(role).upper()))
    except (TypeError, ValueError):
        return None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def ok(data=None, status: int = 200, **extra):
    payload = {"success": True, "data": data}
    payload.update(extra)
    return jsonify(payload), status


def error(code: str, message: str, status: int):
    return jsonify({"success": False, "error": code, "message": message}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        status = status_for(e)
        logger.info("%s %s -> %s %s: %s", request.method, request.path, status, e.code, e)
        return error(e.code, str(e), status)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        if e.code == 413:
            return error(FileTooLargeError.code, "Upload is too large", 413)
        return error((e.name or "ERROR").upper().replace(" ", "_"), e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error("INTERNAL_ERROR", "Internal server error", 500)


def int_field(body: dict, name: str) -> int:
    try:
        return int(body.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
