"""Map exceptions to the JSON error envelope."""

from __future__ import annotations

import logging

from flask import Flask, request
from marshmallow import ValidationError as SchemaError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from bingo_engine.errors import AppError, ConflictError, ValidationError
from bingo_engine.utils.responses import fail


logger = logging.getLogger(__name__)


def _reply(error: AppError):
    return fail(error.code, error.message, error.status_code, error.details)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def on_app_error(exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.path, exc.message, exc.code)
        return _reply(exc)

    @app.errorhandler(SchemaError)
    def on_schema_error(exc: SchemaError):
        return _reply(ValidationError(details=exc.messages))

    @app.errorhandler(IntegrityError)
    def on_integrity_error(exc: IntegrityError):
        # Two writers raced on a unique key: same draw position or same ledger row.
        logger.info("Write conflict on %s %s", request.method, request.path, exc_info=exc)
        return _reply(ConflictError(message="Concurrent update, retry", details=str(exc.orig or exc)))

    @app.errorhandler(HTTPException)
    def on_http_error(exc: HTTPException):
        status = exc.code or 500
        if status == 404:
            return fail("not_found", "Not found", 404)
        if status == 405:
            return fail("method_not_allowed", f"{request.method} not allowed on {request.path}", 405)
        return fail("http_error", exc.description or exc.name, status, details={"name": exc.name})

    @app.errorhandler(Exception)
    def on_unexpected(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return fail("internal_error", "Internal server error", 500)
