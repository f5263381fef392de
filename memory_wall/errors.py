from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from memory_wall.extensions import db


def register_error_handlers(app: Flask) -> None:
    """Render every error as JSON ``{"error": ..., "message": ...}``."""

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        body = {"error": exc.name}
        if exc.description:
            body["message"] = exc.description
        response = jsonify(body)
        response.status_code = exc.code or 500
        if exc.code == 405 and getattr(exc, "valid_methods", None):
            response.headers["Allow"] = ", ".join(exc.valid_methods)
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "Internal server error", "message": str(exc) or "Unknown error"}), 500
