# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error kinds raised by the issue lifecycle core and the Flask handlers that
translate them into problem-details JSON responses.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, List, Optional, Tuple
from opentelemetry import trace
import logging
import traceback

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.civic-issues.org/problems"


class CustomException(Exception):
    """Base class for custom application exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationError(CustomException):
    """Malformed input: empty comment text, bad update payload, unknown enum value."""

    def __init__(self, message: str, validation_errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []


class AuthenticationError(CustomException):
    """Missing or invalid credentials (HTTP layer only)."""

    def __init__(self, message: str):
        super().__init__(message, 401, "authentication-required")


class AuthorizationError(CustomException):
    """Actor lacks permission for the operation."""

    def __init__(self, message: str):
        super().__init__(message, 403, "insufficient-permissions")


class NotFoundError(CustomException):
    """Issue, comment, notification or operation absent."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class ConflictError(CustomException):
    """Concurrent modification detected by an atomic update."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class InvalidTransitionError(CustomException):
    """Requested status edge is not in the transition graph."""

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None):
        super().__init__(message, 422, "invalid-transition")
        self.from_status = from_status
        self.to_status = to_status


def validation_error_from_pydantic(error, message: str = "Request validation failed") -> ValidationError:
    """
    Convert a pydantic ValidationError into the core ValidationError.

    Args:
        error: pydantic.ValidationError instance
        message: Top-level error message

    Returns:
        ValidationError with per-field details
    """
    details = []
    for item in error.errors():
        details.append({
            "field": ".".join(str(part) for part in item.get("loc", ())),
            "message": item.get("msg"),
            "type": item.get("type")
        })
    return ValidationError(message, details)


def build_problem(error_type: str, title: str, status: int, detail: str,
                  instance: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Build a problem-details body."""
    body = {
        "type": f"{PROBLEM_BASE_URL}/{error_type}",
        "title": title,
        "status": status,
        "detail": detail,
        "instance": instance
    }
    if errors:
        body["errors"] = errors
    return body


ERROR_TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "insufficient-permissions": "Insufficient Permissions",
    "resource-not-found": "Resource Not Found",
    "resource-conflict": "Resource Conflict",
    "invalid-transition": "Invalid Status Transition",
}


class ErrorHandlerMiddleware:
    """Centralized error handling middleware with problem-details responses."""

    def __init__(self, app: Flask):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(CustomException)
        def handle_custom_exception(error: CustomException):
            return self.handle_custom_exception(error)

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            return self.handle_http_exception(error)

        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def handle_custom_exception(self, error: CustomException) -> Tuple[Any, int]:
        """
        Handle core error kinds.

        Args:
            error: Raised core exception

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            logger.warning(
                f"Request failed: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            errors = error.validation_errors if isinstance(error, ValidationError) else None
            body = build_problem(
                error.error_type,
                ERROR_TITLES.get(error.error_type, "Application Error"),
                error.status_code,
                error.message,
                request.path,
                errors
            )
            return jsonify(body), error.status_code

    def handle_http_exception(self, error: HTTPException) -> Tuple[Any, int]:
        """Handle werkzeug HTTP errors (404 routes, 405 methods, ...)."""
        status = error.code or 500
        detail = str(error.description) if error.description else error.name
        log = logger.error if status >= 500 else logger.warning
        log(
            f"HTTP error: {error.name}",
            extra={
                "status_code": status,
                "detail": detail,
                "path": request.path,
                "method": request.method
            }
        )
        error_type = error.name.lower().replace(" ", "-")
        return jsonify(build_problem(error_type, error.name, status, detail, request.path)), status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Any, int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected-error",
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method,
                    "traceback": traceback.format_exc()
                },
                exc_info=True
            )

            # Don't expose internal error details
            detail = "An unexpected error occurred"
            if self.app.config.get('ENVIRONMENT') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            body = build_problem("internal-server-error", "Internal Server Error", 500, detail, request.path)
            return jsonify(body), 500
