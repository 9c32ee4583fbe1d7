# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT validation and actor resolution.

Tokens are issued elsewhere; this module only verifies them and turns their
claims into the ``Actor`` every core operation receives.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError
import jwt
import logging

from models.entities import Actor
from middleware.error_handler import AuthenticationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "role"]


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, signature and expiry validation, and building
    the request's actor.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        """
        Initialize the authentication middleware.

        Args:
            secret: Verification key (shared secret or PEM public key)
            algorithm: Expected signing algorithm
        """
        self.secret = secret
        self.algorithm = algorithm

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a token and return its claims.

        Raises:
            AuthenticationError: If the token is expired, malformed or badly signed
        """
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS}
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_request_info(self) -> Dict[str, Any]:
        """
        Extract request metadata for the actor.

        Returns:
            Dictionary with request information
        """
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID')
        }

    def build_actor(self, claims: Dict[str, Any], request_info: Dict[str, Any]) -> Actor:
        """
        Build the actor from validated claims and request information.

        Raises:
            AuthenticationError: If the claims do not describe a valid actor
        """
        try:
            return Actor(
                user_id=str(claims["sub"]),
                role=claims["role"],
                department=claims.get("department"),
                is_active=bool(claims.get("active", True)),
                name=claims.get("name"),
                ip_address=request_info.get("ip_address"),
                user_agent=request_info.get("user_agent"),
                session_id=request_info.get("session_id")
            )
        except PydanticValidationError as e:
            raise AuthenticationError(f"Invalid token claims: {e.error_count()} error(s)")

    def authenticate(self) -> Actor:
        """
        Resolve the actor of the current request.

        Raises:
            AuthenticationError: If no valid token is present
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationError("Missing authorization token")

            try:
                claims = self.decode_token(token)
                actor = self.build_actor(claims, self.get_request_info())
            except AuthenticationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {e.message}")
                raise

            span.set_attributes({
                "auth.result": "success",
                "user.id": actor.user_id,
                "user.role": actor.role.value
            })
            logger.debug(
                "Authentication successful",
                extra={
                    "extra_fields": {
                        "user_id": actor.user_id,
                        "role": actor.role.value,
                        "ip_address": actor.ip_address
                    }
                }
            )
            return actor


def require_auth(f: Callable) -> Callable:
    """
    Decorator requiring a valid bearer token on a Flask route.

    The resolved actor is stored on ``g.actor``; read it with ``current_actor``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware: AuthMiddleware = current_app.auth_middleware
        g.actor = auth_middleware.authenticate()
        return f(*args, **kwargs)
    return decorated_function


def current_actor() -> Actor:
    """Actor of the current request (set by ``require_auth``)."""
    actor = g.get('actor')
    if actor is None:
        raise AuthenticationError("Authentication required")
    return actor
