# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Application settings loaded from environment variables.
"""

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

STORE_BACKENDS = ("memory", "mongodb")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration of the API."""
    environment: str = "development"
    store_backend: str = "memory"
    mongodb_uri: str = "mongodb://localhost:27017/civic_issues_dev"
    mongodb_database: str = "civic_issues_dev"
    mongodb_timeout_ms: int = 5000
    redis_url: Optional[str] = None
    redis_token: Optional[str] = None
    push_channel_prefix: str = "push"
    push_timeout_seconds: float = 2.0
    amqp_url: Optional[str] = None
    amqp_exchange: str = "issue.events"
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    bulk_max_workers: int = 4
    otel_enabled: bool = False
    service_version: str = "1.0.0"

    def to_flask_config(self) -> Dict[str, Any]:
        """Upper-case keys for ``app.config``."""
        return {key.upper(): value for key, value in asdict(self).items()}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ``

    Returns:
        Settings

    Raises:
        ValueError: If a value cannot be parsed or the store backend is unknown
    """
    env = os.environ if environ is None else environ
    defaults = Settings()

    settings = Settings(
        environment=env.get("ENVIRONMENT", defaults.environment),
        store_backend=env.get("STORE_BACKEND", defaults.store_backend).lower(),
        mongodb_uri=env.get("MONGODB_URI", defaults.mongodb_uri),
        mongodb_database=env.get("MONGODB_DATABASE", defaults.mongodb_database),
        mongodb_timeout_ms=int(env.get("MONGODB_TIMEOUT_MS", defaults.mongodb_timeout_ms)),
        redis_url=env.get("REDIS_URL") or None,
        redis_token=env.get("REDIS_TOKEN") or None,
        push_channel_prefix=env.get("PUSH_CHANNEL_PREFIX", defaults.push_channel_prefix),
        push_timeout_seconds=float(env.get("PUSH_TIMEOUT_SECONDS", defaults.push_timeout_seconds)),
        amqp_url=env.get("AMQP_URL") or None,
        amqp_exchange=env.get("AMQP_EXCHANGE", defaults.amqp_exchange),
        jwt_secret=env.get("JWT_SECRET", defaults.jwt_secret),
        jwt_algorithm=env.get("JWT_ALGORITHM", defaults.jwt_algorithm),
        bulk_max_workers=int(env.get("BULK_MAX_WORKERS", defaults.bulk_max_workers)),
        otel_enabled=_as_bool(env.get("OTEL_ENABLED", "false")),
        service_version=env.get("SERVICE_VERSION", defaults.service_version)
    )

    if settings.store_backend not in STORE_BACKENDS:
        raise ValueError(f"Unknown STORE_BACKEND: {settings.store_backend}")
    if settings.bulk_max_workers < 1:
        raise ValueError("BULK_MAX_WORKERS must be at least 1")
    if settings.environment == "production" and settings.jwt_secret == defaults.jwt_secret:
        raise ValueError("JWT_SECRET must be set in production")

    return settings
