# SPDX-License-Identifier: Apache-2.0

"""
Civic Issues API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires the
issue lifecycle core (store, event bus, services, connection registry) and
registers the HTTP blueprints.
"""

import os
import atexit
import logging
from datetime import datetime
from typing import Optional
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from observability.config import setup_observability, SERVICE_NAME
from observability.middleware import add_observability_middleware
from middleware.error_handler import ErrorHandlerMiddleware
from middleware.auth import AuthMiddleware
from services.amqp import AMQPEventPublisher, create_amqp_publisher
from services.bulk import BulkOperationExecutor
from services.connections import ConnectionRegistry, PushTransport
from services.events import EventBus
from services.issues import IssueService
from services.mongodb import MongoDBService, MongoIssueStore
from services.notifications import NotificationFanout, NotificationInbox
from services.redis import RedisConnectionError, create_push_transport
from services.store import InMemoryIssueStore, IssueStore
from services.timeline import TimelineAssembler
from utils.config import Settings, load_settings

logger = logging.getLogger(__name__)

info = Info(
    title="Civic Issues API",
    version="1.0.0",
    description="Issue lifecycle and notification engine of the citizen issue-reporting portal"
)

tags = [
    Tag(name="Issues", description="Issue lifecycle management"),
    Tag(name="Notifications", description="Personal notification inbox"),
    Tag(name="Connections", description="Real-time connection registry"),
    Tag(name="Health", description="System health and status")
]


def _build_store(settings: Settings):
    """Select the persistence backend."""
    if settings.store_backend == "mongodb":
        mongodb_service = MongoDBService(
            settings.mongodb_uri,
            settings.mongodb_database,
            settings.mongodb_timeout_ms
        )
        mongodb_service.create_indexes()
        return MongoIssueStore(mongodb_service), mongodb_service
    return InMemoryIssueStore(), None


def _build_transport(settings: Settings) -> Optional[PushTransport]:
    """Redis push transport, or None when Redis is not configured or unreachable."""
    if not settings.redis_url:
        logger.warning("No REDIS_URL configured, real-time pushes will be dropped")
        return None
    try:
        return create_push_transport(
            settings.redis_url,
            settings.redis_token,
            settings.push_channel_prefix,
            settings.push_timeout_seconds
        )
    except RedisConnectionError as e:
        logger.error(f"Redis unavailable, real-time pushes will be dropped: {str(e)}")
        return None


def create_app(settings: Optional[Settings] = None,
               store: Optional[IssueStore] = None,
               transport: Optional[PushTransport] = None,
               event_publisher: Optional[AMQPEventPublisher] = None) -> OpenAPI:
    """
    Build the Flask application.

    Args:
        settings: Configuration; read from the environment when omitted
        store: Persistence backend; chosen from ``STORE_BACKEND`` when omitted
        transport: Push transport; built from ``REDIS_URL`` when omitted
        event_publisher: AMQP forwarder; built from ``AMQP_URL`` when omitted

    Returns:
        Configured application
    """
    settings = settings or load_settings()
    setup_observability(settings.environment, settings.otel_enabled, settings.service_version)

    app = OpenAPI(__name__, info=info, tags=tags)
    app.config.update(settings.to_flask_config())
    app.config['DEBUG'] = settings.environment == 'development'

    add_observability_middleware(app)
    ErrorHandlerMiddleware(app)

    mongodb_service = None
    if store is None:
        store, mongodb_service = _build_store(settings)
    if transport is None:
        transport = _build_transport(settings)
    if event_publisher is None and settings.amqp_url:
        event_publisher = create_amqp_publisher(settings.amqp_url, settings.amqp_exchange)

    registry = ConnectionRegistry(transport)
    bus = EventBus()
    bus.register(NotificationFanout(store, registry))
    if event_publisher is not None:
        bus.register(event_publisher)
        atexit.register(event_publisher.shutdown)

    issue_service = IssueService(store, bus)

    # Make services available to routes
    app.store = store
    app.mongodb_service = mongodb_service
    app.event_bus = bus
    app.connection_registry = registry
    app.issue_service = issue_service
    app.timeline_assembler = TimelineAssembler(store)
    app.bulk_executor = BulkOperationExecutor(issue_service, store, bus, settings.bulk_max_workers)
    app.notification_inbox = NotificationInbox(store)
    app.auth_middleware = AuthMiddleware(settings.jwt_secret, settings.jwt_algorithm)

    from routes.issues import issues_bp
    from routes.notifications import notifications_bp
    from routes.connections import connections_bp

    app.register_api(issues_bp)
    app.register_api(notifications_bp)
    app.register_api(connections_bp)

    @app.get('/health', tags=[tags[3]])
    def health_check():
        """Service health with dependency status."""
        dependencies = {
            "store": {"backend": settings.store_backend, "status": "healthy"},
            "push": {"status": "disabled"},
            "amqp": {"status": "disabled"}
        }
        if app.mongodb_service is not None:
            dependencies["store"] = dict(app.mongodb_service.health_check(), backend="mongodb")
        if transport is not None and hasattr(transport, "health_check"):
            dependencies["push"] = transport.health_check()
        if event_publisher is not None:
            dependencies["amqp"] = {"status": "healthy" if event_publisher.health_check() else "unhealthy"}

        # Push and AMQP are best-effort; only the store decides availability
        healthy = dependencies["store"].get("status") == "healthy"
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "service": SERVICE_NAME,
            "version": settings.service_version,
            "environment": settings.environment,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "dependencies": dependencies,
            "connections": registry.stats()["connections"]
        }
        return jsonify(body), 200 if healthy else 503

    logger.info(
        "Application initialized",
        extra={
            "extra_fields": {
                "environment": settings.environment,
                "store_backend": settings.store_backend,
                "push_enabled": transport is not None,
                "amqp_enabled": event_publisher is not None
            }
        }
    )
    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
