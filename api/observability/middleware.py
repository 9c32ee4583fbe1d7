# SPDX-License-Identifier: Apache-2.0

"""
Observability Middleware

Instruments the Flask app with OpenTelemetry and emits one structured log
line per request, tagged with the issue and actor the request touched.
"""

import time
import logging
from typing import Any, Dict
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)

# Route parameters copied onto the server span
TRACKED_VIEW_ARGS = {
    "issue_id": "issue.id",
    "comment_id": "comment.id",
    "notification_id": "notification.id",
    "operation_id": "bulk.operation_id",
    "connection_id": "connection.id",
}


def _request_attributes() -> Dict[str, Any]:
    attributes = {
        "http.target": request.path,
        "http.user_agent": request.headers.get("User-Agent", ""),
    }
    for arg, attribute in TRACKED_VIEW_ARGS.items():
        value = (request.view_args or {}).get(arg)
        if value:
            attributes[attribute] = value
    return attributes


def add_observability_middleware(app: Flask):
    """Attach tracing and per-request logging to the Flask app."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def start_request_span():
        g.request_started = time.perf_counter()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            span.set_attributes(_request_attributes())

    @app.after_request
    def log_request(response):
        elapsed_ms = round((time.perf_counter() - g.get("request_started", time.perf_counter())) * 1000, 2)
        actor = g.get("actor")

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("http.duration_ms", elapsed_ms)
            if actor is not None:
                span.set_attributes({"actor.id": actor.user_id, "actor.role": actor.role.value})

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            f"{request.method} {request.path} -> {response.status_code}",
            extra={
                "extra_fields": {
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "actor_id": actor.user_id if actor is not None else None,
                    "issue_id": (request.view_args or {}).get("issue_id"),
                    "trace_id": g.get("trace_id")
                }
            }
        )

        if g.get("trace_id"):
            response.headers["X-Trace-Id"] = g.trace_id
        return response
