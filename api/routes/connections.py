# SPDX-License-Identifier: Apache-2.0

"""
Live connection endpoints.

Socket gateways call these on behalf of a connected user (forwarding the
user's bearer token) to register the connection and manage its channel
subscriptions. Messages then reach the gateway through the push transport.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field

from domain.authorization import is_admin
from middleware.auth import require_auth, current_actor
from middleware.error_handler import AuthorizationError, NotFoundError
from routes.issues import parse_body

connections_tag = Tag(name="Connections", description="Real-time connection registry")
connections_bp = APIBlueprint(
    'connections',
    __name__,
    url_prefix='/api/connections',
    abp_tags=[connections_tag]
)


class ConnectionPath(BaseModel):
    connection_id: str = Field(..., description="Connection ID assigned by the gateway")


class ChannelPath(BaseModel):
    connection_id: str = Field(..., description="Connection ID assigned by the gateway")
    channel: str = Field(..., description="Channel name")


class ConnectRequest(BaseModel):
    connection_id: str = Field(..., min_length=1, max_length=200)


class JoinChannelRequest(BaseModel):
    channel: str = Field(..., min_length=1, max_length=200)


def _owned_connection(connection_id: str):
    """The caller may only manage connections registered for them."""
    registry = current_app.connection_registry
    actor = current_actor()
    if registry.owner_of(connection_id) != actor.user_id:
        raise NotFoundError(f"Connection {connection_id} not found")
    return registry


@connections_bp.post('')
@require_auth
def connect():
    """Register a live connection for the caller."""
    body = parse_body(ConnectRequest)
    subscription = current_app.connection_registry.connect(body.connection_id, current_actor())
    return jsonify({
        "connection_id": subscription.connection_id,
        "channels": sorted(subscription.channels)
    }), 201


@connections_bp.post('/<connection_id>/channels')
@require_auth
def join_channel(path: ConnectionPath):
    """Subscribe a connection to a channel."""
    body = parse_body(JoinChannelRequest)
    registry = _owned_connection(path.connection_id)
    registry.join(path.connection_id, body.channel)
    return jsonify({"connection_id": path.connection_id, "channels": registry.channels_for(path.connection_id)})


@connections_bp.delete('/<connection_id>/channels/<channel>')
@require_auth
def leave_channel(path: ChannelPath):
    """Unsubscribe a connection from a channel."""
    registry = _owned_connection(path.connection_id)
    registry.leave(path.connection_id, path.channel)
    return '', 204


@connections_bp.delete('/<connection_id>')
@require_auth
def disconnect(path: ConnectionPath):
    """Remove a connection and all of its subscriptions."""
    registry = _owned_connection(path.connection_id)
    registry.disconnect(path.connection_id)
    return '', 204


@connections_bp.get('/stats')
@require_auth
def connection_stats():
    """Registry statistics (administrators only)."""
    if not is_admin(current_actor().role):
        raise AuthorizationError("Connection statistics require administrator role")
    return jsonify(current_app.connection_registry.stats())
