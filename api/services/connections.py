# SPDX-License-Identifier: Apache-2.0

"""
Live connection registry.

Tracks which real-time connections exist, which user owns each one and which
channels each connection is subscribed to. Delivery to a connection goes
through a ``PushTransport`` (see ``services.redis``); the registry itself
never touches a socket.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set

from opentelemetry import trace

from models.entities import Actor
from domain.authorization import check_channel_join, is_valid_channel, user_channel
from middleware.error_handler import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PushTransport(Protocol):
    """Delivers one message to one live connection."""

    def send(self, connection_id: str, channel: str, message: Dict[str, Any]) -> None:
        ...


@dataclass
class Subscription:
    """A live connection and its channel memberships."""
    connection_id: str
    actor: Actor
    channels: Set[str] = field(default_factory=set)

    @property
    def user_id(self) -> str:
        return self.actor.user_id


class ConnectionRegistry:
    """
    Explicit map of live connections keyed by connection id.

    Every mutation and read happens under one re-entrant lock. ``push`` takes
    a snapshot of the subscribers under the lock and delivers outside it.
    """

    def __init__(self, transport: Optional[PushTransport] = None):
        self._lock = threading.RLock()
        self._connections: Dict[str, Subscription] = {}
        self._channels: Dict[str, Set[str]] = {}
        self.transport = transport

    def bind_transport(self, transport: PushTransport) -> None:
        self.transport = transport

    def _subscription(self, connection_id: str) -> Subscription:
        subscription = self._connections.get(connection_id)
        if subscription is None:
            raise NotFoundError(f"Connection {connection_id} not found")
        return subscription

    def _add_member(self, subscription: Subscription, channel: str) -> None:
        subscription.channels.add(channel)
        self._channels.setdefault(channel, set()).add(subscription.connection_id)

    def _remove_member(self, subscription: Subscription, channel: str) -> None:
        subscription.channels.discard(channel)
        members = self._channels.get(channel)
        if members is not None:
            members.discard(subscription.connection_id)
            if not members:
                del self._channels[channel]

    def connect(self, connection_id: str, actor: Actor) -> Subscription:
        """
        Register a connection and join its owner's personal channel.

        Reconnecting with a known connection id replaces the old registration
        when the same user owns it.

        Raises:
            ConflictError: If the connection id belongs to another user
        """
        with self._lock:
            existing = self._connections.get(connection_id)
            if existing is not None:
                if existing.user_id != actor.user_id:
                    logger.warning(
                        "Connection id already owned by another user",
                        extra={
                            "extra_fields": {
                                "connection_id": connection_id,
                                "owner_id": existing.user_id,
                                "user_id": actor.user_id
                            }
                        }
                    )
                    raise ConflictError(f"Connection {connection_id} is already registered")
                self.disconnect(connection_id)
            subscription = Subscription(connection_id=connection_id, actor=actor)
            self._connections[connection_id] = subscription
            self._add_member(subscription, user_channel(actor.user_id))

        logger.info(
            "Connection registered",
            extra={"extra_fields": {"connection_id": connection_id, "user_id": actor.user_id}}
        )
        return subscription

    def join(self, connection_id: str, channel: str) -> None:
        """
        Subscribe a connection to a channel.

        Raises:
            NotFoundError: If the connection is unknown
            ValidationError: If the channel name is malformed
            AuthorizationError: If the owner may not join the channel
        """
        if not is_valid_channel(channel):
            raise ValidationError(
                f"Invalid channel name: {channel}",
                [{"field": "channel", "message": "Expected user:<id>, issue:<id> or admin-dashboard", "type": "value_error"}]
            )

        with self._lock:
            subscription = self._subscription(connection_id)
            decision = check_channel_join(subscription.actor, channel)
            if not decision:
                logger.warning(
                    "Channel join denied",
                    extra={
                        "extra_fields": {
                            "connection_id": connection_id,
                            "user_id": subscription.user_id,
                            "channel": channel,
                            "reason": decision.reason
                        }
                    }
                )
                raise AuthorizationError(decision.reason)
            self._add_member(subscription, channel)

        logger.debug(f"Connection {connection_id} joined {channel}")

    def leave(self, connection_id: str, channel: str) -> None:
        """Unsubscribe a connection from a channel; unknown memberships are ignored."""
        with self._lock:
            subscription = self._subscription(connection_id)
            self._remove_member(subscription, channel)

    def disconnect(self, connection_id: str) -> bool:
        """
        Remove a connection and all of its memberships.

        Returns:
            True if the connection was registered
        """
        with self._lock:
            subscription = self._connections.pop(connection_id, None)
            if subscription is None:
                return False
            for channel in list(subscription.channels):
                self._remove_member(subscription, channel)

        logger.info(
            "Connection removed",
            extra={"extra_fields": {"connection_id": connection_id, "user_id": subscription.user_id}}
        )
        return True

    def subscribers(self, channel: str) -> List[str]:
        """Connection ids currently subscribed to a channel."""
        with self._lock:
            return sorted(self._channels.get(channel, ()))

    def online_users(self, channel: str) -> List[str]:
        """Distinct owners of the connections subscribed to a channel."""
        with self._lock:
            members = self._channels.get(channel, ())
            return sorted({self._connections[c].user_id for c in members})

    def owner_of(self, connection_id: str) -> str:
        """User id owning a connection."""
        with self._lock:
            return self._subscription(connection_id).user_id

    def channels_for(self, connection_id: str) -> List[str]:
        with self._lock:
            return sorted(self._subscription(connection_id).channels)

    def is_user_online(self, user_id: str) -> bool:
        with self._lock:
            return any(s.user_id == user_id for s in self._connections.values())

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "connections": len(self._connections),
                "users": len({s.user_id for s in self._connections.values()}),
                "channels": {channel: len(members) for channel, members in self._channels.items()}
            }

    def push(self, channel: str, message: Dict[str, Any]) -> int:
        """
        Deliver a message to every subscriber of a channel.

        Delivery is best-effort: a failing connection is logged and skipped.

        Returns:
            Number of successful deliveries
        """
        with self._lock:
            targets = list(self._channels.get(channel, ()))

        if not targets:
            return 0

        if self.transport is None:
            logger.debug(f"No push transport bound; dropped message for {channel}")
            return 0

        delivered = 0
        with tracer.start_as_current_span("connections.push") as span:
            span.set_attributes({"push.channel": channel, "push.targets": len(targets)})
            for connection_id in targets:
                try:
                    self.transport.send(connection_id, channel, message)
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        "Push delivery failed",
                        extra={
                            "extra_fields": {
                                "connection_id": connection_id,
                                "channel": channel,
                                "error": str(e)
                            }
                        }
                    )
            span.set_attribute("push.delivered", delivered)

        return delivered
