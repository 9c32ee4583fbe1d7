# SPDX-License-Identifier: Apache-2.0

"""
Redis push transport.

Socket gateways subscribe to one Redis pub/sub channel per live connection
and forward what they receive to the browser. The registry hands each message
to ``RedisPushTransport.send``, which publishes it on that per-connection
channel.

Two clients are supported: the standard redis-py client for local and
container deployments, and the Upstash HTTP client for serverless
deployments (selected when ``REDIS_TOKEN`` is set).
"""

import os
import json
from typing import Optional, Dict, Any
import redis
from upstash_redis import Redis as UpstashRedis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_PREFIX = "push"


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisPushTransport:
    """
    ``PushTransport`` publishing to ``<prefix>:<connection_id>``.

    ``send`` raises on failure; the registry logs and skips the connection.
    """

    def __init__(self, client, channel_prefix: str = DEFAULT_CHANNEL_PREFIX):
        """
        Initialize the transport.

        Args:
            client: redis-py or Upstash client exposing ``publish`` and ``ping``
            channel_prefix: Prefix of the per-connection pub/sub channels
        """
        self.client = client
        self.channel_prefix = channel_prefix

    def connection_channel(self, connection_id: str) -> str:
        return f"{self.channel_prefix}:{connection_id}"

    def send(self, connection_id: str, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish one message for one connection.

        Args:
            connection_id: Target connection
            channel: Logical channel the message was pushed to
            message: JSON-serializable message body
        """
        target = self.connection_channel(connection_id)

        with tracer.start_as_current_span("redis.publish") as span:
            span.set_attributes({
                "redis.channel": target,
                "push.channel": channel
            })

            body = json.dumps({"channel": channel, "message": message}, default=str)
            receivers = self.client.publish(target, body)

            span.set_attribute("redis.receivers", int(receivers or 0))
            logger.debug(f"Published push for {connection_id} on {channel} ({receivers} receivers)")

    def ping(self) -> bool:
        """Check that Redis answers."""
        try:
            result = self.client.ping()
            return result is True or result == "PONG"
        except Exception as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        healthy = self.ping()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "channel_prefix": self.channel_prefix
        }


def create_redis_client(redis_url: Optional[str] = None, redis_token: Optional[str] = None,
                        socket_timeout: float = 2.0):
    """
    Build a Redis client from configuration.

    Args:
        redis_url: Redis URL (redis://) or Upstash REST URL (https://)
        redis_token: Upstash REST token; selects the HTTP client when set
        socket_timeout: Seconds before a redis-py socket operation fails

    Returns:
        Connected client

    Raises:
        RedisConnectionError: If the server does not answer
    """
    redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_token = redis_token or os.getenv("REDIS_TOKEN")

    try:
        if redis_token:
            client = UpstashRedis(url=redis_url, token=redis_token)
        else:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout
            )
        client.ping()
    except Exception as e:
        logger.error(f"Redis connection test failed: {str(e)}")
        raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    logger.info("Redis push client initialized")
    return client


def create_push_transport(redis_url: Optional[str] = None, redis_token: Optional[str] = None,
                          channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
                          socket_timeout: float = 2.0) -> RedisPushTransport:
    """
    Factory function to create the Redis push transport.

    Returns:
        RedisPushTransport bound to a connected client
    """
    client = create_redis_client(redis_url, redis_token, socket_timeout)
    return RedisPushTransport(client, channel_prefix)
