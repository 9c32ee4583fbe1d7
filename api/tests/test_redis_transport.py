# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the Redis push transport.
"""

import json
import pytest
from unittest.mock import MagicMock, patch

from services.connections import ConnectionRegistry
from services.redis import (
    RedisConnectionError,
    RedisPushTransport,
    create_push_transport,
    create_redis_client,
)


class TestRedisPushTransport:
    """Publishing pushes on per-connection channels."""

    def test_send_publishes_json(self):
        client = MagicMock()
        client.publish.return_value = 1
        transport = RedisPushTransport(client, channel_prefix="push")

        transport.send("conn-1", "issue:42", {"event_id": "e1", "type": "status_changed"})

        channel, body = client.publish.call_args.args
        assert channel == "push:conn-1"
        assert json.loads(body) == {
            "channel": "issue:42",
            "message": {"event_id": "e1", "type": "status_changed"}
        }

    def test_send_propagates_errors(self):
        client = MagicMock()
        client.publish.side_effect = ConnectionError("down")
        transport = RedisPushTransport(client)

        with pytest.raises(ConnectionError):
            transport.send("conn-1", "issue:42", {})

    def test_registry_swallows_transport_errors(self, citizen):
        client = MagicMock()
        client.publish.side_effect = ConnectionError("down")
        registry = ConnectionRegistry(RedisPushTransport(client))
        registry.connect("conn-1", citizen)

        assert registry.push("user:citizen-1", {"event_id": "e1"}) == 0

    @pytest.mark.parametrize("reply,healthy", [(True, True), ("PONG", True), (False, False)])
    def test_ping(self, reply, healthy):
        client = MagicMock()
        client.ping.return_value = reply
        assert RedisPushTransport(client).ping() is healthy

    def test_health_check_on_error(self):
        client = MagicMock()
        client.ping.side_effect = TimeoutError("slow")
        assert RedisPushTransport(client).health_check()["status"] == "unhealthy"


class TestClientFactory:
    """Client selection."""

    @patch('services.redis.redis.from_url')
    def test_standard_client(self, mock_from_url):
        client = create_redis_client("redis://cache:6379", None, socket_timeout=0.5)

        assert client is mock_from_url.return_value
        kwargs = mock_from_url.call_args.kwargs
        assert kwargs["socket_timeout"] == 0.5
        assert kwargs["decode_responses"] is True
        client.ping.assert_called_once()

    @patch('services.redis.UpstashRedis')
    def test_upstash_client_when_token_set(self, mock_upstash):
        client = create_redis_client("https://eu1.upstash.io", "token-123")

        mock_upstash.assert_called_once_with(url="https://eu1.upstash.io", token="token-123")
        assert client is mock_upstash.return_value

    @patch('services.redis.redis.from_url')
    def test_unreachable_server(self, mock_from_url):
        mock_from_url.return_value.ping.side_effect = ConnectionError("refused")
        with pytest.raises(RedisConnectionError):
            create_redis_client("redis://cache:6379")

    @patch('services.redis.redis.from_url')
    def test_create_push_transport(self, mock_from_url):
        transport = create_push_transport("redis://cache:6379", channel_prefix="ws")
        assert transport.client is mock_from_url.return_value
        assert transport.connection_channel("c1") == "ws:c1"
