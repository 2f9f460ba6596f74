"""Unit tests for Redis client singleton and payment event publishing."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from redis import ConnectionError as RedisConnectionError

from shared.redis_client import (
    PAYMENT_EVENTS_CHANNEL,
    close_redis_client,
    get_redis_client,
    publish_to_channel,
)

PAYMENT_EVENT = {
    "event_id": "evt_1",
    "event_type": "checkout.session.completed",
    "transaction_id": "TXN-1760864400000-abc123",
}


class TestRedisClient:
    """Tests for Redis client singleton."""

    def test_get_redis_client_is_singleton(self):
        """Test that get_redis_client returns the same instance (cached)."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()

            get_redis_client.cache_clear()

            result1 = get_redis_client()
            result2 = get_redis_client()

            assert result1 is result2
            assert mock_from_url.call_count == 1
            get_redis_client.cache_clear()

    def test_redis_client_configured_with_pool(self):
        """Test that Redis client is configured with connection pool."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            with patch("shared.redis_client.get_settings") as mock_settings:
                mock_settings.return_value.REDIS_URL = "redis://test:6379/0"

                get_redis_client.cache_clear()
                get_redis_client()

                mock_from_url.assert_called_once_with(
                    "redis://test:6379/0",
                    max_connections=20,
                    decode_responses=True,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                get_redis_client.cache_clear()


class TestPublishToChannel:
    """Tests for publish_to_channel function."""

    @pytest.mark.asyncio
    async def test_publish_payment_event(self):
        """Payment events are published as JSON on the payment_events channel."""
        mock_client = AsyncMock()
        mock_client.publish = AsyncMock(return_value=1)

        with patch("shared.redis_client.get_redis_client", return_value=mock_client):
            await publish_to_channel(PAYMENT_EVENTS_CHANNEL, PAYMENT_EVENT)

            mock_client.publish.assert_called_once()
            channel, published = mock_client.publish.call_args[0]
            assert channel == "payment_events"
            assert json.loads(published) == PAYMENT_EVENT

    @pytest.mark.asyncio
    async def test_non_json_values_serialized_as_strings(self):
        """Datetimes and similar values fall back to str()."""
        mock_client = AsyncMock()
        mock_client.publish = AsyncMock(return_value=1)
        received_at = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)

        with patch("shared.redis_client.get_redis_client", return_value=mock_client):
            await publish_to_channel(PAYMENT_EVENTS_CHANNEL, {**PAYMENT_EVENT, "received_at": received_at})

            published = json.loads(mock_client.publish.call_args[0][1])
            assert published["received_at"] == str(received_at)

    @pytest.mark.asyncio
    async def test_redis_connection_error_raises_503(self):
        """Test that Redis connection errors raise HTTPException 503."""
        mock_client = AsyncMock()
        mock_client.publish = AsyncMock(side_effect=RedisConnectionError("Connection refused"))

        with patch("shared.redis_client.get_redis_client", return_value=mock_client):
            with pytest.raises(HTTPException) as exc_info:
                await publish_to_channel(PAYMENT_EVENTS_CHANNEL, PAYMENT_EVENT)

            assert exc_info.value.status_code == 503
            assert "Redis connection failed" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_unexpected_error_raises_503(self):
        """Test that unexpected errors raise HTTPException 503."""
        mock_client = AsyncMock()
        mock_client.publish = AsyncMock(side_effect=Exception("Unexpected error"))

        with patch("shared.redis_client.get_redis_client", return_value=mock_client):
            with pytest.raises(HTTPException) as exc_info:
                await publish_to_channel(PAYMENT_EVENTS_CHANNEL, PAYMENT_EVENT)

            assert exc_info.value.status_code == 503
            assert "temporarily unavailable" in exc_info.value.detail


class TestCloseRedisClient:
    @pytest.mark.asyncio
    async def test_close_errors_are_logged_not_raised(self):
        mock_client = AsyncMock()
        mock_client.aclose = AsyncMock(side_effect=RedisConnectionError("gone"))

        with patch("shared.redis_client.get_redis_client", return_value=mock_client):
            await close_redis_client()

        mock_client.aclose.assert_awaited_once()
