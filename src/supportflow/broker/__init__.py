"""Job broker construction from application settings."""

from __future__ import annotations

from supportflow.broker.redis_broker import RedisJobBroker
from supportflow.core.config import AppSettings


def create_broker(settings: AppSettings | None = None) -> RedisJobBroker:
    """Create the Redis job broker. Never raises when Redis is down."""
    if settings is None:
        settings = AppSettings()

    return RedisJobBroker(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        password=settings.redis.password,
        key_prefix=settings.redis.key_prefix,
        connect_timeout=settings.redis.connect_timeout,
        reconnect_attempts=settings.redis.reconnect_attempts,
        reconnect_backoff_cap=settings.redis.reconnect_backoff_cap,
        attempts=settings.queue.attempts,
        backoff_delay=settings.queue.backoff_delay,
        completed_ttl=settings.queue.completed_ttl,
        failed_ttl=settings.queue.failed_ttl,
        stalled_timeout=settings.queue.stalled_timeout,
    )


__all__ = ["RedisJobBroker", "create_broker"]
