"""
Dramatiq broker configuration.

Redis-based message broker for the commission distribution queue. Queue
keys live under ``settings.queue_namespace`` so the engine can share a
Redis instance with other dramatiq deployments.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from ib_engine.config.settings import settings

redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
    namespace=settings.queue_namespace,
)

# ShutdownNotifications: lets a running distribution finish its entry
# CurrentMessage: exposes the message id to actors for log correlation
# Retries: only applies to actors that opt in with max_retries > 0
for middleware in (
    ShutdownNotifications(),
    CurrentMessage(),
    Retries(max_retries=3, min_backoff=1_000, max_backoff=60_000),
):
    redis_broker.add_middleware(middleware)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    "Dramatiq broker ready",
    extra={
        "redis": f"{settings.redis_host}:{settings.redis_port}/{settings.redis_db}",
        "namespace": settings.queue_namespace,
    },
)
