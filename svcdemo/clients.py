"""Process-wide registries of Kafka and Redis clients."""

from __future__ import annotations

import threading
import time
from typing import Any

import redis

from .config import RedisConfig
from .kafka import KafkaClient
from .logger import get_logger

_PING_TIMEOUT = 2.0

_lock = threading.Lock()
_kafka_clients: dict[str, KafkaClient] = {}
_redis_clients: dict[str, redis.Redis] = {}


def get_kafka_client(name: str) -> KafkaClient:
    with _lock:
        client = _kafka_clients.get(name)
    if client is None:
        raise LookupError(f"Kafka client not found, name={name}")
    return client


def register_kafka_client(name: str, client: KafkaClient) -> None:
    with _lock:
        if name in _kafka_clients:
            raise ValueError(f"Register kafka client failed, cause duplicate, name={name}")
        _kafka_clients[name] = client


def clean_kafka_client(name: str) -> None:
    with _lock:
        _kafka_clients.pop(name, None)


def get_redis_client(label: str) -> redis.Redis:
    with _lock:
        client = _redis_clients.get(label)
    if client is None:
        raise LookupError(f"Redis label {label} not exist")
    return client


def register_redis_client(label: str, client: redis.Redis) -> None:
    with _lock:
        if label in _redis_clients:
            raise ValueError(f"Register redis client failed, cause duplicate, name={label}")
        _redis_clients[label] = client


def clean_redis_client(label: str) -> None:
    with _lock:
        _redis_clients.pop(label, None)


class _LoggingRedis(redis.Redis):
    """A Redis client that logs every single command with its cost."""

    def execute_command(self, *args: Any, **options: Any) -> Any:
        start = time.monotonic()
        name = args[0] if args else ""
        key = args[1] if len(args) > 1 else None
        params = list(args[2:])
        log = get_logger()
        try:
            result = super().execute_command(*args, **options)
        except redis.RedisError as exc:
            log.error(
                "opt=%s,key=%s,params=%s,cost=%.3fms,err=%s",
                name, key, params, (time.monotonic() - start) * 1000, exc,
            )
            raise
        log.info(
            "opt=%s,key=%s,params=%s,cost=%.3fms",
            name, key, params, (time.monotonic() - start) * 1000,
        )
        return result


def _split_addr(addr: str) -> tuple[str, int]:
    if not addr:
        return "localhost", 6379
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, 6379
    host = host.strip("[]") or "localhost"
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"invalid redis address {addr!r}") from None


def new_redis_pool(cfg: RedisConfig) -> redis.Redis:
    """Connect to the server in ``cfg`` and check it answers a ping."""
    host, port = _split_addr(cfg.addr)
    client = _LoggingRedis(
        host=host,
        port=port,
        username=cfg.username or None,
        password=cfg.password or None,
        socket_connect_timeout=_PING_TIMEOUT,
    )
    try:
        client.ping()
    except redis.RedisError:
        client.close()
        raise
    return client


def new_redis_client(cfg: RedisConfig) -> redis.Redis:
    """Connect to the server in ``cfg`` and register it under ``cfg.label``."""
    client = new_redis_pool(cfg)
    register_redis_client(cfg.label, client)
    return client