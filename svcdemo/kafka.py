"""Kafka message producing, with an in-memory producer for tests."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from .errors import SEND_KAFKA_ERROR
from .logger import get_logger

DEFAULT_PARTITIONS = 4


@dataclass
class ProducerMessage:
    """A message on its way to a topic; partition and offset are set once sent."""

    topic: str
    value: bytes
    key: str = ""
    headers: list[tuple[bytes, bytes]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    partition: int = 0
    offset: int = 0


class _Producer(Protocol):
    def send_message(self, message: ProducerMessage) -> tuple[int, int]: ...


def _hash_partition(key: str, partitions: int) -> int:
    digest = 0x811C9DC5
    for byte in key.encode("utf-8"):
        digest ^= byte
        digest = (digest * 0x01000193) & 0xFFFFFFFF
    signed = digest - (1 << 32) if digest & 0x80000000 else digest
    return abs(signed) % partitions


@dataclass
class _Expectation:
    error: BaseException | None = None
    checker: Callable[[ProducerMessage], object] | None = None


class MockProducer:
    """A producer that answers each send from a queue of expectations."""

    def __init__(self, partitions: int = DEFAULT_PARTITIONS) -> None:
        if partitions <= 0:
            raise ValueError("partitions must be positive")
        self._partitions = partitions
        self._expectations: deque[_Expectation] = deque()
        self._last_offset = 0
        self._lock = threading.Lock()

    def expect_send_and_succeed(self) -> None:
        self._expectations.append(_Expectation())

    def expect_send_and_fail(self, err: BaseException) -> None:
        self._expectations.append(_Expectation(error=err))

    def expect_send_with_checker_and_succeed(
        self, checker: Callable[[ProducerMessage], object]
    ) -> None:
        """Expect a send; ``checker`` sees the message and raises to reject it."""
        self._expectations.append(_Expectation(checker=checker))

    def send_message(self, message: ProducerMessage) -> tuple[int, int]:
        with self._lock:
            if not self._expectations:
                raise RuntimeError("No more expectations set on this mock")
            expectation = self._expectations.popleft()
        if expectation.checker is not None:
            expectation.checker(message)
        if expectation.error is not None:
            raise expectation.error
        with self._lock:
            self._last_offset += 1
            message.offset = self._last_offset
        message.partition = _hash_partition(message.key, self._partitions)
        return message.partition, message.offset


class KafkaClient:
    """Sends messages through a producer and logs the outcome."""

    def __init__(self, producer: _Producer) -> None:
        self.producer = producer

    def send_message(
        self,
        topic: str,
        partition_key: str,
        body: bytes,
        headers: Mapping[str, str] | None = None,
    ) -> tuple[int, int]:
        """Send ``body`` to ``topic``; return the partition and offset it landed at."""
        log = get_logger()
        start = time.monotonic()
        message = ProducerMessage(
            topic=topic,
            value=bytes(body),
            key=partition_key,
            headers=[(k.encode("utf-8"), v.encode("utf-8")) for k, v in (headers or {}).items()],
        )
        try:
            self.producer.send_message(message)
        except Exception as exc:
            log.error(
                "Sender kafka message fail, topic=%s, msg=%s, cost=%.3fms, err=%s",
                message.topic,
                message.value,
                (time.monotonic() - start) * 1000,
                exc,
            )
            raise SEND_KAFKA_ERROR.wrap(exc) from exc
        log.info(
            "Sender kafka message success, topic=%s, headers=%s, key=%s, msg=%s, "
            "partition_id=%d, offset=%d, cost=%.3fms",
            message.topic,
            message.headers,
            message.key,
            message.value,
            message.partition,
            message.offset,
            (time.monotonic() - start) * 1000,
        )
        return message.partition, message.offset