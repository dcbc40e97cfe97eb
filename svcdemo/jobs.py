"""Asynchronous jobs sent through Kafka or Redis queues."""

from __future__ import annotations

import dataclasses
import enum
import json
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from . import config
from .background import log_panic_stack
from .clients import get_kafka_client, get_redis_client
from .codes import REQUEST_ID_HEADER
from .config import KafkaJobConfig, RedisJobConfig
from .errors import INVALID_JOB_PROTOCOL_ERROR
from .logger import REQUEST_ID_KEY, SPAN_ID_KEY, TRACE_ID_KEY, bind_fields, get_logger
from .tracing import TraceContext, bind_trace, new_uuid

KAFKA_JOB_NAME_KEY = "job_name"
_TRACEPARENT_HEADER = "traceparent"


class JobNotFoundError(LookupError):
    """Raised when no job is registered under a name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Job is not found, name:[{name}]")
        self.name = name


class JobBackendType(enum.IntEnum):
    KAFKA = 1
    REDIS = 2


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return "" if value is None else str(value)


def _job_trace(span_name: str, metadata: Mapping[str, Any] | None) -> TraceContext:
    headers = {str(k).lower(): v for k, v in (metadata or {}).items()}
    request_id = _first(headers.get(REQUEST_ID_HEADER.lower())) or new_uuid()
    trace_id = span_id = ""
    parts = _first(headers.get(_TRACEPARENT_HEADER)).split("-")
    if len(parts) >= 3:
        trace_id, span_id = parts[1], parts[2]
    if not trace_id or not span_id:
        trace_id = uuid.uuid4().hex
        span_id = uuid.uuid4().hex[:16]
    return TraceContext(trace_id=trace_id, span_id=span_id, request_id=request_id, span_name=span_name)


def _to_jsonable(protocol: Any) -> Any:
    if dataclasses.is_dataclass(protocol) and not isinstance(protocol, type):
        return dataclasses.asdict(protocol)
    return protocol


def _decode(protocol_type: type, data: Any) -> Any:
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise TypeError(f"cannot decode {type(data).__name__} into {protocol_type.__name__}")
    if dataclasses.is_dataclass(protocol_type):
        names = {f.name for f in dataclasses.fields(protocol_type) if f.init}
        return protocol_type(**{k: v for k, v in data.items() if k in names})
    return protocol_type(**data)


class JobWorker(ABC):
    """A named job whose messages carry instances of ``protocol_type``."""

    backend_type: ClassVar[JobBackendType]

    def __init__(
        self,
        name: str,
        protocol_type: type,
        handler: Callable[[Any], Any] | None = None,
    ) -> None:
        self.name = name
        self.protocol_type = protocol_type
        self.handler = handler

    @abstractmethod
    def send(self, body: bytes, key: str = "") -> None:
        """Put an encoded message on this job's queue."""

    def check_protocol(self, protocol: Any) -> None:
        """Raise the invalid-protocol error unless ``protocol`` has the registered type."""
        if not isinstance(protocol, self.protocol_type):
            msg = (
                f"Job {self.name} send fail, protocol {type(protocol).__name__} "
                f"is not match register protocol {self.protocol_type.__name__}"
            )
            get_logger().error(msg)
            raise INVALID_JOB_PROTOCOL_ERROR.with_message(msg)

    def handle(self, body: str | bytes, metadata: Mapping[str, Any] | None = None) -> Any:
        """Decode ``body`` and run the handler on it.

        A body that does not decode raises ``ValueError``; an exception from the
        handler is logged with its stack and ``None`` is returned.
        """
        trace = _job_trace(self.name, metadata)
        fields = {
            REQUEST_ID_KEY: trace.request_id,
            TRACE_ID_KEY: trace.trace_id,
            SPAN_ID_KEY: trace.span_id,
        }
        with bind_trace(trace), bind_fields(**fields):
            log = get_logger()
            start = time.monotonic()
            text = body.decode("utf-8", "replace") if isinstance(body, (bytes, bytearray)) else body
            log.info("%s|%.3fms|body=%s", self.name, (time.monotonic() - start) * 1000, text)
            try:
                protocol = _decode(self.protocol_type, json.loads(body))
            except (ValueError, TypeError) as exc:
                msg = f"Job:[{self.name}] handle fail, body:[{text}] umarshal fail"
                log.error(msg)
                raise ValueError(msg) from exc
            try:
                if self.handler is None:
                    raise RuntimeError(f"Job {self.name} has no handler")
                return self.handler(protocol)
            except Exception as exc:
                log_panic_stack(exc)
                return None


class KafkaJob(JobWorker):
    backend_type = JobBackendType.KAFKA

    def send(self, body: bytes, key: str = "") -> None:
        job_cfg = config.dynamic_cfg.kafka_job_configs.get(self.name) or KafkaJobConfig()
        get_logger().info(
            "Job %s send to kafka, kafka_name=%s, topic=%s",
            self.name, job_cfg.kafka_name, job_cfg.topic,
        )
        client = get_kafka_client(job_cfg.kafka_name)
        client.send_message(job_cfg.topic, key, body, {KAFKA_JOB_NAME_KEY: self.name})


class RedisJob(JobWorker):
    backend_type = JobBackendType.REDIS

    def send(self, body: bytes, key: str = "") -> None:
        job_cfg = config.dynamic_cfg.redis_job_configs.get(self.name) or RedisJobConfig()
        get_logger().info(
            "Job %s send to redis, redis_name=%s, queue_key=%s",
            self.name, job_cfg.redis_label, job_cfg.queue_key,
        )
        get_redis_client(job_cfg.redis_label).lpush(job_cfg.queue_key, body)


class JobManager:
    """Registry of jobs by name and the entry point for sending them."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobWorker] = {}

    def register_job(self, job: JobWorker) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Register job failed, duplicate name:[{job.name}]")
        self._jobs[job.name] = job

    def get_job(self, name: str) -> JobWorker:
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotFoundError(name) from None

    def send(self, name: str, protocol: Any, key: str = "") -> None:
        """Check ``protocol`` against job ``name``, encode it and enqueue it."""
        job = self.get_job(name)
        job.check_protocol(protocol)
        entity = {"job_name": job.name, "content": _to_jsonable(protocol)}
        body = json.dumps(entity, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        job.send(body, key)

    def all_jobs(self) -> dict[str, JobWorker]:
        return dict(self._jobs)