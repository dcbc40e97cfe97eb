"""Configuration models and the process-wide configuration objects."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from typing import Any

DEFAULT_DB_LABEL = "default"

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """Parse a duration such as ``"1h30m"`` into seconds.

    Integers are read as nanoseconds; ``None`` is zero.
    """
    if value is None:
        return 0.0
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return value / 1_000_000_000
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f'invalid duration "{value}"')

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise ValueError(f'invalid duration "{value}"')
        total += Fraction(match.group(1)) * _UNIT_NANOS[match.group(2)]
        pos = match.end()
    return sign * int(total) / 1_000_000_000


def _as_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"cannot load {what} from {type(data).__name__}")
    return data


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return [_as_str(item) for item in value]


@dataclass
class EtcdConfig:
    endpoints: list[str] = field(default_factory=list)
    dial_timeout: float = 0.0
    read_timeout: float = 0.0

    def update(self, data: Any) -> EtcdConfig:
        data = _as_mapping(data, "etcd config")
        if "endpoints" in data:
            self.endpoints = _as_str_list(data["endpoints"])
        if "dial_timeout" in data:
            self.dial_timeout = parse_duration(data["dial_timeout"])
        if "read_timeout" in data:
            self.read_timeout = parse_duration(data["read_timeout"])
        return self

    def effective_read_timeout(self) -> float:
        """Read timeout in seconds, two seconds when unset."""
        return self.read_timeout or 2.0


@dataclass
class DBConfig:
    dsn: str = ""


@dataclass
class DBCluster:
    label: str = ""
    master: DBConfig = field(default_factory=DBConfig)
    slaves: list[DBConfig] = field(default_factory=list)

    def update(self, data: Any) -> DBCluster:
        data = _as_mapping(data, "db cluster")
        if "label" in data:
            self.label = _as_str(data["label"])
        if "master" in data:
            master = _as_mapping(data["master"], "db config")
            if "dsn" in master:
                self.master.dsn = _as_str(master["dsn"])
        if "slaves" in data:
            slaves = data["slaves"] or []
            self.slaves = [
                DBConfig(dsn=_as_str(_as_mapping(item, "db config").get("dsn")))
                for item in slaves
            ]
        return self

    def effective_label(self) -> str:
        return self.label or DEFAULT_DB_LABEL


@dataclass
class KafkaJobConfig:
    kafka_name: str = ""
    topic: str = ""
    addr: list[str] = field(default_factory=list)
    consumer_group: str = ""
    producer_timeout: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> KafkaJobConfig:
        data = _as_mapping(data, "kafka job config")
        return cls(
            kafka_name=_as_str(data.get("kafka_name")),
            topic=_as_str(data.get("topic")),
            addr=_as_str_list(data.get("addr")),
            consumer_group=_as_str(data.get("consumer_group")),
            producer_timeout=parse_duration(data.get("producer_timeout")),
        )


@dataclass
class RedisJobConfig:
    redis_label: str = ""
    queue_key: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> RedisJobConfig:
        data = _as_mapping(data, "redis job config")
        return cls(
            redis_label=_as_str(data.get("redis_label")),
            queue_key=_as_str(data.get("queue_key")),
        )


@dataclass
class RedisConfig:
    label: str = ""
    addr: str = ""
    username: str = ""
    password: str = ""
    db: int = 0
    dial_timeout: float = 0.0
    read_timeout: float = 0.0
    write_timeout: float = 0.0
    min_idle_conns: int = 0
    max_conn_age: float = 0.0
    idle_timeout: float = 0.0
    pool_timeout: float = 0.0


@dataclass
class DynamicConfig:
    identify_code: str = ""
    default_db: DBCluster = field(default_factory=DBCluster)
    kafka_job_configs: dict[str, KafkaJobConfig] = field(default_factory=dict)
    redis_job_configs: dict[str, RedisJobConfig] = field(default_factory=dict)

    def update(self, data: Any) -> DynamicConfig:
        data = _as_mapping(data, "dynamic config")
        if "identify_code" in data:
            self.identify_code = _as_str(data["identify_code"])
        if "default_db" in data:
            self.default_db.update(data["default_db"])
        if "kafka_job_configs" in data:
            jobs = data["kafka_job_configs"]
            if jobs is None:
                self.kafka_job_configs = {}
            else:
                for name, cfg in _as_mapping(jobs, "kafka job configs").items():
                    self.kafka_job_configs[str(name)] = KafkaJobConfig.from_dict(cfg)
        if "redis_job_configs" in data:
            jobs = data["redis_job_configs"]
            if jobs is None:
                self.redis_job_configs = {}
            else:
                for name, cfg in _as_mapping(jobs, "redis job configs").items():
                    self.redis_job_configs[str(name)] = RedisJobConfig.from_dict(cfg)
        return self


@dataclass
class LocalFileConfig:
    etcd: EtcdConfig = field(default_factory=EtcdConfig)
    dym_cfg_key: str = ""

    def update(self, data: Any) -> LocalFileConfig:
        data = _as_mapping(data, "local file config")
        if "etcd" in data:
            self.etcd.update(data["etcd"])
        if "dym_cfg_key" in data:
            self.dym_cfg_key = _as_str(data["dym_cfg_key"])
        return self


dynamic_cfg = DynamicConfig()
local_file_cfg = LocalFileConfig()