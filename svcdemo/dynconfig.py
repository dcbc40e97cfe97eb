"""Loading configuration from files and keeping it in step with etcd."""

from __future__ import annotations

import contextlib
import json
import threading
from pathlib import Path
from typing import Any, Protocol

import yaml

from . import config
from .background import safe_go
from .etcd import EVENT_PUT, WatchEvent
from .logger import get_logger

_DECODE_ERRORS = (ValueError, TypeError, yaml.YAMLError)


class _Updatable(Protocol):
    def update(self, data: Any) -> Any: ...


class _ConfigSource(Protocol):
    def get(self, key: str, timeout: float | None) -> bytes: ...

    def watch(self, key: str, handler: Any, stop: threading.Event | None) -> None: ...


def unmarshal_by_suffix(key: str, body: str | bytes | None, target: _Updatable) -> None:
    """Decode ``body`` as JSON or YAML, chosen by the suffix of ``key``, into ``target``."""
    log = get_logger()
    text = ""
    try:
        if isinstance(body, (bytes, bytearray)):
            text = bytes(body).decode("utf-8")
        else:
            text = body or ""
        if key.endswith(".json"):
            log.info("Use json unmarshal, key:[%s]", key)
            data = json.loads(text)
        elif key.endswith((".yaml", ".yml")):
            log.info("Use yaml unmarshal, key:[%s]", key)
            data = yaml.safe_load(text)
        else:
            raise ValueError(f"Key:[{key}] has not support suffix")
        if data is not None:
            target.update(data)
    except _DECODE_ERRORS:
        log.error("Unmarshal yaml fail, key:[%s], body:\n%s", key, text)
        raise
    log.info("Unmarshal key:[%s] to cfg:[%r] success, body:\n%s", key, target, text)


def load_file_config(path: str | Path, target: _Updatable | None = None) -> _Updatable:
    """Read the YAML file at ``path`` into ``target`` (the local file config by default)."""
    target = config.local_file_cfg if target is None else target
    log = get_logger()
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        log.error("Open file:[%s] failed, err:[%s]", path, exc)
        raise
    log.info("Read file content:\n%s", content)
    try:
        data = yaml.safe_load(content)
        if data is not None:
            target.update(data)
    except _DECODE_ERRORS as exc:
        log.error("Yaml unmarchal file:[%s] failed, content=%s, err:[%s]", path, content, exc)
        raise
    log.info("Unmarshal to cfg:[%r]", target)
    return target


def associate_etcd(
    client: _ConfigSource,
    key: str,
    target: _Updatable | None = None,
    read_timeout: float | None = None,
    stop: threading.Event | None = None,
) -> threading.Thread:
    """Load ``key`` into ``target`` now, then reload it on every change until ``stop`` is set."""
    target = config.dynamic_cfg if target is None else target
    if read_timeout is None:
        read_timeout = config.local_file_cfg.etcd.read_timeout
    body = client.get(key, read_timeout)
    unmarshal_by_suffix(key, body, target)

    stop = threading.Event() if stop is None else stop

    def on_event(event: WatchEvent) -> None:
        if event.type == EVENT_PUT:
            with contextlib.suppress(*_DECODE_ERRORS):
                unmarshal_by_suffix(key, event.value, target)

    def follow() -> None:
        while not stop.is_set():
            client.watch(key, on_event, stop)

    return safe_go(follow)