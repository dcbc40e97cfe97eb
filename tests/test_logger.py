import io
import json
import logging
import sys
from datetime import datetime

import pytest

from svcdemo.logger import (
    NORMAL_FORMAT,
    REQUEST_ID_KEY,
    TRACE_ID_KEY,
    FieldsFormatter,
    bind_fields,
    configure,
    current_fields,
    get_logger,
)


@pytest.fixture
def stream():
    buf = io.StringIO()
    configure(buf)
    yield buf
    configure(sys.stdout)


def test_line_layout(stream):
    get_logger().info("hello %s", "world")
    line = stream.getvalue().strip()
    ts, level, caller, message = line.split("|")
    datetime.strptime(ts, NORMAL_FORMAT)
    assert level == "info"
    assert caller.startswith("test_logger.py:")
    assert message == "hello world"


def test_bound_fields_are_appended(stream):
    with bind_fields(**{REQUEST_ID_KEY: "abc", TRACE_ID_KEY: "t1"}):
        get_logger().warning("careful")
    parts = stream.getvalue().strip().split("|")
    assert parts[1] == "warn"
    assert parts[3] == "careful"
    assert json.loads(parts[4]) == {REQUEST_ID_KEY: "abc", TRACE_ID_KEY: "t1"}


def test_bind_fields_nesting_and_restore():
    assert current_fields() == {}
    with bind_fields(a=1) as outer:
        assert outer == {"a": 1}
        with bind_fields(b=2, a=3):
            assert current_fields() == {"a": 3, "b": 2}
        assert current_fields() == {"a": 1}
    assert current_fields() == {}


def test_formatter_prefers_record_fields():
    record = logging.LogRecord("n", logging.ERROR, "/x/f.py", 3, "boom %d", (7,), None)
    record.fields = {"k": "v"}
    with bind_fields(other="ignored"):
        parts = FieldsFormatter().format(record).split("|")
    assert parts[1] == "error"
    assert parts[2] == "f.py:3"
    assert parts[3] == "boom 7"
    assert json.loads(parts[4]) == {"k": "v"}


def test_no_fields_means_no_trailing_section(stream):
    get_logger().debug("plain")
    parts = stream.getvalue().strip().split("|")
    assert len(parts) == 4
    assert parts[3] == "plain"


def test_exception_text_is_included(stream):
    try:
        raise KeyError("missing")
    except KeyError:
        get_logger().exception("failed")
    output = stream.getvalue()
    assert "|failed" in output
    assert "KeyError" in output