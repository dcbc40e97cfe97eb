"""Response codes shared by the HTTP gateway and the domain errors."""

SUCCESS = 0
DUPLICATE = 1

UNEXPECT = -100000
JSON_ENCODE_FAIL = -100001
JSON_DECODE_FAIL = -100002
PROTOCOL_DECODE_FAIL = -100003
READ_DB_FAIL = -100004
WRITE_DB_FAIL = -100005
GENERATE_ID_FAIL = -100006
INVALID_JOB_PROTOCOL = -100007
SEND_KAFKA_FAIL = -100008

RECORD_EXISTED = -200000

REQUEST_ID_HEADER = "X-Request-Id"


def is_warning(code: int) -> bool:
    """Return True for codes that mark a warning rather than a failure."""
    return code > SUCCESS