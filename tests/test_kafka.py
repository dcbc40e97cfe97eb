import pytest

from svcdemo.errors import SEND_KAFKA_ERROR, error_is
from svcdemo.kafka import KafkaClient, MockProducer


def test_send_different_keys_spreads_over_partitions():
    producer = MockProducer(4)
    client = KafkaClient(producer)
    for _ in range(100):
        producer.expect_send_and_succeed()
    partitions = set()
    for i in range(100):
        partition, _ = client.send_message("test_topic", f"key_{i}", b"test")
        partitions.add(partition)
    assert len(partitions) == 4
    assert partitions <= set(range(4))


def test_send_same_key_keeps_partition():
    producer = MockProducer()
    client = KafkaClient(producer)
    partitions = set()
    for _ in range(20):
        producer.expect_send_and_succeed()
        partition, _ = client.send_message("test_topic", "key", b"test2")
        partitions.add(partition)
    assert len(partitions) == 1


def test_send_right_value_and_headers():
    producer = MockProducer()
    client = KafkaClient(producer)
    seen = []
    producer.expect_send_with_checker_and_succeed(seen.append)
    client.send_message("test_topic", "key", b"test2", {"request_id": "test123"})
    assert len(seen) == 1
    message = seen[0]
    assert message.value == b"test2"
    assert message.topic == "test_topic"
    assert message.key == "key"
    assert message.headers == [(b"request_id", b"test123")]


def test_send_returns_increasing_offsets():
    producer = MockProducer()
    client = KafkaClient(producer)
    producer.expect_send_and_succeed()
    producer.expect_send_and_succeed()
    _, first = client.send_message("t", "a", b"1")
    _, second = client.send_message("t", "a", b"2")
    assert second > first


def test_send_message_fail():
    producer = MockProducer()
    client = KafkaClient(producer)
    failure = RuntimeError("mock failed")
    producer.expect_send_and_fail(failure)
    with pytest.raises(Exception) as info:
        client.send_message("test_topic", "key", b"test2", {"request_id": "test123"})
    assert error_is(info.value, SEND_KAFKA_ERROR)
    assert error_is(info.value, failure)
    assert str(info.value) == "Send Kafka Fail, cause:[mock failed]"


def test_checker_rejection_fails_send():
    producer = MockProducer()
    client = KafkaClient(producer)

    def reject(message):
        raise ValueError("Send wrong message body")

    producer.expect_send_with_checker_and_succeed(reject)
    with pytest.raises(Exception) as info:
        client.send_message("t", "k", b"x")
    assert error_is(info.value, SEND_KAFKA_ERROR)
    assert error_is(info.value, ValueError)


def test_send_without_expectation_fails():
    client = KafkaClient(MockProducer())
    with pytest.raises(Exception) as info:
        client.send_message("t", "k", b"x")
    assert error_is(info.value, SEND_KAFKA_ERROR)
    assert error_is(info.value, RuntimeError)


def test_invalid_partition_count():
    with pytest.raises(ValueError):
        MockProducer(0)