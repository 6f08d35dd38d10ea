import json
from unittest.mock import AsyncMock
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError
from framework.queue.action_queue import ActionQueue

STREAM = "test:user_actions"
GROUP = "test-writers"


@pytest.fixture
def redis_client():
    return AsyncMock()


@pytest.fixture
def queue(redis_client) -> ActionQueue:
    return ActionQueue(redis_client, stream_name=STREAM, consumer_group=GROUP, maxlen=1000)


def stream_reply(message_id: bytes, fields: dict):
    return [[STREAM.encode(), [(message_id, fields)]]]


def test_requires_client():
    with pytest.raises(ValueError):
        ActionQueue(None)


async def test_initialize_tolerates_existing_group(queue, redis_client):
    redis_client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")

    await queue.initialize()

    redis_client.xgroup_create.assert_awaited_once_with(name=STREAM, groupname=GROUP, id="0", mkstream=True)


async def test_enqueue(queue, redis_client):
    redis_client.xadd.return_value = b"1700000000000-0"

    message_id = await queue.enqueue({"action": "Create", "entity_name": "CartItem"})

    assert message_id == "1700000000000-0"
    args, kwargs = redis_client.xadd.call_args
    assert args[0] == STREAM
    assert json.loads(args[1]["payload"]) == {"action": "Create", "entity_name": "CartItem"}
    assert kwargs == {"maxlen": 1000, "approximate": True}


async def test_enqueue_retries_connection_errors(queue, redis_client):
    redis_client.xadd.side_effect = [RedisConnectionError("reset"), b"2-0"]

    assert await queue.enqueue({"action": "Login"}) == "2-0"
    assert redis_client.xadd.await_count == 2


async def test_enqueue_gives_up_without_raising(queue, redis_client):
    redis_client.xadd.side_effect = RuntimeError("boom")

    assert await queue.enqueue({"action": "Login"}) is None
    assert redis_client.xadd.await_count == 1


async def test_dequeue_reads_pending_first(queue, redis_client):
    redis_client.xpending_range.return_value = [
        {"message_id": "1-0", "consumer": "writer-1", "time_since_delivered": 10, "times_delivered": 4}
    ]
    redis_client.xreadgroup.return_value = stream_reply(
        b"1-0", {b"payload": b'{"action": "Create"}', b"enqueued_at": b"2026-01-01T00:00:00+00:00"}
    )

    message = await queue.dequeue("writer-1", block_ms=10)

    assert message == {
        "message_id": "1-0",
        "payload": {"action": "Create"},
        "enqueued_at": "2026-01-01T00:00:00+00:00",
        "delivery_count": 4,
    }
    redis_client.xreadgroup.assert_awaited_once()
    assert redis_client.xpending_range.call_args.kwargs["min"] == "1-0"
    assert redis_client.xreadgroup.call_args.kwargs["streams"] == {STREAM: "0"}


async def test_dequeue_then_new_messages(queue, redis_client):
    redis_client.xreadgroup.side_effect = [
        [[STREAM.encode(), []]],
        stream_reply(b"5-0", {b"payload": b'{"action": "Update"}'}),
    ]

    message = await queue.dequeue("writer-1", block_ms=10)

    assert message["message_id"] == "5-0"
    assert message["delivery_count"] == 1
    assert redis_client.xreadgroup.call_args.kwargs["streams"] == {STREAM: ">"}
    redis_client.xpending_range.assert_not_awaited()


async def test_dequeue_claims_idle_messages_of_other_consumers(queue, redis_client):
    redis_client.xreadgroup.return_value = []
    redis_client.xpending_range.return_value = [
        {"message_id": b"3-0", "consumer": b"writer-1", "time_since_delivered": 10 ** 7},
        {"message_id": b"4-0", "consumer": b"writer-2", "time_since_delivered": 10},
        {"message_id": b"7-0", "consumer": b"writer-2", "time_since_delivered": 10 ** 7, "times_delivered": 2},
    ]
    redis_client.xclaim.return_value = [(b"7-0", {b"payload": b'{"action": "Delete"}'})]

    message = await queue.dequeue("writer-1", block_ms=10)

    assert message["message_id"] == "7-0"
    assert message["payload"] == {"action": "Delete"}
    assert message["delivery_count"] == 3
    assert redis_client.xclaim.call_args.kwargs["message_ids"] == ["7-0"]


async def test_dequeue_nothing_to_do(queue, redis_client):
    redis_client.xreadgroup.return_value = []
    redis_client.xpending_range.return_value = []

    assert await queue.dequeue("writer-1", block_ms=10) is None


async def test_malformed_payload_parses_to_empty(queue, redis_client):
    redis_client.xreadgroup.return_value = stream_reply(b"9-0", {b"payload": b"{not json"})
    redis_client.xpending_range.return_value = []

    message = await queue.dequeue("writer-1", block_ms=10)

    assert message["payload"] == {}
    assert message["enqueued_at"] is None


async def test_ack(queue, redis_client):
    assert await queue.ack("1-0") is True
    redis_client.xack.assert_awaited_once_with(STREAM, GROUP, "1-0")

    redis_client.xack.side_effect = RedisConnectionError("gone")
    assert await queue.ack("1-0") is False


async def test_zero_block_does_not_wait_forever(queue, redis_client):
    redis_client.xreadgroup.return_value = []
    redis_client.xpending_range.return_value = []

    await queue.dequeue("writer-1", block_ms=0)

    assert redis_client.xreadgroup.call_args.kwargs["block"] is None


async def test_trimmed_pending_entry_parses_to_empty(queue, redis_client):
    redis_client.xreadgroup.return_value = [[STREAM.encode(), [(b"8-0", None)]]]
    redis_client.xpending_range.return_value = []

    message = await queue.dequeue("writer-1", block_ms=10)

    assert message["message_id"] == "8-0"
    assert message["payload"] == {}


async def test_dead_letter_copies_then_acks(queue, redis_client):
    message = {"message_id": "9-0", "payload": {"action": "Teleport"}, "delivery_count": 5}

    assert await queue.dead_letter(message, "unknown action") is True

    args, _ = redis_client.xadd.call_args
    assert args[0] == f"{STREAM}:dead"
    assert json.loads(args[1]["payload"]) == {"action": "Teleport"}
    assert args[1]["reason"] == "unknown action"
    assert args[1]["delivery_count"] == "5"
    redis_client.xack.assert_awaited_once_with(STREAM, GROUP, "9-0")


async def test_dead_letter_keeps_message_pending_when_redis_fails(queue, redis_client):
    redis_client.xadd.side_effect = RedisConnectionError("gone")

    assert await queue.dead_letter({"message_id": "9-0", "payload": {}}, "boom") is False
    redis_client.xack.assert_not_awaited()
