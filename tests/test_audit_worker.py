"""Audit writer: stream events become user_actions rows."""
import uuid
from unittest.mock import AsyncMock
import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select
from framework.repository.unit_of_work import UnitOfWork
from apps.audit.models import UserAction, UserActionType
from apps.audit.service import UserActionPublisher
import apps.audit.worker as worker_module
from apps.audit.worker import UserActionWorker


class FailingUnitOfWork(UnitOfWork):
    async def save_changes(self) -> int:
        raise OperationalError("INSERT INTO user_actions", {}, Exception("Data too long for column"))


class PendingFirstQueue:
    """Stream stand-in with consumer-group order: unacked messages come back before new ones."""

    def __init__(self):
        self.new = []
        self.pending = {}
        self.dead_letters = []

    def push(self, message_id, payload):
        self.new.append({"message_id": message_id, "payload": payload})

    async def dequeue(self, consumer_name, block_ms=0):
        if self.pending:
            message = next(iter(self.pending.values()))
            message["delivery_count"] += 1
            return message
        if self.new:
            message = dict(self.new.pop(0), delivery_count=1)
            self.pending[message["message_id"]] = message
            return message
        return None

    async def ack(self, message_id):
        return self.pending.pop(message_id, None) is not None

    async def dead_letter(self, message, reason):
        self.dead_letters.append((message, reason))
        return await self.ack(message["message_id"])


@pytest.fixture
def queue():
    queue = AsyncMock()
    queue.enqueue.return_value = "1-0"
    return queue


@pytest.fixture
def worker(queue, session_factory) -> UserActionWorker:
    return UserActionWorker(queue, session_factory, consumer_name="writer-test", poll_interval=0)


async def _stored_actions(session_factory):
    async with session_factory() as session:
        return list((await session.exec(select(UserAction))).all())


async def test_published_event_is_persisted(worker, queue, session_factory):
    user_id = uuid.uuid4()
    entity_id = uuid.uuid4()
    publisher = UserActionPublisher(queue)
    await publisher.publish(
        user_id, UserActionType.UPDATE, "CartItem", entity_id=entity_id,
        old_value={"quantity": 1}, new_value={"quantity": 3}, ip_address="10.0.0.7",
    )
    payload = queue.enqueue.call_args.args[0]

    processed = await worker.process_message({"message_id": "1-0", "payload": payload})

    assert processed is True
    queue.ack.assert_awaited_once_with("1-0")
    [action] = await _stored_actions(session_factory)
    assert action.user_id == user_id
    assert action.action == UserActionType.UPDATE
    assert action.entity_id == entity_id
    assert action.entity_name == "CartItem"
    assert action.new_value == '{"quantity": 3}'
    assert action.ip_address == "10.0.0.7"


async def test_malformed_message_is_acked_and_dropped(worker, queue, session_factory):
    processed = await worker.process_message({"message_id": "2-0", "payload": {"entity_name": "CartItem"}})

    assert processed is False
    queue.ack.assert_awaited_once_with("2-0")
    assert await _stored_actions(session_factory) == []


async def test_unreadable_payload_is_dead_lettered(worker, queue, session_factory):
    message = {"message_id": "3-0", "payload": {"action": "Teleport", "entity_name": "CartItem"}}

    processed = await worker.process_message(message)

    assert processed is False
    queue.dead_letter.assert_awaited_once()
    assert queue.dead_letter.call_args.args[0] is message
    assert await _stored_actions(session_factory) == []


async def test_failed_save_is_retried_until_delivery_limit(queue, session_factory, monkeypatch):
    monkeypatch.setattr(worker_module, "UnitOfWork", FailingUnitOfWork)
    worker = UserActionWorker(queue, session_factory, consumer_name="writer-test", max_deliveries=3)
    message = {"message_id": "5-0", "payload": {"action": "Login", "entity_name": "AppUser"}}

    for _ in range(2):
        with pytest.raises(OperationalError):
            await worker.process_message(message)
        queue.ack.assert_not_awaited()
        queue.dead_letter.assert_not_awaited()

    assert await worker.process_message(message) is False
    queue.dead_letter.assert_awaited_once()
    assert "3 times" in queue.dead_letter.call_args.args[1]


async def test_delivery_count_from_stream_counts_towards_limit(queue, session_factory, monkeypatch):
    monkeypatch.setattr(worker_module, "UnitOfWork", FailingUnitOfWork)
    worker = UserActionWorker(queue, session_factory, consumer_name="writer-test", max_deliveries=3)
    # Redelivered after a restart: this process has not seen it fail yet
    message = {"message_id": "6-0", "payload": {"action": "Login", "entity_name": "AppUser"}, "delivery_count": 3}

    assert await worker.process_message(message) is False
    queue.dead_letter.assert_awaited_once()


async def test_bad_event_does_not_block_later_events(session_factory):
    stream = PendingFirstQueue()
    stream.push("1-0", {"action": "Teleport", "entity_name": "CartItem"})
    stream.push("2-0", {"action": "Login", "entity_name": "AppUser", "user_id": str(uuid.uuid4())})
    worker = UserActionWorker(stream, session_factory, consumer_name="writer-test", poll_interval=0)

    for _ in range(5):
        await worker.run_once()

    [action] = await _stored_actions(session_factory)
    assert action.action == UserActionType.LOGIN
    assert stream.pending == {}
    assert [message["message_id"] for message, _ in stream.dead_letters] == ["1-0"]


async def test_run_once(worker, queue):
    queue.dequeue.return_value = None
    assert await worker.run_once() is False

    queue.dequeue.return_value = {"message_id": "4-0", "payload": {"action": "Login", "entity_name": "AppUser"}}
    assert await worker.run_once() is True

    queue.dequeue.side_effect = ConnectionError("redis down")
    assert await worker.run_once() is False


async def test_start_and_stop(worker, queue):
    queue.dequeue.return_value = None

    task = worker.start()
    await worker.stop()

    assert worker.running is False
    assert task.done()
