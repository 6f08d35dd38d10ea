"""Audit writer: consume user-action events from the stream and persist them."""

import asyncio
from typing import Dict, Optional
from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.logging.logger import get_logger
from framework.queue.action_queue import ActionQueue
from framework.repository.unit_of_work import UnitOfWork
from .models import UserAction
from .service import action_from_payload

logger = get_logger("audit_worker")


class UserActionWorker:
    """Consumer half of the background audit log; owns its sessions and lifetime."""

    def __init__(
        self,
        queue: ActionQueue,
        session_factory,
        consumer_name: Optional[str] = None,
        poll_interval: int = 1,
        max_deliveries: Optional[int] = None
    ):
        """session_factory: async_sessionmaker (one session per message)."""
        self.queue = queue
        self.session_factory = session_factory
        self.consumer_name = consumer_name or settings.AUDIT_WORKER_NAME
        self.poll_interval = poll_interval
        self.max_deliveries = max_deliveries or settings.AUDIT_MAX_DELIVERIES
        self.running = False
        self._task: Optional[asyncio.Task] = None
        # Failed saves per message id seen by this process
        self._failures: Dict[str, int] = {}

    async def process_message(self, message: dict) -> bool:
        """
        Save one event, then ack. A failed save leaves the message pending so it
        is retried; after ``max_deliveries`` attempts it goes to the dead-letter
        stream. Payloads that cannot become a UserAction are dead-lettered at once.
        """
        message_id = message["message_id"]
        payload = message.get("payload") or {}
        if not payload.get("action") or not payload.get("entity_name"):
            logger.warning(f"Discarding malformed audit message {message_id}")
            await self.queue.ack(message_id)
            return False

        try:
            user_action = action_from_payload(payload)
        except (ValueError, KeyError, TypeError) as e:
            await self.queue.dead_letter(message, f"Unreadable payload: {str(e)}")
            return False

        async with self.session_factory() as session:
            uow = UnitOfWork(session=session)
            try:
                await uow.repository(UserAction).add(user_action)
                await uow.save_changes()
            except Exception as e:
                await uow.rollback()
                attempts = max(message.get("delivery_count", 1), self._failures.get(message_id, 0) + 1)
                if attempts >= self.max_deliveries:
                    self._failures.pop(message_id, None)
                    await self.queue.dead_letter(message, f"Save failed {attempts} times: {str(e)}")
                    return False
                self._failures[message_id] = attempts
                logger.error(
                    f"Failed to persist audit message {message_id} "
                    f"(attempt {attempts}/{self.max_deliveries}): {str(e)}"
                )
                raise

        self._failures.pop(message_id, None)
        await self.queue.ack(message_id)
        logger.debug(f"Audit message {message_id} persisted")
        return True

    async def run_once(self) -> bool:
        """Consume at most one message. Returns True when one was processed."""
        try:
            message = await self.queue.dequeue(
                consumer_name=self.consumer_name,
                block_ms=self.poll_interval * 1000
            )
            if not message:
                return False
            return await self.process_message(message)
        except Exception as e:
            logger.error(f"Error in audit worker loop: {str(e)}")
            await asyncio.sleep(self.poll_interval)
            return False

    async def run(self):
        """Run worker main loop."""
        self.running = True
        logger.info(f"Audit worker {self.consumer_name} started")
        while self.running:
            await self.run_once()
        logger.info(f"Audit worker {self.consumer_name} stopped")

    def start(self) -> asyncio.Task:
        """Run in the background of the current event loop (app lifespan)."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


async def create_worker(consumer_name: Optional[str] = None) -> UserActionWorker:
    """Connect Redis, ensure the consumer group and build a worker on the shared engine."""
    manager = DatabaseManager.get_instance()
    await manager.redis.connect()
    queue = ActionQueue(manager.redis.get_client())
    await queue.initialize()
    return UserActionWorker(queue, manager.sql.session_factory, consumer_name=consumer_name)


async def main():
    """Standalone audit writer process."""
    import argparse
    from framework.logging.logger import LogConfig

    parser = argparse.ArgumentParser(description="User action audit writer")
    parser.add_argument(
        "--consumer-name",
        type=str,
        default=settings.AUDIT_WORKER_NAME,
        help="Consumer name for this writer instance"
    )
    args = parser.parse_args()

    LogConfig.setup_worker_logging(args.consumer_name)

    import apps.models  # noqa: F401  register tables

    worker = await create_worker(args.consumer_name)
    try:
        await worker.run()
    finally:
        manager = DatabaseManager.get_instance()
        await manager.redis.disconnect()
        await manager.sql.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
