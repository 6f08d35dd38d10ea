"""
Audit event stream on Redis Streams.

Features:
- Fire-and-forget producer: publishing never blocks or fails a request
- Reliable consumption: consumer group and PEL, so a restarted writer re-reads
  what it had not acknowledged
- Fault tolerance: XCLAIM for messages left idle by a dead consumer
- Dead letters: events that keep failing are copied to a side stream and acked
"""

import json
import asyncio
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError
from framework.config import settings
from framework.logging.logger import get_logger

logger = get_logger("action_queue")


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


class ActionQueue:
    """
    Redis Stream carrying user-action events:
    1. Producer: handler publishes a JSON payload (XADD)
    2. Consumer: audit writer reads (XREADGROUP) -> saves row -> ACK
    3. Fault tolerance: own PEL first, then new entries, then XCLAIM idle ones
    """

    PENDING_TIMEOUT_MS = 5 * 60 * 1000  # Pending message timeout (5 min)

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_name: Optional[str] = None,
        consumer_group: Optional[str] = None,
        maxlen: Optional[int] = None,
        pending_timeout_ms: Optional[int] = None,
        dead_letter_stream: Optional[str] = None
    ):
        if redis_client is None:
            raise ValueError("redis_client must be provided")
        self.redis = redis_client
        self.stream_name = stream_name or settings.AUDIT_STREAM_NAME
        self.consumer_group = consumer_group or settings.AUDIT_CONSUMER_GROUP
        self.maxlen = maxlen or settings.AUDIT_STREAM_MAXLEN
        self.dead_letter_stream = (
            dead_letter_stream or settings.AUDIT_DEAD_LETTER_STREAM or f"{self.stream_name}:dead"
        )
        if pending_timeout_ms is not None:
            self.PENDING_TIMEOUT_MS = pending_timeout_ms

    async def initialize(self):
        """Create stream and consumer group if they do not exist."""
        max_retries = 3
        for attempt in range(max_retries):
            try:
                await self.redis.xgroup_create(
                    name=self.stream_name,
                    groupname=self.consumer_group,
                    id="0",
                    mkstream=True
                )
                logger.info(f"Created consumer group: {self.consumer_group}")
                return

            except ResponseError as e:
                if "BUSYGROUP" in str(e):
                    logger.debug(f"Consumer group {self.consumer_group} already exists")
                    return
                if attempt == max_retries - 1:
                    raise
                await asyncio.sleep(0.1 * (attempt + 1))

            except RedisConnectionError as e:
                if attempt == max_retries - 1:
                    logger.error(f"Failed to connect to Redis after {max_retries} attempts: {str(e)}")
                    raise
                logger.warning(f"Redis connection error (attempt {attempt + 1}/{max_retries}): {str(e)}")
                await asyncio.sleep(0.5 * (attempt + 1))

    async def enqueue(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Producer: push one event. Returns the stream message id, or None when
        the event could not be published (the caller carries on regardless).
        """
        message_data = {
            "payload": json.dumps(payload, default=str),
            "enqueued_at": datetime.now(timezone.utc).isoformat(),
        }
        max_retries = 3
        for attempt in range(max_retries):
            try:
                message_id = await self.redis.xadd(
                    self.stream_name,
                    message_data,
                    maxlen=self.maxlen,
                    approximate=True
                )
                message_id = _text(message_id)
                logger.debug(f"User action enqueued | Message ID: {message_id}")
                return message_id

            except RedisConnectionError as e:
                if attempt == max_retries - 1:
                    logger.error(f"Failed to enqueue user action after {max_retries} attempts: {str(e)}")
                    return None
                logger.warning(f"Redis connection error while enqueuing (attempt {attempt + 1}/{max_retries}): {str(e)}")
                await asyncio.sleep(0.5 * (attempt + 1))

            except Exception as e:
                logger.error(f"Failed to enqueue user action: {str(e)}")
                return None

        return None

    async def dequeue(
        self,
        consumer_name: str,
        block_ms: int = 5000
    ) -> Optional[Dict[str, Any]]:
        """
        Consumer: read one message. Own PEL first (recovery), then new messages,
        then idle messages of other consumers. Returns None when there is nothing to do.
        ``delivery_count`` tells the consumer how often the message was handed out.
        """
        # Step 1: PEL (unacknowledged after a restart)
        pel_messages = await self.redis.xreadgroup(
            groupname=self.consumer_group,
            consumername=consumer_name,
            streams={self.stream_name: "0"},
            count=1
        )
        parsed = self._first_message(pel_messages)
        if parsed:
            parsed["delivery_count"] = await self._delivery_count(parsed["message_id"])
            logger.info(f"Retrieved PEL message {parsed['message_id']} for consumer {consumer_name}")
            return parsed

        # Step 2: new messages
        new_messages = await self.redis.xreadgroup(
            groupname=self.consumer_group,
            consumername=consumer_name,
            streams={self.stream_name: ">"},
            count=1,
            # BLOCK 0 would wait forever
            block=block_ms or None
        )
        parsed = self._first_message(new_messages)
        if parsed:
            return parsed

        # Step 3: claim idle messages from other consumers
        return await self._claim_stuck_messages(consumer_name)

    async def _claim_stuck_messages(self, consumer_name: str) -> Optional[Dict[str, Any]]:
        """Claim timeout messages from other consumers (XCLAIM)."""
        all_pending = await self.redis.xpending_range(
            self.stream_name,
            self.consumer_group,
            min="-",
            max="+",
            count=100
        )
        if not all_pending:
            return None

        for pending_msg in all_pending:
            idle_ms = pending_msg.get("time_since_delivered", 0)
            if idle_ms < self.PENDING_TIMEOUT_MS:
                continue

            original_consumer = _text(pending_msg.get("consumer", ""))
            if original_consumer == consumer_name:
                continue

            pending_msg_id = _text(pending_msg["message_id"])
            try:
                claimed_messages = await self.redis.xclaim(
                    name=self.stream_name,
                    groupname=self.consumer_group,
                    consumername=consumer_name,
                    min_idle_time=self.PENDING_TIMEOUT_MS,
                    message_ids=[pending_msg_id]
                )
            except ResponseError as e:
                logger.warning(f"Failed to claim message {pending_msg_id}: {str(e)}")
                continue

            if claimed_messages:
                _, msg_data = claimed_messages[0]
                parsed = self._parse_message(pending_msg_id, msg_data)
                parsed["delivery_count"] = pending_msg.get("times_delivered", 0) + 1
                logger.info(
                    f"Claimed stuck message {parsed['message_id']} "
                    f"from {original_consumer} to {consumer_name}, idle_time: {idle_ms}ms"
                )
                return parsed

        return None

    async def _delivery_count(self, message_id: str) -> int:
        """Times a pending message has been delivered (1 if Redis no longer lists it)."""
        entries = await self.redis.xpending_range(
            self.stream_name,
            self.consumer_group,
            min=message_id,
            max=message_id,
            count=1
        )
        if not entries:
            return 1
        return entries[0].get("times_delivered", 1)

    def _first_message(self, response) -> Optional[Dict[str, Any]]:
        if not response or not response[0][1]:
            return None
        _, message_list = response[0]
        message_id, message_data = message_list[0]
        return self._parse_message(message_id, message_data)

    def _parse_message(self, message_id, message_data: dict) -> Dict[str, Any]:
        """Parse Redis Stream entry into {message_id, payload, enqueued_at, delivery_count}."""
        # Entries trimmed from the stream come back from the PEL without fields
        fields = {_text(key): _text(value) for key, value in (message_data or {}).items()}
        try:
            payload = json.loads(fields.get("payload") or "{}")
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Malformed payload in message {_text(message_id)}")
            payload = {}
        return {
            "message_id": _text(message_id),
            "payload": payload,
            "enqueued_at": fields.get("enqueued_at"),
            "delivery_count": 1,
        }

    async def ack(self, message_id: str) -> bool:
        """Ack message (XACK). Returns True on success."""
        try:
            await self.redis.xack(self.stream_name, self.consumer_group, message_id)
            return True
        except RedisConnectionError as e:
            logger.error(f"Failed to ack message {message_id}: {str(e)}")
            return False

    async def dead_letter(self, message: Dict[str, Any], reason: str) -> bool:
        """Copy a message that cannot be saved to the dead-letter stream, then ack it."""
        entry = {
            "message_id": message["message_id"],
            "payload": json.dumps(message.get("payload") or {}, default=str),
            "reason": reason[:1000],
            "delivery_count": str(message.get("delivery_count", 1)),
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.redis.xadd(self.dead_letter_stream, entry, maxlen=self.maxlen, approximate=True)
        except RedisConnectionError as e:
            logger.error(f"Failed to dead-letter message {message['message_id']}: {str(e)}")
            return False
        logger.error(
            f"Message {message['message_id']} moved to {self.dead_letter_stream} "
            f"after {entry['delivery_count']} delivery(ies): {reason}"
        )
        return await self.ack(message["message_id"])
