"""
User action auditing.

Two paths write ``user_actions`` rows:

- ``record_user_action`` stages a row on the caller's unit of work, so it
  commits or rolls back together with the mutation it describes.
- ``UserActionPublisher`` hands the event to the Redis Stream; the audit
  worker persists it with its own session. Publishing never fails a request.
"""

import json
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.entity import utc_now
from framework.logging.logger import get_logger
from framework.queue.action_queue import ActionQueue
from framework.repository.unit_of_work import UnitOfWork
from .models import UserAction, UserActionType

logger = get_logger("audit_service")


def to_snapshot(value: Any) -> Optional[str]:
    """JSON snapshot for old/new values (models are dumped, other values passed through)."""
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, default=str)


async def record_user_action(
    uow: UnitOfWork,
    user_id: Optional[uuid.UUID],
    action: UserActionType,
    entity_name: str,
    entity_id: Optional[uuid.UUID] = None,
    old_value: Any = None,
    new_value: Any = None,
    ip_address: Optional[str] = None,
    detail: Optional[str] = None,
) -> UserAction:
    """Stage an audit row in the caller's transaction."""
    user_action = UserAction(
        user_id=user_id,
        action=action,
        entity_id=entity_id,
        entity_name=entity_name,
        old_value=to_snapshot(old_value),
        new_value=to_snapshot(new_value),
        ip_address=ip_address,
        action_detail=detail,
    )
    user_action.mark_created(user_id)
    await uow.repository(UserAction).add(user_action)
    return user_action


def action_from_payload(payload: Dict[str, Any]) -> UserAction:
    """Rebuild a UserAction from a stream payload (see UserActionPublisher.publish)."""
    user_id = uuid.UUID(payload["user_id"]) if payload.get("user_id") else None
    user_action = UserAction(
        user_id=user_id,
        action=UserActionType(payload["action"]),
        entity_id=uuid.UUID(payload["entity_id"]) if payload.get("entity_id") else None,
        entity_name=payload["entity_name"],
        old_value=payload.get("old_value"),
        new_value=payload.get("new_value"),
        ip_address=payload.get("ip_address"),
        action_detail=payload.get("action_detail"),
    )
    user_action.mark_created(user_id)
    if payload.get("occurred_at"):
        user_action.created_at = datetime.fromisoformat(payload["occurred_at"])
    return user_action


class UserActionPublisher:
    """Producer half of the background audit log."""

    def __init__(self, queue: Optional[ActionQueue] = None):
        self.queue = queue

    async def publish(
        self,
        user_id: Optional[uuid.UUID],
        action: UserActionType,
        entity_name: str,
        entity_id: Optional[uuid.UUID] = None,
        old_value: Any = None,
        new_value: Any = None,
        ip_address: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> bool:
        """Returns False when the event was dropped; callers ignore it."""
        if self.queue is None:
            logger.debug(f"Audit stream not configured, dropping {action.value} {entity_name}")
            return False

        payload = {
            "user_id": str(user_id) if user_id else None,
            "action": action.value,
            "entity_id": str(entity_id) if entity_id else None,
            "entity_name": entity_name,
            "old_value": to_snapshot(old_value),
            "new_value": to_snapshot(new_value),
            "ip_address": ip_address,
            "action_detail": detail,
            "occurred_at": utc_now().isoformat(),
        }
        try:
            message_id = await self.queue.enqueue(payload)
        except Exception as e:
            logger.warning(f"Failed to publish user action {action.value} on {entity_name}: {str(e)}")
            return False
        if message_id is None:
            logger.warning(f"User action {action.value} on {entity_name} {entity_id} was not published")
            return False
        return True


_action_queue: Optional[ActionQueue] = None
# monotonic time before which no reconnect is attempted
_retry_after: float = 0.0


async def get_action_publisher() -> UserActionPublisher:
    """
    Dependency: publisher bound to the shared audit stream. While Redis is
    unreachable the publisher is a no-op and reconnects are spaced out by
    AUDIT_RECONNECT_SECONDS, so requests never queue up behind a dead host.
    """
    global _action_queue, _retry_after
    if _action_queue is None and time.monotonic() >= _retry_after:
        manager = DatabaseManager.get_instance()
        try:
            if not manager.redis.get_client():
                await manager.redis.connect()
            queue = ActionQueue(manager.redis.get_client())
            await queue.initialize()
            _action_queue = queue
        except Exception as e:
            _retry_after = time.monotonic() + settings.AUDIT_RECONNECT_SECONDS
            logger.warning(
                f"Audit stream unavailable, user actions will not be published "
                f"for {settings.AUDIT_RECONNECT_SECONDS}s: {str(e)}"
            )
    return UserActionPublisher(_action_queue)
