# roomcast/services/disconnect_reaper.py
"""
Grace-period purge of users whose connection dropped.

State per user:

    Connected --transport loss--> Disconnected(pending) --+--> Connected (reconnect, token cancelled)
                                                          +--> Reaped    (timer fired, binding still stale)

Each pending purge holds a token: the asyncio task sleeping the grace delay.
Cancelling the task is the only way a reconnect stops a purge, and the purge
callback re-checks the user's binding anyway, so a timer that has already
fired cannot remove a user that came back in the meantime.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)

PurgeCallback = Callable[[str, str], Awaitable[None]]


class PurgeReason(str, Enum):
    # Transport loss not followed by a reconnect within the grace period
    TRANSIENT = "grace_expired"
    # Explicit logout, no grace period
    FATAL = "logout"


@dataclass
class PendingPurge:
    user_id: str
    connection_id: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    task: Optional[asyncio.Task] = None


class DisconnectReaper:
    def __init__(self, grace_period: float, on_expire: PurgeCallback) -> None:
        self.grace_period = grace_period
        self.pending: Dict[str, PendingPurge] = {}
        self._on_expire = on_expire

    def schedule(self, user_id: str, connection_id: str) -> PendingPurge:
        """Start the grace timer for ``user_id``, replacing an older one."""
        self.cancel(user_id)
        entry = PendingPurge(user_id=user_id, connection_id=connection_id)
        entry.task = asyncio.create_task(self._expire(entry), name=f"reap-{user_id}")
        self.pending[user_id] = entry
        logger.info(
            "⏳ Purge of %s scheduled in %.1fs (connection %s)",
            user_id, self.grace_period, connection_id,
        )
        return entry

    def cancel(self, user_id: str) -> bool:
        entry = self.pending.pop(user_id, None)
        if entry is None:
            return False
        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        logger.info("↺ Purge of %s cancelled", user_id)
        return True

    def is_pending(self, user_id: str) -> bool:
        return user_id in self.pending

    def shutdown(self) -> None:
        for user_id in list(self.pending):
            self.cancel(user_id)

    def __len__(self) -> int:
        return len(self.pending)

    async def _expire(self, entry: PendingPurge) -> None:
        await asyncio.sleep(self.grace_period)

        current = self.pending.get(entry.user_id)
        if current is None or current.token != entry.token:
            return
        del self.pending[entry.user_id]

        try:
            await self._on_expire(entry.user_id, entry.connection_id)
        except Exception:
            logger.exception("Purge of %s failed", entry.user_id)
