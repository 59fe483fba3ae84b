# roomcast/services/idle_room_sweeper.py

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

EvictCallback = Callable[[int], Awaitable[List[str]]]


class IdleRoomSweeper:
    """
    Background loop reclaiming empty rooms older than ``max_age`` seconds.

    Age is measured since the room was created, not since it became empty.
    ``evict`` performs the removal atomically and takes care of the single
    aggregate room-list broadcast; this class only decides when to run it.

    Usage:
        sweeper = IdleRoomSweeper(chat.evict_idle_rooms, interval=300, max_age=3600)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, evict: EvictCallback, interval: float, max_age: float) -> None:
        self.interval = interval
        self.max_age = max_age
        self._evict = evict
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="idle-room-sweeper")
            logger.info("Idle room sweeper started (every %ss, max age %ss)", self.interval, self.max_age)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def sweep_once(self) -> List[str]:
        removed = await self._evict(int(self.max_age * 1000))
        for room_id in removed:
            logger.info("Cleaned up empty room: %s", room_id)
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Idle room sweep failed")
