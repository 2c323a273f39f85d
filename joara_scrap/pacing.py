import asyncio
import logging
from typing import Awaitable, Callable

from joara_scrap.config import Settings

logger = logging.getLogger(__name__)


class Pacer:
    """Sleeps between chapters, between books, and every N chapters.

    The processed-chapter count runs across the whole batch, so a cooldown
    every 5 chapters fires on the 5th chapter overall even if it spans books.
    """

    def __init__(self, settings: Settings, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.settings = settings
        self.sleep = sleep
        self.processed = 0

    async def after_unit(self) -> None:
        self.processed += 1
        s = self.settings
        if s.cooldown_enabled and self.processed % s.cooldown_every == 0:
            logger.info(f"[cooldown] {self.processed} chapters processed; cooling down for {s.cooldown_minutes} min")
            await self.sleep(s.cooldown_minutes * 60)
        if s.wait_time_ms > 0:
            logger.info(f"[wait] {s.wait_time_ms / 1000:g}s before the next chapter")
            await self.sleep(s.wait_time_ms / 1000)

    async def after_work(self, remaining: int) -> None:
        if remaining > 0 and self.settings.book_wait_ms > 0:
            logger.info(f"[wait] {self.settings.book_wait_ms / 1000:g}s before the next book")
            await self.sleep(self.settings.book_wait_ms / 1000)
