import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from joara_scrap.challenge import ChallengeHandler
from joara_scrap.config import (
    READY_SELECTOR,
    SETTLE_DELAY,
    UNIT_ATTEMPTS,
    UNIT_TEXT_SELECTOR,
    WAIT_TIMEOUT,
)
from joara_scrap.errors import ChallengeResolutionFailed
from joara_scrap.extract import html_to_text
from joara_scrap.models import ContentUnit, FetchResult, RetryBudget
from joara_scrap.pacing import Pacer
from joara_scrap.session import RenderSession, close_quietly

logger = logging.getLogger(__name__)


class FetchLoop:
    """Fetches chapters one by one, best effort.

    A chapter gets ``attempts`` tries; one that never yields text is logged and
    left out, and the loop moves on. Only a fatal challenge failure stops it.
    """

    def __init__(self, sessions, challenge: ChallengeHandler, pacer: Pacer,
                 attempts: int = UNIT_ATTEMPTS, settle_delay: float = SETTLE_DELAY,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.sessions = sessions
        self.challenge = challenge
        self.pacer = pacer
        self.attempts = attempts
        self.settle_delay = settle_delay
        self.sleep = sleep

    async def fetch_all(self, session: RenderSession, units: Sequence[ContentUnit]
                        ) -> Tuple[RenderSession, Tuple[FetchResult, ...]]:
        buffer: List[FetchResult] = []
        skipped = 0
        try:
            for unit in units:
                session, text = await self.fetch_unit(session, unit)
                if text:
                    buffer.append(FetchResult(unit=unit, text=text))
                else:
                    skipped += 1
                await self.pacer.after_unit()
        except BaseException:
            await close_quietly(session)
            raise
        logger.info(f"[ok] fetched {len(buffer)}/{len(units)} chapters ({skipped} skipped)")
        return session, tuple(buffer)

    async def fetch_unit(self, session: RenderSession, unit: ContentUnit
                         ) -> Tuple[RenderSession, Optional[str]]:
        """Try one chapter; returns the (possibly replaced) session and its text or None."""
        logger.info(f"[open] {unit.label} -> {unit.url}")
        budget = RetryBudget("unit", self.attempts)
        while not budget.exhausted:
            try:
                if session.is_closed:
                    logger.info("[open] session is gone; starting a new one")
                    session = await self.sessions.open_headless()

                await self._load(session, unit.url)
                if await self.challenge.is_challenged(session):
                    session = await self.challenge.resolve(session, unit.url)
                    # the solved challenge dropped the original navigation
                    await self._load(session, unit.url)

                await session.wait_for(UNIT_TEXT_SELECTOR, timeout=WAIT_TIMEOUT)
                text = html_to_text(await session.html_of(UNIT_TEXT_SELECTOR))
                if text:
                    return session, text
                n = budget.spend()
                logger.warning(f"[open] {unit.label}: empty text (attempt {n}/{budget.limit})")
            except ChallengeResolutionFailed:
                raise
            except Exception as e:
                n = budget.spend()
                logger.error(f"[open] {unit.label}: {e} (attempt {n}/{budget.limit})")
                if not budget.exhausted:
                    await self._reload(session)

        logger.error(f"[skip] {unit.label}: gave up after {budget.limit} attempts")
        return session, None

    async def _load(self, session: RenderSession, url: str) -> None:
        await session.goto(url)
        await session.wait_for(READY_SELECTOR, timeout=WAIT_TIMEOUT)
        await self.sleep(self.settle_delay)

    async def _reload(self, session: RenderSession) -> None:
        if session.is_closed:
            return
        try:
            await session.reload()
        except Exception as e:
            logger.warning(f"[open] reload failed: {e}")
