import asyncio
import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

from joara_scrap.config import (
    CHALLENGE_ATTEMPTS,
    CHALLENGE_COOLDOWN,
    CHALLENGE_MARKER,
    CHALLENGE_RETRY_DELAY,
    CHALLENGE_URL,
    CLOSE_ATTEMPTS,
    CLOSE_RETRY_DELAY,
    PROFILE_DIR,
    WAIT_TIMEOUT,
)
from joara_scrap.errors import ChallengeResolutionFailed, RenderTimeout
from joara_scrap.models import RetryBudget
from joara_scrap.session import RenderSession, close_quietly

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ChallengeState(Enum):
    NORMAL = "normal"
    DETECTED = "detected"
    AWAITING_HUMAN = "awaiting_human"
    RESOLVED = "resolved"
    FAILED = "failed"


class ChallengeHandler:
    """Hands a bot-check screen to a human and comes back with a fresh headless session.

    ``resolve`` takes ownership of the session it is given (it is closed
    straight away) and returns its replacement. Failed attempts are retried
    after a short pause; every ``attempts`` failures the handler cools down for
    ``cooldown`` seconds and starts over. With ``max_cycles`` unset it never
    gives up, since only a person at the keyboard can clear the screen.
    """

    def __init__(self, sessions, profile_dir: Path = PROFILE_DIR,
                 challenge_url: str = CHALLENGE_URL, marker: str = CHALLENGE_MARKER,
                 attempts: int = CHALLENGE_ATTEMPTS, retry_delay: float = CHALLENGE_RETRY_DELAY,
                 cooldown: float = CHALLENGE_COOLDOWN, max_cycles: Optional[int] = None,
                 sleep: Sleep = asyncio.sleep):
        self.sessions = sessions
        self.profile_dir = Path(profile_dir)
        self.challenge_url = challenge_url
        self.marker = marker
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.cooldown = cooldown
        self.max_cycles = max_cycles
        self.sleep = sleep
        self.state = ChallengeState.NORMAL

    async def is_challenged(self, session: RenderSession) -> bool:
        return await session.has(self.marker)

    async def resolve(self, session: RenderSession, target_url: str) -> RenderSession:
        self.state = ChallengeState.DETECTED
        logger.warning(f"[captcha] challenge detected at {session.url} while opening {target_url}; "
                       "switching to a visible browser")
        await close_quietly(session)

        budget = RetryBudget("challenge", self.attempts)
        cycles = 0
        while True:
            interactive: Optional[RenderSession] = None
            fresh: Optional[RenderSession] = None
            try:
                self.state = ChallengeState.DETECTED
                interactive = await self.sessions.open_interactive(self.profile_dir)
                await self._await_human(interactive)

                self.state = ChallengeState.RESOLVED
                logger.info(f"[captcha] solved; returning to {target_url}")
                await interactive.goto(target_url)
                await self._close_with_retry(interactive)
                interactive = None
                shutil.rmtree(self.profile_dir, ignore_errors=True)

                fresh = await self.sessions.open_headless()
                await fresh.goto(target_url)
                self.state = ChallengeState.NORMAL
                return fresh
            except Exception as e:
                await close_quietly(interactive)
                await close_quietly(fresh)
                n = budget.spend()
                logger.error(f"[captcha] attempt {n}/{budget.limit} failed: {e}")
                if not budget.exhausted:
                    await self.sleep(self.retry_delay)
                    continue
                cycles += 1
                if self.max_cycles and cycles >= self.max_cycles:
                    self.state = ChallengeState.FAILED
                    raise ChallengeResolutionFailed(
                        f"challenge at {target_url} unresolved after {cycles} cycle(s)"
                    ) from e
                logger.error(f"[captcha] giving it {self.cooldown / 60:g} min before trying again")
                await self.sleep(self.cooldown)
                budget.reset()

    async def _await_human(self, interactive: RenderSession) -> None:
        await interactive.goto(self.challenge_url)
        logger.info("[captcha] waiting for the challenge to load…")
        try:
            await interactive.wait_for(self.marker, timeout=WAIT_TIMEOUT)
        except RenderTimeout:
            logger.error(f"[captcha] challenge never appeared on {self.challenge_url}; check the window manually")
            raise
        self.state = ChallengeState.AWAITING_HUMAN
        logger.warning("[captcha] please solve the challenge in the browser window…")
        await interactive.wait_until_gone(self.marker)

    async def _close_with_retry(self, interactive: RenderSession) -> None:
        budget = RetryBudget("close", CLOSE_ATTEMPTS)
        while True:
            try:
                await interactive.close()
                return
            except Exception as e:
                n = budget.spend()
                logger.error(f"[captcha] closing visible browser failed (attempt {n}): {e}")
                if budget.exhausted:
                    raise
                await self.sleep(CLOSE_RETRY_DELAY)
