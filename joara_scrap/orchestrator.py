import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from joara_scrap.challenge import ChallengeHandler
from joara_scrap.config import Settings
from joara_scrap.emitter import Emitter
from joara_scrap.errors import WorkFailed
from joara_scrap.fetcher import FetchLoop
from joara_scrap.models import WorkRequest
from joara_scrap.pacing import Pacer
from joara_scrap.sequencer import ChapterSequencer
from joara_scrap.session import close_quietly

logger = logging.getLogger(__name__)


@dataclass
class WorkOutcome:
    work_id: str
    ok: bool = False
    fetched: int = 0
    skipped: int = 0
    paths: List[Path] = field(default_factory=list)
    error: Optional[str] = None


class WorkOrchestrator:
    """Runs books one after another; one broken book never stops the batch."""

    def __init__(self, sessions, settings: Settings, sequencer: ChapterSequencer,
                 fetcher: FetchLoop, emitter: Emitter, pacer: Pacer):
        self.sessions = sessions
        self.settings = settings
        self.sequencer = sequencer
        self.fetcher = fetcher
        self.emitter = emitter
        self.pacer = pacer

    @classmethod
    def build(cls, sessions, settings: Settings) -> "WorkOrchestrator":
        challenge = ChallengeHandler(sessions, max_cycles=settings.max_challenge_cycles)
        pacer = Pacer(settings)
        return cls(
            sessions,
            settings,
            sequencer=ChapterSequencer(challenge),
            fetcher=FetchLoop(sessions, challenge, pacer),
            emitter=Emitter(settings.out_dir, fetch_cover=settings.fetch_cover),
            pacer=pacer,
        )

    async def run(self, requests: Sequence[WorkRequest]) -> List[WorkOutcome]:
        outcomes: List[WorkOutcome] = []
        for i, request in enumerate(requests):
            outcome = WorkOutcome(request.work_id)
            try:
                await self.process_work(request, outcome)
            except WorkFailed as e:
                outcome.error = str(e)
                logger.error(f"[error] {e}; moving on")
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                logger.exception(f"[error] book {request.work_id} failed: {outcome.error}")
            outcomes.append(outcome)
            await self.pacer.after_work(remaining=len(requests) - i - 1)
        return outcomes

    async def process_work(self, request: WorkRequest, outcome: WorkOutcome) -> None:
        logger.info(f"[stage] scraping book {request.work_id}")
        session = await self.sessions.open_headless()
        try:
            session, meta, units = await self.sequencer.sequence(session, request)
            session, results = await self.fetcher.fetch_all(session, units)
            outcome.fetched = len(results)
            outcome.skipped = len(units) - len(results)
            try:
                outcome.paths = await self.emitter.emit(request.work_id, meta, results)
            except Exception as e:
                logger.error(f"[save] book {request.work_id}: writing artifacts failed: {e}")
                outcome.error = str(e)
                return
            outcome.ok = bool(outcome.paths)
        finally:
            await close_quietly(session)
