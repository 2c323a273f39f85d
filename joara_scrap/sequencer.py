import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urljoin

from joara_scrap.challenge import ChallengeHandler
from joara_scrap.config import (
    AUTHOR_SELECTOR,
    BASE,
    BOOK_TITLE_SELECTOR,
    COVER_SELECTOR,
    MAX_SCROLL_STEPS,
    METADATA_ATTEMPTS,
    METADATA_RETRY_DELAY,
    NETWORK_RETRY_DELAY,
    READY_SELECTOR,
    SCROLL_PAUSE,
    SCROLL_STEP_PX,
    SETTLE_DELAY,
    UNIT_ANCHOR_SELECTOR,
    UNIT_LIST_SELECTOR,
    UNIT_TITLE_SELECTOR,
    UNTITLED_UNIT,
    WAIT_TIMEOUT,
)
from joara_scrap.errors import (
    ContentListUnavailable,
    MetadataExtractionFailed,
    NoUnitsFound,
    RenderTimeout,
    is_transient_network_error,
)
from joara_scrap.models import ContentUnit, RetryBudget, WorkMetadata, WorkRequest
from joara_scrap.session import RenderSession, close_quietly

logger = logging.getLogger(__name__)

# Anchors come back in page order, which lists the newest chapter first.
COLLECT_UNITS_JS = """
([anchorSel, titleSel]) => Array.from(document.querySelectorAll(anchorSel)).map(a => {
  const t = a.querySelector(titleSel);
  return { href: a.getAttribute('href'), title: t ? (t.innerText || '').trim() : '' };
})
"""


def order_units(raw: List[dict]) -> List[ContentUnit]:
    """Page-order anchor dicts -> oldest-first, de-duplicated, 0-indexed units."""
    units: List[ContentUnit] = []
    seen = set()
    for item in reversed(raw):
        href = (item.get("href") or "").strip()
        if not href:
            continue
        url = urljoin(BASE, href)
        if url in seen:
            continue
        seen.add(url)
        title = (item.get("title") or "").strip() or UNTITLED_UNIT
        units.append(ContentUnit(index=len(units), url=url, title=title))
    return units


class ChapterSequencer:
    def __init__(self, challenge: ChallengeHandler,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.challenge = challenge
        self.sleep = sleep

    async def sequence(self, session: RenderSession, request: WorkRequest
                       ) -> Tuple[RenderSession, WorkMetadata, List[ContentUnit]]:
        """Open a book's landing page and list its chapters oldest-first.

        Returns the session to keep using, which differs from the one passed in
        when a challenge had to be solved. On error the current session is
        closed before the exception propagates.
        """
        try:
            session = await self._open_landing(session, request)
            meta = await self._extract_meta(session, request)
            units = await self._collect_units(session, request)
        except BaseException:
            await close_quietly(session)
            raise
        return session, meta, units

    async def _open_landing(self, session: RenderSession, request: WorkRequest) -> RenderSession:
        url = request.landing_url
        logger.info(f"[nav] {url}")
        retries = 0
        while True:
            try:
                await session.goto(url)
                break
            except Exception as e:
                if not is_transient_network_error(e):
                    raise
                retries += 1
                logger.error(f"[nav] connection problem; retrying in {NETWORK_RETRY_DELAY:g}s (attempt {retries})")
                await self.sleep(NETWORK_RETRY_DELAY)

        await session.wait_for(READY_SELECTOR, timeout=WAIT_TIMEOUT)
        await self.sleep(SETTLE_DELAY)
        if await self.challenge.is_challenged(session):
            session = await self.challenge.resolve(session, url)
        return session

    async def _extract_meta(self, session: RenderSession, request: WorkRequest) -> WorkMetadata:
        logger.info("[stage] extracting metadata…")
        budget = RetryBudget("metadata", METADATA_ATTEMPTS)
        while True:
            try:
                title = await session.text_of(BOOK_TITLE_SELECTOR)
                author = await session.text_of(AUTHOR_SELECTOR)
                if not title or not author:
                    raise ValueError("empty title or author")
                break
            except Exception as e:
                n = budget.spend()
                logger.error(f"[meta] title/author not readable (attempt {n}/{budget.limit}): {e}")
                if budget.exhausted:
                    raise MetadataExtractionFailed(request.work_id, "could not read title and author") from e
                await self.sleep(METADATA_RETRY_DELAY)

        cover_url: Optional[str] = None
        try:
            cover_url = await session.attribute(COVER_SELECTOR, "content")
        except Exception as e:
            logger.debug(f"[meta] no cover: {e}")
        meta = WorkMetadata(title=title, author=author, cover_url=cover_url or None)
        logger.info(f"[meta] title={meta.title!r} author={meta.author!r}")
        return meta

    async def _collect_units(self, session: RenderSession, request: WorkRequest) -> List[ContentUnit]:
        logger.info("[toc] waiting for chapter list…")
        try:
            await session.wait_for(UNIT_LIST_SELECTOR, timeout=WAIT_TIMEOUT)
        except RenderTimeout as e:
            raise ContentListUnavailable(request.work_id, "chapter list container never loaded") from e

        logger.info("[toc] scrolling to load all chapters…")
        await self._reveal_all(session)

        try:
            await session.wait_for(UNIT_ANCHOR_SELECTOR, timeout=WAIT_TIMEOUT)
        except RenderTimeout as e:
            raise NoUnitsFound(request.work_id, "no chapter links after scrolling") from e

        raw = await session.evaluate(COLLECT_UNITS_JS, [UNIT_ANCHOR_SELECTOR, UNIT_TITLE_SELECTOR])
        units = order_units(raw or [])
        if not units:
            raise NoUnitsFound(request.work_id, "chapter list is empty")
        logger.info(f"[toc] found {len(units)} chapters")
        return units

    async def _reveal_all(self, session: RenderSession) -> None:
        # Lazy list: keep stepping down until we pass the (growing) page height.
        scrolled = 0
        for _ in range(MAX_SCROLL_STEPS):
            height = await session.scroll_by(SCROLL_STEP_PX)
            scrolled += SCROLL_STEP_PX
            if scrolled >= height:
                return
            await self.sleep(SCROLL_PAUSE)
        logger.warning(f"[toc] stopped scrolling after {MAX_SCROLL_STEPS} steps")
