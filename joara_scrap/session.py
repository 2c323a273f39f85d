import logging
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    async_playwright,
)

from joara_scrap.config import (
    CHROME_ARGS,
    DEFAULT_UA,
    NAV_TIMEOUT,
    TEXT_TIMEOUT,
    VIEWPORT,
    WAIT_TIMEOUT,
)
from joara_scrap.errors import RenderTimeout
from joara_scrap.models import SessionMode

logger = logging.getLogger(__name__)

HIDE_WEBDRIVER_JS = "Object.defineProperty(navigator, 'webdriver', { get: () => false });"


class RenderSession:
    """One live browsing context and its page.

    Every wait is bounded except ``wait_until_gone``, which is reserved for the
    human-solved challenge screen.
    """

    def __init__(self, page: Page, context: BrowserContext, mode: SessionMode,
                 browser: Optional[Browser] = None):
        self.page = page
        self.context = context
        self.browser = browser
        self.mode = mode
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed or self.page.is_closed()

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str, timeout: float = NAV_TIMEOUT) -> None:
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=timeout)
        except PWTimeout as e:
            raise RenderTimeout(f"navigation to {url}", timeout) from e

    async def reload(self, timeout: float = NAV_TIMEOUT) -> None:
        try:
            await self.page.reload(wait_until="networkidle", timeout=timeout)
        except PWTimeout as e:
            raise RenderTimeout("page reload", timeout) from e

    async def wait_for(self, selector: str, timeout: float = WAIT_TIMEOUT) -> None:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout)
        except PWTimeout as e:
            raise RenderTimeout(selector, timeout) from e

    async def wait_until_gone(self, selector: str) -> None:
        await self.page.wait_for_selector(selector, state="detached", timeout=0)

    async def has(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def text_of(self, selector: str, timeout: float = TEXT_TIMEOUT) -> str:
        try:
            txt = await self.page.locator(selector).first.inner_text(timeout=timeout)
        except PWTimeout as e:
            raise RenderTimeout(selector, timeout) from e
        return (txt or "").strip()

    async def html_of(self, selector: str) -> Optional[str]:
        el = await self.page.query_selector(selector)
        if el is None:
            return None
        return await el.inner_html()

    async def attribute(self, selector: str, name: str) -> Optional[str]:
        el = await self.page.query_selector(selector)
        if el is None:
            return None
        return await el.get_attribute(name)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def scroll_by(self, distance: int) -> int:
        """Scroll down one step and return the document height afterwards."""
        return await self.page.evaluate(
            "(d) => { window.scrollBy(0, d); return document.body.scrollHeight; }",
            distance,
        )

    async def close(self) -> None:
        if self._closed:
            return
        # A persistent context owns its browser; a launched browser owns its contexts.
        if self.browser is not None:
            await self.browser.close()
        else:
            await self.context.close()
        self._closed = True


async def close_quietly(session: Optional[RenderSession]) -> None:
    if session is None or session.is_closed:
        return
    try:
        await session.close()
    except Exception as e:
        logger.warning(f"[warn] closing {session.mode.value} session failed: {e}")


class SessionFactory:
    """Owns the Playwright driver and hands out render sessions."""

    def __init__(self):
        self._pw: Optional[Playwright] = None

    async def __aenter__(self) -> "SessionFactory":
        self._pw = await async_playwright().start()
        return self

    async def __aexit__(self, *exc) -> None:
        if self._pw is not None:
            await self._pw.stop()
        self._pw = None

    @property
    def playwright(self) -> Playwright:
        if self._pw is None:
            raise RuntimeError("SessionFactory used outside 'async with'")
        return self._pw

    async def open_headless(self) -> RenderSession:
        browser = await self.playwright.chromium.launch(headless=True, args=CHROME_ARGS)
        context = await browser.new_context(user_agent=DEFAULT_UA, viewport=VIEWPORT)
        await context.add_init_script(HIDE_WEBDRIVER_JS)
        page = await context.new_page()
        logger.debug("[session] headless browser launched")
        return RenderSession(page, context, SessionMode.HEADLESS, browser=browser)

    async def open_interactive(self, profile_dir: Path) -> RenderSession:
        profile_dir.mkdir(parents=True, exist_ok=True)
        context = await self.playwright.chromium.launch_persistent_context(
            str(profile_dir),
            headless=False,
            args=CHROME_ARGS,
            viewport=VIEWPORT,
        )
        page = context.pages[0] if context.pages else await context.new_page()
        logger.debug(f"[session] interactive browser launched with profile {profile_dir}")
        return RenderSession(page, context, SessionMode.INTERACTIVE)
