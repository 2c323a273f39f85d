import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from fakes import FakeFactory, FakeSite, SleepRecorder

from joara_scrap.challenge import ChallengeHandler
from joara_scrap.config import Settings
from joara_scrap.errors import ChallengeResolutionFailed, RenderTimeout
from joara_scrap.fetcher import FetchLoop
from joara_scrap.models import ContentUnit, SessionMode
from joara_scrap.pacing import Pacer


def unit(n: int) -> ContentUnit:
    return ContentUnit(index=n, url=f"https://www.joara.com/viewer?book_id=1&sort={n}", title=f"{n + 1}화")


def body(text: str) -> str:
    return "".join(f"<li>{line}</li>" for line in text.split("\n"))


class TestFetchLoop(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.site = FakeSite()
        self.sleep = SleepRecorder()
        self.settings = Settings(wait_time_ms=0)
        self.factory = FakeFactory(self.site)
        self.challenge = ChallengeHandler(self.factory, profile_dir=Path(self._tmp.name) / "p", sleep=self.sleep)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def loop(self, pacer=None) -> FetchLoop:
        return FetchLoop(self.factory, self.challenge, pacer or Pacer(self.settings, sleep=self.sleep),
                         sleep=self.sleep)

    async def test_fetches_in_order_and_skips_exhausted_unit(self) -> None:
        units = [unit(0), unit(1), unit(2), unit(3)]
        self.site.chapters = {
            units[0].url: [body("첫 줄\n둘째 줄")],
            units[1].url: [RenderTimeout("ol.text-wrap.no-print"), "", ""],
            units[2].url: ["", body("세 번째")],
            units[3].url: [body("끝")],
        }
        session = await self.factory.open_headless()

        session, results = await self.loop().fetch_all(session, units)

        self.assertIsInstance(results, tuple)
        self.assertEqual([r.unit.index for r in results], [0, 2, 3])
        self.assertEqual(results[0].text, "첫 줄\n둘째 줄")
        self.assertEqual(results[1].text, "세 번째")
        self.assertFalse(session.is_closed)

    async def test_error_triggers_reload_and_retry(self) -> None:
        u = unit(0)
        self.site.chapters = {u.url: [RuntimeError("Target crashed"), body("본문")]}
        session = await self.factory.open_headless()

        session, text = await self.loop().fetch_unit(session, u)

        self.assertEqual(text, "본문")
        self.assertEqual(session.reloads, 1)
        self.assertEqual([url for _, url in self.site.visits], [u.url, u.url])

    async def test_three_failures_skip_without_reload_after_last(self) -> None:
        u = unit(0)
        self.site.chapters = {u.url: [RuntimeError("boom")]}
        session = await self.factory.open_headless()

        session, text = await self.loop().fetch_unit(session, u)

        self.assertIsNone(text)
        self.assertEqual(session.reloads, 2)
        self.assertEqual(len(self.site.visits), 3)

    async def test_settle_delay_after_each_navigation(self) -> None:
        u = unit(0)
        self.site.chapters = {u.url: [body("본문")]}

        await self.loop().fetch_unit(await self.factory.open_headless(), u)

        self.assertEqual(self.sleep.calls, [5.0])

    async def test_challenge_replaces_session_and_refetches(self) -> None:
        units = [unit(0), unit(1)]
        self.site.chapters = {units[0].url: [body("하나")], units[1].url: [body("둘")]}
        self.site.challenge_once.add(units[0].url)
        first = await self.factory.open_headless()

        session, results = await self.loop().fetch_all(first, units)

        self.assertIsNot(session, first)
        self.assertTrue(first.is_closed)
        self.assertEqual([r.text for r in results], ["하나", "둘"])
        headless_live = [s for s in self.factory.live() if s.mode is SessionMode.HEADLESS]
        self.assertEqual(headless_live, [session])
        # after the challenge: handler navigation + re-fetch on the new session
        self.assertEqual([url for name, url in self.site.visits if name == session.name][:2],
                         [units[0].url, units[0].url])

    async def test_closed_session_is_replaced(self) -> None:
        u = unit(0)
        self.site.chapters = {u.url: [body("본문")]}
        dead = await self.factory.open_headless()
        await dead.close()

        session, text = await self.loop().fetch_unit(dead, u)

        self.assertIsNot(session, dead)
        self.assertEqual(text, "본문")

    async def test_fatal_challenge_failure_propagates(self) -> None:
        units = [unit(0), unit(1)]
        self.site.chapters = {units[0].url: [body("하나")]}
        self.site.challenge_once.add(units[0].url)
        self.factory.interactive_script = [{"marker_shows": False}] * 3
        self.challenge.max_cycles = 1

        with self.assertRaises(ChallengeResolutionFailed):
            await self.loop().fetch_all(await self.factory.open_headless(), units)
        self.assertEqual(self.factory.live(), [])

    async def test_cooldown_counts_across_calls(self) -> None:
        self.settings.cooldown_every = 5
        self.settings.cooldown_minutes = 10
        pacer = Pacer(self.settings, sleep=self.sleep)
        loop = self.loop(pacer)
        first = [unit(i) for i in range(3)]
        second = [unit(i) for i in range(3, 6)]
        self.site.chapters = {u.url: [body("본문")] for u in first + second}
        self.site.chapters[first[1].url] = [""]  # skipped units still count

        session = await self.factory.open_headless()
        session, _ = await loop.fetch_all(session, first)
        self.assertNotIn(600, self.sleep.calls)
        session, _ = await loop.fetch_all(session, second)

        self.assertEqual(self.sleep.calls.count(600), 1)
        self.assertEqual(pacer.processed, 6)


if __name__ == "__main__":
    unittest.main()
