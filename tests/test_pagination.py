"""Tests for scroll pagination, dedup, pacing and page-state classification."""

import unittest
from unittest.mock import AsyncMock, patch

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from fakes import FakePage
from session_scraper.errors import ErrorKind, NavigationTimeoutError, ProfileNotFoundError
from session_scraper.scrapers import common
from session_scraper.scrapers.base import SiteAdapter


def growing_height(start=1000, step=500):
    state = {"h": start}

    def height(_arg):
        state["h"] += step
        return state["h"]

    return height


class TestCollectItems(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.scrolls = 0

    async def _scroll(self, page, cursor):
        self.scrolls += 1
        return True

    async def test_stops_at_count_with_dedup(self):
        batches = [["a", "b", "c"], ["b", "c", "d", "e"], ["e", "f", "g"]]

        async def extract(page):
            return batches[min(self.scrolls, len(batches) - 1)]

        items, has_more = await common.collect_items(
            FakePage(), extract, lambda x: x, 5, scroll=self._scroll
        )
        self.assertEqual(items, ["a", "b", "c", "d", "e"])
        self.assertTrue(has_more)
        self.assertEqual(self.scrolls, 1)

    async def test_terminates_when_nothing_new_even_if_page_grows(self):
        async def extract(page):
            return ["a", "b"]

        items, has_more = await common.collect_items(
            FakePage(), extract, lambda x: x, 10, max_no_growth=3, scroll=self._scroll
        )
        self.assertEqual(items, ["a", "b"])
        self.assertFalse(has_more)
        self.assertEqual(self.scrolls, 3)

    async def test_terminates_when_height_stops_growing(self):
        page = FakePage(scripts={common._HEIGHT_JS: 1000})

        async def extract(p):
            return []

        items, has_more = await common.collect_items(page, extract, lambda x: x, 10, max_no_growth=3)
        self.assertEqual(items, [])
        self.assertFalse(has_more)
        self.assertEqual(len(page.waited_ms), 3)

    async def test_items_without_key_are_skipped(self):
        async def extract(page):
            return [{"id": None}, {"id": "1"}, {"id": ""}, {"id": "2"}]

        items, has_more = await common.collect_items(
            FakePage(), extract, lambda x: x["id"], 2, scroll=self._scroll
        )
        self.assertEqual([i["id"] for i in items], ["1", "2"])
        self.assertTrue(has_more)

    async def test_zero_count(self):
        extract = AsyncMock(return_value=["a"])
        self.assertEqual(await common.collect_items(FakePage(), extract, lambda x: x, 0), ([], False))
        extract.assert_not_called()

    async def test_pause_between_passes(self):
        pause = AsyncMock()

        async def extract(page):
            return [f"item-{self.scrolls}"]

        items, _ = await common.collect_items(
            FakePage(), extract, lambda x: x, 3, scroll=self._scroll, pause=pause
        )
        self.assertEqual(len(items), 3)
        self.assertEqual(pause.await_count, 2)


class TestScrolling(unittest.IsolatedAsyncioTestCase):
    async def test_scroll_for_more_detects_growth(self):
        page = FakePage(scripts={common._HEIGHT_JS: growing_height()})
        self.assertTrue(await common.scroll_for_more(page, max_attempts=3, delay_ms=10))
        self.assertEqual(page.waited_ms, [10])

    async def test_scroll_for_more_gives_up(self):
        page = FakePage(scripts={common._HEIGHT_JS: 1000})
        self.assertFalse(await common.scroll_for_more(page, max_attempts=4, delay_ms=10))
        self.assertEqual(len(page.waited_ms), 4)

    async def test_scroll_attempts_are_clamped(self):
        page = FakePage(scripts={common._HEIGHT_JS: 1000})
        await common.scroll_for_more(page, max_attempts=500, delay_ms=1)
        self.assertEqual(len(page.waited_ms), common.MAX_SCROLL_ATTEMPTS)

    async def test_step_scroll(self):
        page = FakePage(scripts={common._HEIGHT_JS: growing_height()})
        cursor = common.ScrollCursor()
        self.assertTrue(await common.scroll_once(page, cursor, 5, step_px=500))
        self.assertIn(common._SCROLL_BY_JS, page.evaluated)
        self.assertEqual(cursor.no_growth, 0)


class TestHelpers(unittest.IsolatedAsyncioTestCase):
    async def test_human_delay_within_bounds(self):
        slept = []

        async def sleep(seconds):
            slept.append(seconds)

        for _ in range(20):
            await common.human_delay(500, 1500, sleep=sleep)
        self.assertTrue(all(0.5 <= s <= 1.5 for s in slept))

    async def test_wait_for_element(self):
        page = FakePage(present=("main",))
        self.assertTrue(await common.wait_for_element(page, "main", 10))
        self.assertFalse(await common.wait_for_element(page, "nav", 10))

    def test_detect_page_error_is_case_insensitive_and_ordered(self):
        sentinels = {
            "Account suspended": ErrorKind.ACCOUNT_SUSPENDED,
            "log in": ErrorKind.LOGIN_REQUIRED,
        }
        self.assertEqual(
            common.detect_page_error("ACCOUNT SUSPENDED. Log in to see more", sentinels),
            (ErrorKind.ACCOUNT_SUSPENDED, "Account suspended"),
        )
        self.assertIsNone(common.detect_page_error("all good", sentinels))
        self.assertIsNone(common.detect_page_error(None, sentinels))

    def test_clamp_count(self):
        self.assertEqual(common.clamp_count(500, 100), 100)
        self.assertEqual(common.clamp_count(0, 100), 1)
        self.assertEqual(common.clamp_count(0, 100, minimum=0), 0)
        self.assertEqual(common.clamp_count(42, 100), 42)


class DemoAdapter(SiteAdapter):
    name = "demo"
    loaded_selector = "main.feed"
    sentinels = {"This account doesn't exist": ErrorKind.PROFILE_NOT_FOUND}
    empty_sentinels = ("Nothing to see here",)
    load_timeout_ms = 10

    async def extract_items(self):
        return await self.page.evaluate("items")

    def item_key(self, item):
        return item


class TestSiteAdapter(unittest.IsolatedAsyncioTestCase):
    async def test_loaded(self):
        adapter = DemoAdapter(FakePage(present=("main.feed",)))
        self.assertTrue(await adapter.open("https://demo.test/u"))

    async def test_sentinel_raises_specific_error(self):
        adapter = DemoAdapter(FakePage(body_text="Hmm... This account doesn't exist. Try searching."))
        with self.assertRaises(ProfileNotFoundError) as ctx:
            await adapter.open("https://demo.test/ghost")
        self.assertIn("https://demo.test/ghost", str(ctx.exception))

    async def test_empty_sentinel_returns_false(self):
        adapter = DemoAdapter(FakePage(body_text="Nothing to see here yet"))
        self.assertFalse(await adapter.open("https://demo.test/quiet"))

    async def test_unknown_state_times_out(self):
        adapter = DemoAdapter(FakePage(body_text="spinner"))
        with self.assertRaises(NavigationTimeoutError):
            await adapter.open("https://demo.test/slow")

    async def test_empty_when_missing(self):
        adapter = DemoAdapter(FakePage(body_text="spinner"))
        adapter.empty_when_missing = True
        self.assertFalse(await adapter.open("https://demo.test/none"))

    async def test_navigation_timeout(self):
        page = FakePage()
        page.goto_error = PlaywrightTimeoutError("Timeout 30000ms exceeded")
        with self.assertRaises(NavigationTimeoutError):
            await DemoAdapter(page).open("https://demo.test/")

    async def test_paced_collect_pauses(self):
        page = FakePage(scripts={"items": ["a", "b"], common._HEIGHT_JS: 1000})
        adapter = DemoAdapter(page)
        adapter.paced = True
        adapter.max_no_growth = 2
        with patch("session_scraper.scrapers.base.human_delay", new=AsyncMock()) as delay:
            items, has_more = await adapter.collect(5)
        self.assertEqual(items, ["a", "b"])
        self.assertFalse(has_more)
        self.assertTrue(delay.await_count >= 1)


if __name__ == "__main__":
    unittest.main()
