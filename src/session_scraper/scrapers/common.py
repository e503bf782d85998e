"""Shared scraping primitives: scroll pagination, pacing, marker waits, sentinel checks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import ErrorKind, NavigationError, NavigationTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")

SCROLL_DELAY_MS = 1500
DEFAULT_SCROLL_ATTEMPTS = 3
MAX_SCROLL_ATTEMPTS = 20
HUMAN_DELAY_MIN_MS = 500
HUMAN_DELAY_MAX_MS = 1500
DEFAULT_WAIT_TIMEOUT_MS = 10_000

_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
_SCROLL_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"
_SCROLL_BY_JS = "(dy) => window.scrollBy(0, dy)"


@dataclass
class ScrollCursor:
    """Scroll pagination state for one collection run."""

    previous_height: int = 0
    no_growth: int = 0

    def exhausted(self, max_no_growth: int) -> bool:
        return self.no_growth >= max_no_growth


async def evaluate(page: Any, script: str, arg: Any = None) -> Any:
    """page.evaluate with playwright failures raised as typed navigation errors.

    The usual cause is the page navigating away mid-call, which destroys the
    execution context the script was running in.
    """
    try:
        return await page.evaluate(script, arg)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeoutError(f"Page evaluation timed out at {page.url}: {e.message}") from e
    except PlaywrightError as e:
        raise NavigationError(f"Page evaluation failed at {page.url}: {e.message}") from e


async def _scroll_height(page: Any) -> int:
    try:
        return int(await evaluate(page, _HEIGHT_JS) or 0)
    except (TypeError, ValueError):
        return 0


async def scroll_once(
    page: Any,
    cursor: ScrollCursor,
    delay_ms: int = SCROLL_DELAY_MS,
    step_px: int | None = None,
) -> bool:
    """Scroll once, wait for the page to settle, and record whether it grew."""
    before = await _scroll_height(page)
    if step_px:
        await evaluate(page, _SCROLL_BY_JS, step_px)
    else:
        await evaluate(page, _SCROLL_BOTTOM_JS)
    await page.wait_for_timeout(delay_ms)
    after = await _scroll_height(page)

    grew = after > before
    cursor.previous_height = after
    cursor.no_growth = 0 if grew else cursor.no_growth + 1
    return grew


async def scroll_for_more(
    page: Any,
    max_attempts: int = DEFAULT_SCROLL_ATTEMPTS,
    delay_ms: int = SCROLL_DELAY_MS,
) -> bool:
    """Scroll until the document grows. False once max_attempts scrolls in a row did nothing."""
    max_attempts = max(1, min(max_attempts, MAX_SCROLL_ATTEMPTS))
    cursor = ScrollCursor()
    while not cursor.exhausted(max_attempts):
        if await scroll_once(page, cursor, delay_ms):
            return True
    return False


async def collect_items(
    page: Any,
    extract: Callable[[Any], Awaitable[Iterable[T]]],
    key: Callable[[T], str | None],
    count: int,
    *,
    max_no_growth: int = DEFAULT_SCROLL_ATTEMPTS,
    scroll: Callable[[Any, ScrollCursor], Awaitable[bool]] | None = None,
    pause: Callable[[], Awaitable[None]] | None = None,
) -> tuple[list[T], bool]:
    """Extract, dedup and scroll until `count` items are collected or scrolling stalls.

    A pass that adds no new item counts as a stall even when the document grew,
    so the loop ends after `max_no_growth` unproductive scrolls in a row.

    Returns (items, has_more); has_more is False when the feed ran dry.
    """
    if count <= 0:
        return [], False

    scroll = scroll or (lambda p, c: scroll_once(p, c))
    seen: set[str] = set()
    items: list[T] = []
    cursor = ScrollCursor()
    passes = 0
    unproductive = 0

    while True:
        passes += 1
        added = 0
        for item in await extract(page):
            k = key(item)
            if not k or k in seen:
                continue
            seen.add(k)
            items.append(item)
            added += 1
            if len(items) >= count:
                logger.debug("collected %d items in %d passes", len(items), passes)
                return items, True

        if passes > 1:
            unproductive = 0 if added else unproductive + 1
        if cursor.exhausted(max_no_growth) or unproductive >= max_no_growth:
            break

        await scroll(page, cursor)
        if pause is not None:
            await pause()

    logger.debug("scrolling stalled after %d passes with %d/%d items", passes, len(items), count)
    return items, False


async def human_delay(
    min_ms: int = HUMAN_DELAY_MIN_MS,
    max_ms: int = HUMAN_DELAY_MAX_MS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Randomized pause between actions so paging looks less mechanical."""
    await sleep(random.uniform(min_ms, max_ms) / 1000.0)


async def wait_for_element(page: Any, selector: str, timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS) -> bool:
    try:
        await page.wait_for_selector(selector, timeout=timeout_ms)
        return True
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError as e:
        raise NavigationError(f"Waiting for {selector} failed at {page.url}: {e.message}") from e


def detect_page_error(content: str | None, sentinels: Mapping[str, ErrorKind]) -> tuple[ErrorKind, str] | None:
    """First sentinel phrase found in the page text (case-insensitive), in mapping order."""
    if not content:
        return None
    haystack = content.lower()
    for phrase, kind in sentinels.items():
        if phrase.lower() in haystack:
            return kind, phrase
    return None


def clamp_count(count: int, maximum: int, minimum: int = 1) -> int:
    return max(minimum, min(int(count), maximum))
