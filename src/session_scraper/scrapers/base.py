from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import ErrorKind, NavigationError, NavigationTimeoutError, error_for_kind
from .common import (
    DEFAULT_WAIT_TIMEOUT_MS,
    MAX_SCROLL_ATTEMPTS,
    SCROLL_DELAY_MS,
    ScrollCursor,
    collect_items,
    detect_page_error,
    evaluate,
    human_delay,
    scroll_once,
    wait_for_element,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

NAVIGATION_TIMEOUT_MS = 30_000

_BODY_TEXT_JS = "() => document.body ? document.body.innerText : ''"

_KIND_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.PROFILE_NOT_FOUND: "{site}: page not found: {url}",
    ErrorKind.LOGIN_REQUIRED: "{site}: login required to view {url}",
    ErrorKind.ACCOUNT_SUSPENDED: "{site}: account suspended or banned: {url}",
    ErrorKind.PRIVATE_ACCOUNT: "{site}: content is private: {url}",
    ErrorKind.RATE_LIMITED: "{site}: rate limited while loading {url}",
}


class SiteAdapter(ABC, Generic[T]):
    """Everything one site page type needs: where to go, when it's loaded, how to read items.

    Selectors and sentinel phrases live on the adapter so markup drift is fixed
    in one place; scrolling and dedup are shared.
    """

    name: str
    loaded_selector: str

    # Page-text phrase -> failure kind, checked in order when the marker never shows
    sentinels: dict[str, ErrorKind] = {}
    # Phrases meaning "loaded, but legitimately nothing here"
    empty_sentinels: tuple[str, ...] = ()
    # Treat a missing marker with no sentinel as an empty page instead of a timeout
    empty_when_missing: bool = False

    load_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS
    max_no_growth: int = 10
    scroll_delay_ms: int = SCROLL_DELAY_MS
    scroll_step_px: int | None = None
    # Randomized pause between scroll passes
    paced: bool = False

    def __init__(self, page: Any, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms

    async def navigate(self, url: str) -> None:
        logger.debug("%s: navigating to %s", self.name, url)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(
                f"Navigation to {url} timed out after {self.navigation_timeout_ms}ms"
            ) from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e.message}") from e

    async def page_text(self) -> str:
        return await evaluate(self.page, _BODY_TEXT_JS) or ""

    async def wait_for_loaded(self) -> bool:
        """True once the content marker is present, False for a legitimately empty page.

        A missing marker is classified from the page text: a known sentinel
        phrase raises its specific error, anything else is a navigation timeout.
        """
        if await wait_for_element(self.page, self.loaded_selector, self.load_timeout_ms):
            return True

        content = await self.page_text()
        found = detect_page_error(content, self.sentinels)
        if found is not None:
            kind, phrase = found
            logger.debug("%s: page shows %r", self.name, phrase)
            template = _KIND_MESSAGES.get(kind, "{site}: failed to load {url}")
            raise error_for_kind(kind, template.format(site=self.name, url=self.page.url))

        lowered = content.lower()
        if any(s.lower() in lowered for s in self.empty_sentinels) or self.empty_when_missing:
            logger.debug("%s: page is empty", self.name)
            return False

        raise NavigationTimeoutError(
            f"{self.name}: timed out waiting for content ({self.loaded_selector}) at {self.page.url}"
        )

    async def open(self, url: str) -> bool:
        await self.navigate(url)
        return await self.wait_for_loaded()

    @abstractmethod
    async def extract_items(self) -> list[T]:
        raise NotImplementedError

    @abstractmethod
    def item_key(self, item: T) -> str | None:
        raise NotImplementedError

    async def scroll(self, cursor: ScrollCursor) -> bool:
        return await scroll_once(self.page, cursor, self.scroll_delay_ms, self.scroll_step_px)

    async def collect(self, count: int) -> tuple[list[T], bool]:
        return await collect_items(
            self.page,
            lambda _page: self.extract_items(),
            self.item_key,
            count,
            max_no_growth=min(self.max_no_growth, MAX_SCROLL_ATTEMPTS),
            scroll=lambda _page, cursor: self.scroll(cursor),
            pause=human_delay if self.paced else None,
        )
