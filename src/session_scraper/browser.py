"""Connection manager for a live, already-authenticated browser.

The browser is reached through a remote-debugging relay (the Playwriter
extension) at `ws://host:port`. A `ConnectionManager` owns at most one
connection, hands out tabs, and recovers from drops:

- Caller-initiated connects retry only "connection refused" failures, with
  exponential backoff, then surface the error.
- A drop signalled by the transport resets the tab index and, when enabled,
  schedules one background reconnect after a fixed delay. That reconnect goes
  through the same single-flight path as callers do.

Concurrent callers share one in-flight connection attempt.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import Settings
from .errors import (
    InvalidPageIndexError,
    NoPagesAvailableError,
    RelayConnectionRefusedError,
    RelayConnectionTimeoutError,
    ScraperError,
)
from .models import PageInfo, TabInfo, TabList
from .retry import BackoffStrategy, with_retry


logger = logging.getLogger(__name__)

T = TypeVar("T")

# (endpoint, timeout_seconds) -> playwright Browser
Connector = Callable[[str, float], Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _is_connection_refused(exc: BaseException) -> bool:
    if isinstance(exc, ConnectionRefusedError):
        return True
    # Playwright reports transport failures as plain Error with the OS message
    msg = str(exc).lower()
    return "econnrefused" in msg or "connection refused" in msg


def _is_transport_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError, TimeoutError))


class ConnectionManager:
    def __init__(
        self,
        settings: Settings | None = None,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self._connector = connector or self._connect_over_cdp
        self._sleep = sleep

        self._playwright: Any = None
        self._browser: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._current_index = 0
        self._connecting: asyncio.Future | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._closing = False

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def is_connected(self) -> bool:
        return self._browser is not None and bool(self._browser.is_connected())

    # ------------------------------------------------------------------ #
    # Connecting
    # ------------------------------------------------------------------ #

    async def connect(self) -> Any:
        """Return the live browser, connecting (or joining a pending attempt) if needed."""
        if self.is_connected():
            return self._browser

        if self._browser is not None:
            # Transport died without telling us; drop the stale handle.
            logger.debug("dropping stale browser handle")
            self._browser = None
            self._current_index = 0
            self._state = ConnectionState.DISCONNECTED

        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._establish())
            self._connecting.add_done_callback(self._connect_finished)
        else:
            logger.debug("joining in-flight connection attempt")

        pending = self._connecting
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if not pending.cancelled():
                # The caller itself was cancelled; the attempt carries on for others.
                raise
            raise RelayConnectionRefusedError(
                "Connection attempt abandoned because the connection manager was disconnected"
            ) from None

    ensure_connected = connect

    def _connect_finished(self, fut: asyncio.Future) -> None:
        if self._connecting is fut:
            self._connecting = None
        if not fut.cancelled():
            # Mark retrieved; waiters (if any) receive it through shield().
            fut.exception()

    async def _establish(self) -> Any:
        endpoint = self.settings.ws_endpoint
        self._state = ConnectionState.CONNECTING
        logger.debug("connecting to relay at %s", endpoint)
        try:
            browser = await with_retry(
                lambda: self._attempt(endpoint),
                max_retries=self.settings.max_retries,
                backoff=BackoffStrategy(self.settings.retry_base_delay),
                should_retry=lambda e: isinstance(e, RelayConnectionRefusedError),
                sleep=self._sleep,
            )
        except RelayConnectionRefusedError as exc:
            self._state = ConnectionState.DISCONNECTED
            exc.attempts = self.settings.max_retries
            logger.debug("relay refused %d connection attempts", self.settings.max_retries)
            raise
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            raise

        self._browser = browser
        self._closing = False
        self._state = ConnectionState.CONNECTED
        browser.on("disconnected", self._on_disconnected)
        logger.info("connected to relay at %s", endpoint)
        return browser

    async def _attempt(self, endpoint: str) -> Any:
        timeout = self.settings.connect_timeout
        try:
            return await asyncio.wait_for(self._connector(endpoint, timeout), timeout=timeout)
        except ScraperError:
            raise
        except Exception as exc:
            if _is_connection_refused(exc):
                raise RelayConnectionRefusedError(
                    f"Extension not connected. Could not reach the relay at {endpoint}. "
                    "Click the Playwriter extension icon in Chrome to enable browser control."
                ) from exc
            if _is_transport_timeout(exc):
                raise RelayConnectionTimeoutError(
                    f"Connection timeout after {timeout:g}s. The Playwriter extension may not be responding."
                ) from exc
            raise

    async def _connect_over_cdp(self, endpoint: str, timeout: float) -> Any:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.connect_over_cdp(endpoint, timeout=timeout * 1000)

    # ------------------------------------------------------------------ #
    # Drops and background reconnect
    # ------------------------------------------------------------------ #

    def _on_disconnected(self, browser: Any = None) -> None:
        if browser is not None and browser is not self._browser:
            return
        if self._browser is None:
            return

        logger.info("relay connection lost")
        self._browser = None
        self._current_index = 0
        self._state = ConnectionState.DISCONNECTED

        if self._closing or not self.settings.auto_reconnect:
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop; reconnect left to the next caller")
            return
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
        logger.debug("reconnect scheduled in %.1fs", self.settings.reconnect_delay)
        self._reconnect_task = loop.create_task(self._delayed_reconnect())

    async def _delayed_reconnect(self) -> None:
        try:
            await self._sleep(self.settings.reconnect_delay)
            await self.connect()
            logger.info("reconnected to relay")
        except ScraperError as exc:
            # No caller is waiting; the next get_page() surfaces the failure.
            logger.warning("background reconnect failed: %s", exc.message)
        except Exception as exc:
            logger.warning("background reconnect failed: %s: %s", type(exc).__name__, exc)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    # ------------------------------------------------------------------ #
    # Tabs
    # ------------------------------------------------------------------ #

    async def get_pages(self) -> list[Any]:
        """All tabs across all contexts. An empty list is a valid answer."""
        browser = await self.connect()
        pages: list[Any] = []
        for context in browser.contexts:
            pages.extend(context.pages)
        return pages

    async def get_page(self) -> Any:
        pages = await self.get_pages()
        if not pages:
            raise NoPagesAvailableError(
                "No pages available. Click the Playwriter extension icon on a Chrome tab."
            )
        # The tab list may have shrunk since the index was chosen.
        self._current_index = max(0, min(self._current_index, len(pages) - 1))
        return pages[self._current_index]

    async def switch_page(self, index: int) -> Any:
        pages = await self.get_pages()
        if index < 0 or index >= len(pages):
            raise InvalidPageIndexError(index, len(pages))
        self._current_index = index
        page = pages[index]
        await page.bring_to_front()
        return page

    async def list_pages(self) -> TabList:
        pages = await self.get_pages()
        tabs = [TabInfo(index=i, url=p.url, title=await p.title()) for i, p in enumerate(pages)]
        current = max(0, min(self._current_index, len(pages) - 1)) if pages else 0
        return TabList(pages=tabs, current=current)

    async def get_page_info(self) -> PageInfo:
        page = await self.get_page()
        return PageInfo(url=page.url, title=await page.title())

    # ------------------------------------------------------------------ #
    # Teardown
    # ------------------------------------------------------------------ #

    async def disconnect(self) -> None:
        """Idempotent: cancel pending work, close the transport, reset state."""
        self._closing = True

        for task in (self._reconnect_task, self._connecting):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, ScraperError):
                    await task
        self._reconnect_task = None
        self._connecting = None

        browser, self._browser = self._browser, None
        if browser is not None and browser.is_connected():
            await browser.close()

        pw, self._playwright = self._playwright, None
        if pw is not None:
            await pw.stop()

        self._current_index = 0
        self._state = ConnectionState.DISCONNECTED

    async def run(self, command: Callable[[Any], Awaitable[T]]) -> T:
        """Run `command(page)` against the current tab, then disconnect."""
        try:
            page = await self.get_page()
            return await command(page)
        finally:
            await self.disconnect()
