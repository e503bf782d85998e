"""In-memory stand-ins for playwright Page / Browser objects."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakePage:
    """A tab whose `evaluate` answers come from `scripts`.

    `scripts` maps a JS source string to either a value or a callable taking
    the evaluate argument. Unknown scripts evaluate to None. Selectors listed
    in `present` resolve in `wait_for_selector`; everything else times out.
    """

    def __init__(
        self,
        url: str = "about:blank",
        title: str = "",
        scripts: dict[str, Any] | None = None,
        present: tuple[str, ...] = (),
        body_text: str = "",
    ) -> None:
        self.url = url
        self._title = title
        self.scripts = dict(scripts or {})
        self.present = set(present)
        self.body_text = body_text
        self.goto_calls: list[str] = []
        self.goto_timeouts: list[float | None] = []
        self.evaluated: list[str] = []
        self.waited_ms: list[int] = []
        self.brought_to_front = 0
        self.screenshot_bytes = b"\x89PNG fake"
        self.goto_error: BaseException | None = None
        self.evaluate_error: BaseException | None = None

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> None:
        self.goto_calls.append(url)
        self.goto_timeouts.append(timeout)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def title(self) -> str:
        return self._title

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(script)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        if script not in self.scripts and "document.body.innerText" in script:
            return self.body_text
        value = self.scripts.get(script)
        if callable(value):
            return value(arg)
        return value

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> object:
        if selector in self.present:
            return object()
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_timeout(self, ms: int) -> None:
        self.waited_ms.append(ms)

    async def bring_to_front(self) -> None:
        self.brought_to_front += 1

    async def screenshot(self, full_page: bool = False, type: str = "png") -> bytes:
        return self.screenshot_bytes

    async def query_selector(self, selector: str) -> Any:
        return None


class FakeContext:
    def __init__(self, pages: list[FakePage]) -> None:
        self.pages = pages


class FakeBrowser:
    def __init__(self, pages: list[FakePage] | None = None) -> None:
        self.contexts = [FakeContext(list(pages or []))]
        self.connected = True
        self.closed = 0
        self.handlers: dict[str, list[Callable[..., Any]]] = {}

    def is_connected(self) -> bool:
        return self.connected

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def close(self) -> None:
        self.closed += 1
        self.connected = False

    def drop(self) -> None:
        """Simulate the relay going away."""
        self.connected = False
        for handler in self.handlers.get("disconnected", []):
            handler(self)


class FakeConnector:
    """Connector that fails with the queued errors, then hands out browsers."""

    def __init__(self, browsers: list[FakeBrowser] | None = None, errors: list[BaseException] | None = None) -> None:
        self.browsers = list(browsers or [FakeBrowser([FakePage()])])
        self.errors = list(errors or [])
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self, endpoint: str, timeout: float) -> FakeBrowser:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        if len(self.browsers) > 1:
            return self.browsers.pop(0)
        return self.browsers[0]


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)
