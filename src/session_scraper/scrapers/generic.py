"""Site-agnostic page extraction, navigation, screenshots and script evaluation.

Raw DOM data is gathered in one in-page pass; normalization, dedup and the
payload caps are applied here so they hold no matter what the page returns.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import (
    ElementNotFoundError,
    InvalidInputError,
    NavigationError,
    NavigationTimeoutError,
    ScreenshotError,
    ScriptExecutionError,
    ScriptResultTooLargeError,
)
from ..models import (
    MAX_HTML_LENGTH,
    MAX_IMAGES,
    MAX_LINKS,
    MAX_SCREENSHOT_SIZE,
    MAX_SCRIPT_RESULT_SIZE,
    MAX_TEXT_LENGTH,
    Image,
    Link,
    NavigateResult,
    PageContent,
    PageInfo,
    ScriptResult,
)
from .common import evaluate


logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 30_000

_ABSOLUTE_SCHEMES = ("http://", "https://")

_EXTRACT_JS = r"""
(sel) => {
  let root;
  try {
    root = sel
      ? document.querySelector(sel)
      : (document.querySelector('main') ||
         document.querySelector('article') ||
         document.querySelector('[role="main"]') ||
         document.body);
  } catch (e) {
    return { invalid_selector: String((e && e.message) || e) };
  }
  if (!root) return null;

  const SKIP = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE']);
  const BLOCK = new Set(['block', 'flex', 'grid', 'list-item', 'table', 'table-row']);
  const walker = document.createTreeWalker(
    root,
    NodeFilter.SHOW_ELEMENT | NodeFilter.SHOW_TEXT,
    {
      acceptNode(node) {
        if (node.nodeType === Node.TEXT_NODE) return NodeFilter.FILTER_ACCEPT;
        if (SKIP.has(node.tagName)) return NodeFilter.FILTER_REJECT;
        const style = window.getComputedStyle(node);
        if (style.display === 'none' || style.visibility === 'hidden') {
          return NodeFilter.FILTER_REJECT;
        }
        return NodeFilter.FILTER_ACCEPT;
      },
    }
  );
  const parts = [];
  let node = walker.nextNode();
  while (node) {
    if (node.nodeType === Node.TEXT_NODE) {
      parts.push(node.nodeValue || '');
    } else if (node.tagName === 'BR' || BLOCK.has(window.getComputedStyle(node).display)) {
      parts.push('\n');
    }
    node = walker.nextNode();
  }

  const scope = sel ? root : document;
  const links = Array.from(scope.querySelectorAll('a[href]')).map((a) => ({
    text: a.textContent || '',
    href: a.href || '',
  }));
  const images = Array.from(scope.querySelectorAll('img[src]')).map((img) => ({
    alt: img.getAttribute('alt') || '',
    src: img.src || '',
  }));

  return {
    url: window.location.href,
    title: document.title,
    text: parts.join(''),
    html: sel ? root.innerHTML : null,
    links,
    images,
  };
}
"""

_RUN_SCRIPT_JS = r"""
(code) => {
  const fn = new Function(`return (async () => { ${code} })()`);
  return fn();
}
"""

_SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_TAG_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"""\s+on\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)


def normalize_text(raw: str | None, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Collapse horizontal whitespace, trim around newlines, cap blank runs at one empty line."""
    if not raw:
        return ""
    s = raw.strip()
    s = re.sub(r"[^\S\n]+", " ", s)
    s = re.sub(r" ?\n ?", "\n", s)
    s = re.sub(r"\n{3,}", "\n\n", s)
    return s[:max_length]


def sanitize_html(html: str | None, max_length: int = MAX_HTML_LENGTH) -> str:
    """Strip script tags, inline event handlers and iframes."""
    if not html:
        return ""
    s = _SCRIPT_TAG_RE.sub("", html)
    s = _EVENT_HANDLER_RE.sub("", s)
    s = _IFRAME_TAG_RE.sub("", s)
    return s[:max_length]


def dedupe_links(raw: Iterable[dict[str, Any]], limit: int = MAX_LINKS) -> list[Link]:
    seen: set[str] = set()
    out: list[Link] = []
    for r in raw:
        href = (r.get("href") or "").strip()
        if not href.startswith(_ABSOLUTE_SCHEMES) or href in seen:
            continue
        seen.add(href)
        out.append(Link(text=re.sub(r"\s+", " ", (r.get("text") or "")).strip(), href=href))
        if len(out) >= limit:
            break
    return out


def dedupe_images(raw: Iterable[dict[str, Any]], limit: int = MAX_IMAGES) -> list[Image]:
    seen: set[str] = set()
    out: list[Image] = []
    for r in raw:
        src = (r.get("src") or "").strip()
        if not src.startswith(_ABSOLUTE_SCHEMES) or src in seen:
            continue
        seen.add(src)
        out.append(Image(alt=(r.get("alt") or "").strip(), src=src))
        if len(out) >= limit:
            break
    return out


async def scrape_page(page: Any, selector: str | None = None) -> PageContent:
    """Reduce the current page (or one subtree of it) to capped text, links and images.

    With `selector`, extraction is scoped to the first match and sanitized HTML
    is included; no match raises ElementNotFoundError.
    """
    selector = (selector or "").strip() or None
    raw = await evaluate(page, _EXTRACT_JS, selector)
    if raw is None:
        if selector:
            raise ElementNotFoundError(f"Element not found: {selector}")
        raise ElementNotFoundError("Page has no body to extract")
    if raw.get("invalid_selector"):
        raise InvalidInputError(f"Invalid CSS selector {selector!r}: {raw['invalid_selector']}")

    content = PageContent(
        url=raw.get("url") or page.url,
        title=raw.get("title") or "",
        text=normalize_text(raw.get("text")),
        links=dedupe_links(raw.get("links") or []),
        images=dedupe_images(raw.get("images") or []),
    )
    if selector:
        content.selector = selector
        content.html = sanitize_html(raw.get("html"))

    logger.debug(
        "scraped %s: %d chars, %d links, %d images",
        content.url,
        len(content.text),
        len(content.links),
        len(content.images),
    )
    return content


async def execute_script(page: Any, script: str) -> ScriptResult:
    """Run `script` as the body of an async function in the page.

    Results larger than MAX_SCRIPT_RESULT_SIZE (serialized JSON bytes) are
    rejected rather than truncated.
    """
    if not script or not script.strip():
        raise InvalidInputError("Script is empty")

    try:
        result = await page.evaluate(_RUN_SCRIPT_JS, script)
    except PlaywrightError as e:
        raise ScriptExecutionError(f"Script execution failed: {e.message}") from e

    try:
        encoded = json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ScriptExecutionError(f"Script result is not JSON-serializable: {e}") from e

    size = len(encoded.encode("utf-8"))
    if size > MAX_SCRIPT_RESULT_SIZE:
        raise ScriptResultTooLargeError(
            f"Script result too large: {size} bytes (max {MAX_SCRIPT_RESULT_SIZE})"
        )
    return ScriptResult(script=script, result=result, size=size)


def validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if not parsed.scheme or (parsed.scheme in ("http", "https") and not parsed.netloc):
        raise InvalidInputError(f"Invalid URL: {url}")
    return url


async def navigate(page: Any, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> NavigateResult:
    url = validate_url(url)
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeoutError(f"Navigation to {url} timed out after {timeout_ms}ms") from e
    except PlaywrightError as e:
        raise NavigationError(f"Navigation failed: {e.message}") from e
    return NavigateResult(success=True, url=page.url, title=await page.title())


async def take_screenshot(page: Any, full_page: bool = False) -> bytes:
    try:
        data = await page.screenshot(full_page=full_page, type="png")
    except PlaywrightError as e:
        raise ScreenshotError(f"Screenshot failed: {e.message}") from e
    if len(data) > MAX_SCREENSHOT_SIZE:
        raise ScreenshotError(f"Screenshot too large: {len(data)} bytes (max {MAX_SCREENSHOT_SIZE})")
    return data


async def get_page_info(page: Any) -> PageInfo:
    return PageInfo(url=page.url, title=await page.title())
