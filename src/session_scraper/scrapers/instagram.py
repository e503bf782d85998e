"""Instagram profiles, post grids and story availability."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any

from ..errors import ErrorKind, InvalidInputError
from ..models import Record
from ..parse import clean_text, parse_number_in_text
from .base import NAVIGATION_TIMEOUT_MS, SiteAdapter
from .common import clamp_count, evaluate, human_delay


logger = logging.getLogger(__name__)

BASE_URL = "https://www.instagram.com"
MAX_POSTS = 50
SCROLL_DELAY_MS = 1500

_USERNAME_RE = re.compile(r"^[A-Za-z0-9._]{1,30}$")
_SHORTCODE_RE = re.compile(r"/(?:p|reel)/([^/?#]+)")

# Checked in order; the login wall text also appears on most public pages,
# so it only counts when the profile header never rendered.
SENTINELS: dict[str, ErrorKind] = {
    "Sorry, this page isn't available": ErrorKind.PROFILE_NOT_FOUND,
    "Sorry, this page isn’t available": ErrorKind.PROFILE_NOT_FOUND,
    "Please wait a few minutes before you try again": ErrorKind.RATE_LIMITED,
    "Log in": ErrorKind.LOGIN_REQUIRED,
    "Sign up": ErrorKind.LOGIN_REQUIRED,
}

POST_LINK_SELECTOR = 'article a[href*="/p/"], article a[href*="/reel/"], main a[href*="/p/"], main a[href*="/reel/"]'


@dataclass
class InstagramProfile(Record):
    username: str
    display_name: str
    bio: str | None = None
    website: str | None = None
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    verified: bool = False
    profile_image_url: str | None = None
    is_private: bool = False


@dataclass
class InstagramPost(Record):
    id: str
    url: str
    type: str = "image"  # image | video | carousel
    caption: str | None = None
    likes_count: int = 0
    comments_count: int = 0
    timestamp: str | None = None
    thumbnail_url: str | None = None


@dataclass
class InstagramStory(Record):
    id: str
    type: str
    url: str
    timestamp: str | None = None


@dataclass
class InstagramPostsResult(Record):
    username: str
    posts: list[InstagramPost]
    has_more: bool


_PROFILE_JS = r"""
() => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  const header = document.querySelector('header section') || document.querySelector('header');
  if (!header) return null;
  const name = header.querySelector('h1, h2, span[class*="x1lliihq"]');
  const bio = header.querySelector('h1 ~ span, div[class*="-vDXg"], span[class*="_aacu"]');
  const website = header.querySelector('a[href*="l.instagram.com"]');
  const stats = Array.from(header.querySelectorAll('ul li')).map((li) => {
    const num = li.querySelector('span[title]');
    return { text: txt(li), title: num ? num.getAttribute('title') : null };
  });
  const img = document.querySelector('header img[alt*="profile picture"]') ||
              document.querySelector('header canvas + img') ||
              document.querySelector('header img');
  const body = document.body ? document.body.innerText : '';
  return {
    display_name: txt(name),
    bio: txt(bio) || null,
    website: txt(website) || null,
    stats,
    image: img ? img.getAttribute('src') : null,
    verified: !!document.querySelector('header svg[aria-label="Verified"]'),
    private: !!document.querySelector('h2[class*="private"]') || body.includes('This account is private'),
  };
}
"""

_POSTS_JS = r"""
(sel) => Array.from(document.querySelectorAll(sel)).map((a) => {
  const img = a.querySelector('img');
  return {
    href: a.getAttribute('href') || '',
    thumbnail: img ? img.getAttribute('src') : null,
    alt: img ? img.getAttribute('alt') : null,
    video: !!a.querySelector('svg[aria-label*="Video"], svg[aria-label*="Reel"]'),
    carousel: !!a.querySelector('svg[aria-label*="Carousel"]'),
  };
})
"""

_STORY_RING_JS = r"""
() => !!document.querySelector(
  'header canvas[class*="story"], header div[role="button"] canvas, header a[href*="/stories/"]'
)
"""


def _validate_username(username: str) -> str:
    u = (username or "").strip().lstrip("@").strip("/")
    if not _USERNAME_RE.match(u):
        raise InvalidInputError(f"Invalid Instagram username: {username!r}")
    return u


def profile_url(username: str) -> str:
    return f"{BASE_URL}/{username}/"


def profile_from_raw(username: str, raw: dict[str, Any]) -> InstagramProfile:
    posts = followers = following = 0
    for i, stat in enumerate(raw.get("stats") or []):
        text = (stat.get("text") or "").lower()
        # The title attribute holds the exact follower count when the label is abbreviated
        num = parse_number_in_text(stat.get("title") or stat.get("text"))
        if "following" in text:
            following = num
        elif "follower" in text:
            followers = num
        elif "post" in text:
            posts = num
        elif i == 0:
            posts = num
        elif i == 1:
            followers = num
        elif i == 2:
            following = num

    return InstagramProfile(
        username=username,
        display_name=clean_text(raw.get("display_name")) or username,
        bio=raw.get("bio"),
        website=raw.get("website"),
        followers_count=followers,
        following_count=following,
        posts_count=posts,
        verified=bool(raw.get("verified")),
        profile_image_url=raw.get("image"),
        is_private=bool(raw.get("private")),
    )


def post_from_raw(raw: dict[str, Any]) -> InstagramPost | None:
    href = raw.get("href") or ""
    m = _SHORTCODE_RE.search(href)
    if not m:
        return None
    if raw.get("video"):
        kind = "video"
    elif raw.get("carousel"):
        kind = "carousel"
    else:
        kind = "image"
    return InstagramPost(
        id=m.group(1),
        url=href if href.startswith("http") else BASE_URL + href,
        type=kind,
        caption=raw.get("alt") or None,
        thumbnail_url=raw.get("thumbnail"),
    )


class InstagramProfileAdapter(SiteAdapter[InstagramProfile]):
    name = "instagram"
    loaded_selector = "header section"
    sentinels = SENTINELS
    paced = True

    def __init__(self, page: Any, username: str, **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.username = username

    async def extract_items(self) -> list[InstagramProfile]:
        raw = await evaluate(self.page, _PROFILE_JS)
        if raw is None:
            return []
        return [profile_from_raw(self.username, raw)]

    def item_key(self, item: InstagramProfile) -> str | None:
        return item.username


class InstagramPostsAdapter(SiteAdapter[InstagramPost]):
    name = "instagram"
    loaded_selector = POST_LINK_SELECTOR
    # Private or empty accounts never render the grid
    empty_when_missing = True
    scroll_delay_ms = SCROLL_DELAY_MS
    paced = True

    async def extract_items(self) -> list[InstagramPost]:
        raws = await evaluate(self.page, _POSTS_JS, POST_LINK_SELECTOR) or []
        return [p for p in (post_from_raw(r) for r in raws) if p is not None]

    def item_key(self, item: InstagramPost) -> str | None:
        return item.id


async def scrape_instagram_profile(
    page: Any, username: str, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> InstagramProfile:
    username = _validate_username(username)
    adapter = InstagramProfileAdapter(page, username, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(profile_url(username))
    await human_delay()
    items = await adapter.extract_items()
    if not items:
        # Header vanished between load and extraction
        return InstagramProfile(username=username, display_name=username)
    return items[0]


async def scrape_instagram_posts(
    page: Any, username: str, count: int = 12, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> InstagramPostsResult:
    username = _validate_username(username)
    count = clamp_count(count, MAX_POSTS)

    adapter = InstagramPostsAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(profile_url(username)):
        logger.info("instagram: no posts visible for @%s", username)
        return InstagramPostsResult(username=username, posts=[], has_more=False)
    posts, has_more = await adapter.collect(count)
    return InstagramPostsResult(username=username, posts=posts, has_more=has_more)


async def scrape_instagram_stories(
    page: Any, username: str, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> list[InstagramStory]:
    """Report whether @username has an active story.

    Viewing stories marks them as seen, so only the ring on the profile header
    is inspected and a single placeholder entry is returned when it is present.
    """
    username = _validate_username(username)
    adapter = InstagramProfileAdapter(page, username, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(profile_url(username))
    await human_delay()
    if not await evaluate(page, _STORY_RING_JS):
        return []
    return [
        InstagramStory(
            id="stories-available",
            type="image",
            url=f"{BASE_URL}/stories/{username}/",
        )
    ]
