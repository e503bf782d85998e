"""Reddit users, subreddit listings and post pages with comment trees.

Works on the current web UI (`shreddit-*` custom elements carry most data as
attributes) and falls back to older `data-testid` markup where it still shows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any

from ..errors import ElementNotFoundError, ErrorKind, InvalidInputError
from ..models import Record
from ..parse import clean_text, parse_number_in_text, parse_relative_date
from .base import NAVIGATION_TIMEOUT_MS, SiteAdapter
from .common import clamp_count, evaluate


logger = logging.getLogger(__name__)

BASE_URL = "https://www.reddit.com"
MAX_POSTS = 100
MAX_COMMENTS = 500
SORTS = ("hot", "new", "top")

_COMMENTS_ID_RE = re.compile(r"/comments/([a-z0-9]+)", re.IGNORECASE)
_USER_HREF_RE = re.compile(r"/user/([^/?#]+)")
_THING_RE = re.compile(r"(?:t[13]_|comment-)([a-z0-9]+)", re.IGNORECASE)
_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{2,32}$")

SENTINELS: dict[str, ErrorKind] = {
    "Sorry, nobody on Reddit goes by that name": ErrorKind.PROFILE_NOT_FOUND,
    "There aren’t any communities on Reddit with that name": ErrorKind.PROFILE_NOT_FOUND,
    "There aren't any communities on Reddit with that name": ErrorKind.PROFILE_NOT_FOUND,
    "page not found": ErrorKind.PROFILE_NOT_FOUND,
    "This account has been suspended": ErrorKind.ACCOUNT_SUSPENDED,
    "This community has been banned": ErrorKind.ACCOUNT_SUSPENDED,
    "This community is private": ErrorKind.PRIVATE_ACCOUNT,
    "You've been blocked by network security": ErrorKind.RATE_LIMITED,
    "Too Many Requests": ErrorKind.RATE_LIMITED,
    "Log in to continue": ErrorKind.LOGIN_REQUIRED,
}

POST_SELECTOR = 'shreddit-post, [data-testid="post-container"], article'


@dataclass
class RedditUser(Record):
    username: str
    karma: int = 0
    post_karma: int = 0
    comment_karma: int = 0
    cake_day: str | None = None
    about: str | None = None
    avatar_url: str | None = None


@dataclass
class RedditPost(Record):
    id: str
    title: str
    url: str
    author: str
    subreddit: str
    score: int = 0
    upvote_ratio: float | None = None
    comments_count: int = 0
    created_at: str | None = None
    content: str | None = None
    content_type: str = "text"  # text | link | image | video
    thumbnail_url: str | None = None
    is_nsfw: bool = False
    is_pinned: bool = False


@dataclass
class RedditComment(Record):
    id: str | None
    author: str
    content: str
    score: int = 0
    created_at: str | None = None
    depth: int = 0
    replies: list["RedditComment"] = field(default_factory=list)


@dataclass
class SubredditListing(Record):
    subreddit: str
    sort: str
    posts: list[RedditPost]
    has_more: bool


@dataclass
class RedditPostWithComments(Record):
    post: RedditPost
    comments: list[RedditComment]
    total_comments: int


_USER_JS = r"""
() => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  const stat = (label) => {
    const el = Array.from(document.querySelectorAll('p, span, div'))
      .find((e) => e.children.length === 0 && txt(e) === label);
    if (!el || !el.parentElement) return '';
    const num = el.parentElement.querySelector('faceplate-number');
    return num ? (num.getAttribute('number') || txt(num)) : txt(el.parentElement);
  };
  const karmaEl = document.querySelector('[id*="karma"] span, [class*="karma"]');
  const cake = document.querySelector('[id*="cake"] time, [data-testid="cake-day"] time, time[data-testid="cake-day"]')
    || document.querySelector('[id*="cake"]');
  const about = document.querySelector('[data-testid="profile-description"], [class*="about"], [class*="bio"]');
  const avatar = document.querySelector('img[alt*="avatar" i], img[src*="avatar"]');
  return {
    karma: txt(karmaEl),
    post_karma: stat('Post karma'),
    comment_karma: stat('Comment karma'),
    cake_day: cake ? (cake.getAttribute('datetime') || txt(cake)) : null,
    about: txt(about) || null,
    avatar: avatar ? avatar.getAttribute('src') : null,
  };
}
"""

_POSTS_JS = r"""
() => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  const src = (el) => (el ? el.getAttribute('src') : null);
  return Array.from(document.querySelectorAll('shreddit-post, [data-testid="post-container"], article')).map((p) => {
    const link = p.querySelector('a[href*="/comments/"]') || p.querySelector('[data-click-id="body"]');
    const authorLink = p.querySelector('a[href*="/user/"]');
    const time = p.querySelector('time, [data-click-id="timestamp"]');
    return {
      permalink: p.getAttribute('permalink') || (link ? link.getAttribute('href') : '') || '',
      thing_id: p.getAttribute('id') || '',
      title: p.getAttribute('post-title') || txt(p.querySelector('h1, h3, [slot="title"], a[data-click-id="body"]')),
      author: p.getAttribute('author') || (authorLink ? authorLink.getAttribute('href') : '') || '',
      subreddit: p.getAttribute('subreddit-prefixed-name') || '',
      score: p.getAttribute('score') || txt(p.querySelector('[id*="vote-arrows"] span, [class*="score"], faceplate-number')),
      comments: p.getAttribute('comment-count') || txt(p.querySelector('[data-click-id="comments"]')),
      created_at: p.getAttribute('created-timestamp') || (time ? (time.getAttribute('datetime') || txt(time)) : null),
      post_type: p.getAttribute('post-type') || '',
      has_image: !!p.querySelector('img[src*="i.redd.it"], img[src*="preview.redd.it"]'),
      has_video: !!p.querySelector('video, shreddit-player, [data-click-id="media"]'),
      has_outbound: !!p.querySelector('a[data-click-id="outbound"]'),
      thumbnail: src(p.querySelector('img[src*="thumb"], img[alt="Post image"]')),
      nsfw: p.hasAttribute('nsfw') || !!p.querySelector('[class*="nsfw"], [aria-label*="NSFW"]'),
      pinned: p.hasAttribute('stickied') || !!p.querySelector('[class*="pinned"], [class*="stickied"]'),
      body: txt(p.querySelector('[slot="text-body"], [data-testid="post-content"]')) || null,
    };
  });
}
"""

_COMMENTS_JS = r"""
() => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  return Array.from(document.querySelectorAll('shreddit-comment, [data-testid="comment"]')).map((c) => {
    const authorLink = c.querySelector('a[href*="/user/"]');
    const body = c.querySelector(':scope > [slot="comment"]') || c.querySelector('[slot="comment"], p');
    const time = c.querySelector('time');
    return {
      thing_id: c.getAttribute('thingid') || c.getAttribute('id') || '',
      depth: c.getAttribute('depth'),
      author: c.getAttribute('author') || txt(authorLink),
      content: txt(body),
      score: c.getAttribute('score') || txt(c.querySelector('[class*="score"], faceplate-number')),
      created_at: time ? time.getAttribute('datetime') : null,
    };
  });
}
"""


def _to_int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    # Reddit renders negative scores with a minus sign
    s = str(value or "").strip()
    if s.startswith("-"):
        return -parse_number_in_text(s[1:])
    return parse_number_in_text(s)


def _content_type(raw: dict[str, Any]) -> str:
    kind = (raw.get("post_type") or "").lower()
    if kind in ("image", "gallery", "multi_media"):
        return "image"
    if kind in ("video", "gif"):
        return "video"
    if kind == "link":
        return "link"
    if kind in ("text", "self"):
        return "text"
    if raw.get("has_video"):
        return "video"
    if raw.get("has_image"):
        return "image"
    if raw.get("has_outbound"):
        return "link"
    return "text"


def _author(value: str | None) -> str:
    value = (value or "").strip()
    m = _USER_HREF_RE.search(value)
    if m:
        return m.group(1)
    return value.removeprefix("u/") or "[deleted]"


def post_from_raw(raw: dict[str, Any], subreddit: str = "") -> RedditPost | None:
    permalink = raw.get("permalink") or ""
    m = _COMMENTS_ID_RE.search(permalink) or _THING_RE.match(raw.get("thing_id") or "")
    if not m:
        return None
    created = raw.get("created_at")
    return RedditPost(
        id=m.group(1),
        title=clean_text(raw.get("title")),
        url=permalink if permalink.startswith("http") else BASE_URL + permalink,
        author=_author(raw.get("author")),
        subreddit=(raw.get("subreddit") or "").removeprefix("r/") or subreddit,
        score=_to_int(raw.get("score")),
        comments_count=_to_int(raw.get("comments")),
        created_at=parse_relative_date(created) or created or None,
        content=raw.get("body"),
        content_type=_content_type(raw),
        thumbnail_url=raw.get("thumbnail"),
        is_nsfw=bool(raw.get("nsfw")),
        is_pinned=bool(raw.get("pinned")),
    )


def comment_from_raw(raw: dict[str, Any]) -> RedditComment:
    m = _THING_RE.search(raw.get("thing_id") or "")
    try:
        depth = int(raw.get("depth") or 0)
    except (TypeError, ValueError):
        depth = 0
    return RedditComment(
        id=m.group(1) if m else None,
        author=_author(raw.get("author")),
        content=clean_text(raw.get("content")),
        score=_to_int(raw.get("score")),
        created_at=raw.get("created_at"),
        depth=depth,
    )


def nest_comments(flat: list[RedditComment]) -> list[RedditComment]:
    """Rebuild the reply tree from document-ordered comments and their depths."""
    roots: list[RedditComment] = []
    stack: list[RedditComment] = []
    for c in flat:
        c.replies = []
        while stack and stack[-1].depth >= c.depth:
            stack.pop()
        if stack:
            stack[-1].replies.append(c)
        else:
            roots.append(c)
        stack.append(c)
    return roots


def _validate_name(value: str, what: str, prefixes: tuple[str, ...]) -> str:
    v = (value or "").strip().strip("/")
    for p in prefixes:
        v = v.removeprefix(f"{p}/")
    if not _NAME_RE.match(v):
        raise InvalidInputError(f"Invalid Reddit {what}: {value!r}")
    return v


class RedditUserAdapter(SiteAdapter[RedditUser]):
    name = "reddit"
    # Karma counters only render on an existing profile
    loaded_selector = 'faceplate-number, [id*="karma"], [data-testid="profile-main"]'
    sentinels = SENTINELS

    def __init__(self, page: Any, username: str, **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.username = username

    async def extract_items(self) -> list[RedditUser]:
        raw = await evaluate(self.page, _USER_JS) or {}
        post_karma = _to_int(raw.get("post_karma"))
        comment_karma = _to_int(raw.get("comment_karma"))
        karma = _to_int(raw.get("karma")) or post_karma + comment_karma
        return [
            RedditUser(
                username=self.username,
                karma=karma,
                post_karma=post_karma,
                comment_karma=comment_karma,
                cake_day=parse_relative_date(raw.get("cake_day")) or raw.get("cake_day"),
                about=raw.get("about"),
                avatar_url=raw.get("avatar"),
            )
        ]

    def item_key(self, item: RedditUser) -> str | None:
        return item.username


class RedditListingAdapter(SiteAdapter[RedditPost]):
    name = "reddit"
    loaded_selector = POST_SELECTOR
    sentinels = SENTINELS
    empty_sentinels = ("There are no posts", "hasn't posted yet", "hasn’t posted yet")
    paced = True

    def __init__(self, page: Any, subreddit: str = "", **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.subreddit = subreddit

    async def extract_items(self) -> list[RedditPost]:
        raws = await evaluate(self.page, _POSTS_JS) or []
        return [p for p in (post_from_raw(r, self.subreddit) for r in raws) if p is not None]

    def item_key(self, item: RedditPost) -> str | None:
        return item.id


class RedditCommentsAdapter(SiteAdapter[RedditComment]):
    name = "reddit"
    loaded_selector = POST_SELECTOR
    sentinels = SENTINELS
    max_no_growth = 3

    async def extract_items(self) -> list[RedditComment]:
        raws = await evaluate(self.page, _COMMENTS_JS) or []
        return [comment_from_raw(r) for r in raws]

    def item_key(self, item: RedditComment) -> str | None:
        return item.id or f"{item.author}:{item.content[:100]}"


async def scrape_reddit_user(
    page: Any, username: str, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> RedditUser:
    username = _validate_name(username, "username", ("user", "u"))
    adapter = RedditUserAdapter(page, username, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(f"{BASE_URL}/user/{username}/")
    return (await adapter.extract_items())[0]


async def scrape_reddit_subreddit(
    page: Any,
    subreddit: str,
    count: int = 25,
    sort: str = "hot",
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
) -> SubredditListing:
    subreddit = _validate_name(subreddit, "subreddit", ("r",))
    if sort not in SORTS:
        raise InvalidInputError(f"Unknown sort {sort!r} (expected hot, new or top)")
    count = clamp_count(count, MAX_POSTS)

    adapter = RedditListingAdapter(page, subreddit, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(f"{BASE_URL}/r/{subreddit}/{sort}/"):
        return SubredditListing(subreddit=subreddit, sort=sort, posts=[], has_more=False)
    posts, has_more = await adapter.collect(count)
    return SubredditListing(subreddit=subreddit, sort=sort, posts=posts, has_more=has_more)


async def scrape_reddit_post(
    page: Any, url: str, max_comments: int = 20, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> RedditPostWithComments:
    m = _COMMENTS_ID_RE.search(url or "")
    if not m:
        raise InvalidInputError(
            "Invalid Reddit post URL. Expected format: https://reddit.com/r/subreddit/comments/id/title"
        )
    post_id = m.group(1)
    max_comments = clamp_count(max_comments, MAX_COMMENTS, minimum=0)

    adapter = RedditCommentsAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(url)

    post = next(
        (p for p in (post_from_raw(r) for r in await evaluate(page, _POSTS_JS) or []) if p and p.id == post_id),
        None,
    )
    if post is None:
        raise ElementNotFoundError(f"Post {post_id} not found on page")

    flat: list[RedditComment] = []
    if max_comments:
        flat, _ = await adapter.collect(max_comments)
    post.comments_count = max(post.comments_count, len(flat))
    return RedditPostWithComments(post=post, comments=nest_comments(flat), total_comments=len(flat))
