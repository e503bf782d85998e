"""X/Twitter scraping against the logged-in browser session.

Profiles, user/home timelines, single posts with their thread and replies,
live search and lists. Raw fields come out of the DOM in one evaluate per
pass; classification and number parsing happen in Python.

Tweet type classification (first match wins):
- a "reposted" social-context line makes it a retweet
- "Replying to @x" makes it a reply, or a thread when x is the tweet's own author
- otherwise a thread indicator in the text or markup makes it a thread
- else original
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import re
from typing import Any
from urllib.parse import quote

from ..errors import ElementNotFoundError, ErrorKind, InvalidInputError
from ..models import Record
from ..parse import clean_text, parse_number_in_text, parse_relative_date
from .base import NAVIGATION_TIMEOUT_MS, SiteAdapter
from .common import clamp_count, evaluate


logger = logging.getLogger(__name__)

BASE_URL = "https://x.com"
MAX_TWEETS = 100
MAX_REPLIES = 20

TWEET_SELECTOR = 'article[data-testid="tweet"]'

_STATUS_RE = re.compile(r"/([A-Za-z0-9_]{1,15})/status/(\d+)")
_HANDLE_RE = re.compile(r"@([A-Za-z0-9_]{1,15})")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,15}$")
_POSTS_COUNT_RE = re.compile(r"([0-9][0-9.,]*\s*[KMB]?)\s+(?:posts|tweets)", re.IGNORECASE)

# Anchored at the start of the (left-trimmed) text
_THREAD_TEXT_PATTERNS = (
    re.compile(r"^\d+/\d+"),  # 1/5
    re.compile(r"^\d+/(?:\s|$)"),  # 1/
    re.compile(r"^\d+\.\d+"),  # 1.5
    re.compile(r"^\(\d+[/.]\d+\)"),  # (1/5), (2.3)
    re.compile(r"^thread\b", re.IGNORECASE),
)
THREAD_EMOJI = "\U0001F9F5"

SENTINELS: dict[str, ErrorKind] = {
    "This account doesn’t exist": ErrorKind.PROFILE_NOT_FOUND,
    "This account doesn't exist": ErrorKind.PROFILE_NOT_FOUND,
    "this page doesn’t exist": ErrorKind.PROFILE_NOT_FOUND,
    "this page doesn't exist": ErrorKind.PROFILE_NOT_FOUND,
    "Account suspended": ErrorKind.ACCOUNT_SUSPENDED,
    "These posts are protected": ErrorKind.PRIVATE_ACCOUNT,
    "These Tweets are protected": ErrorKind.PRIVATE_ACCOUNT,
    "This List is private": ErrorKind.PRIVATE_ACCOUNT,
    "Rate limit exceeded": ErrorKind.RATE_LIMITED,
    "Something went wrong. Try reloading.": ErrorKind.RATE_LIMITED,
    "Sign in to X": ErrorKind.LOGIN_REQUIRED,
    "Log in to X": ErrorKind.LOGIN_REQUIRED,
    "Don’t miss what’s happening": ErrorKind.LOGIN_REQUIRED,
    "Don't miss what's happening": ErrorKind.LOGIN_REQUIRED,
}


class TweetType(str, Enum):
    ORIGINAL = "original"
    REPLY = "reply"
    RETWEET = "retweet"
    THREAD = "thread"


@dataclass
class TwitterProfile(Record):
    username: str
    display_name: str
    bio: str | None = None
    location: str | None = None
    website: str | None = None
    join_date: str | None = None
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    verified: bool = False
    profile_image_url: str | None = None
    banner_image_url: str | None = None


@dataclass
class TwitterAuthor(Record):
    username: str
    display_name: str
    profile_image_url: str | None = None
    verified: bool = False


@dataclass
class TwitterMetrics(Record):
    replies: int = 0
    retweets: int = 0
    likes: int = 0
    views: int = 0


@dataclass
class TwitterMedia(Record):
    type: str  # image | video | gif
    url: str
    thumbnail_url: str | None = None


@dataclass
class QuotedTweet(Record):
    text: str
    author_username: str | None = None
    id: str | None = None
    url: str | None = None


@dataclass
class Tweet(Record):
    id: str
    url: str
    text: str
    author: TwitterAuthor
    created_at: str | None
    metrics: TwitterMetrics = field(default_factory=TwitterMetrics)
    media: list[TwitterMedia] = field(default_factory=list)
    type: TweetType = TweetType.ORIGINAL
    quoted_tweet: QuotedTweet | None = None
    in_reply_to: str | None = None


@dataclass
class TweetWithContext(Tweet):
    thread: list[Tweet] = field(default_factory=list)
    replies: list[Tweet] = field(default_factory=list)


@dataclass
class TimelineResult(Record):
    username: str | None
    tweets: list[Tweet]
    has_more: bool


@dataclass
class SearchResults(Record):
    query: str
    tweets: list[Tweet]
    has_more: bool


@dataclass
class TwitterListInfo(Record):
    id: str
    url: str
    name: str
    description: str | None = None
    member_count: int = 0
    follower_count: int = 0


@dataclass
class TwitterListTimeline(Record):
    info: TwitterListInfo
    tweets: list[Tweet]
    has_more: bool


# --------------------------------------------------------------------------- #
# Classification
# --------------------------------------------------------------------------- #


@dataclass
class TweetMarkers:
    """Classification-relevant markup found inside one tweet article."""

    social_context: str | None = None
    reply_context: str | None = None
    has_show_thread_link: bool = False
    has_large_card: bool = False
    has_show_more: bool = False

    @property
    def is_repost(self) -> bool:
        ctx = (self.social_context or "").lower()
        return "reposted" in ctx or "retweeted" in ctx

    @property
    def is_reply(self) -> bool:
        return (self.reply_context or "").strip().startswith("Replying to")

    @property
    def replying_to(self) -> str | None:
        if not self.is_reply:
            return None
        m = _HANDLE_RE.search(self.reply_context or "")
        return m.group(1) if m else None

    @property
    def has_thread_markup(self) -> bool:
        return self.has_show_thread_link or self.has_large_card or self.has_show_more

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "TweetMarkers":
        reply = clean_text(raw.get("reply_context")) or None
        # A body that itself starts with "Replying to" is not reply markup
        if reply and clean_text(raw.get("text")).startswith(reply):
            reply = None
        return cls(
            social_context=raw.get("social_context"),
            reply_context=reply,
            has_show_thread_link=bool(raw.get("show_thread")),
            has_large_card=bool(raw.get("large_card")),
            has_show_more=bool(raw.get("show_more")),
        )


def detect_thread_indicators(text: str | None, markers: TweetMarkers | None = None) -> bool:
    """Any one text pattern or markup hint is enough."""
    if markers is not None and markers.has_thread_markup:
        return True
    s = (text or "").lstrip()
    if not s:
        return False
    if THREAD_EMOJI in s:
        return True
    return any(p.match(s) for p in _THREAD_TEXT_PATTERNS)


def detect_tweet_type(markers: TweetMarkers | None, text: str | None, viewer: str | None) -> TweetType:
    """Pure function of (markup, text, viewing-as username)."""
    markers = markers or TweetMarkers()
    if markers.is_repost:
        return TweetType.RETWEET
    if markers.is_reply:
        target = markers.replying_to
        me = (viewer or "").lstrip("@")
        if target and me and target.lower() == me.lower():
            return TweetType.THREAD
        return TweetType.REPLY
    if detect_thread_indicators(text, markers):
        return TweetType.THREAD
    return TweetType.ORIGINAL


# --------------------------------------------------------------------------- #
# In-page extraction
# --------------------------------------------------------------------------- #

_TWEETS_JS = r"""
() => {
  const txt = (el) => ((el && (el.innerText || el.textContent)) || '').trim();
  const label = (el) => (el ? (el.getAttribute('aria-label') || txt(el)) : '');
  const inQuote = (el) => !!el.closest('div[role="link"]');

  return Array.from(document.querySelectorAll('article[data-testid="tweet"]')).map((article) => {
    const timeEl = Array.from(article.querySelectorAll('time')).find((t) => !inQuote(t));
    const statusLink = timeEl
      ? timeEl.closest('a[href*="/status/"]')
      : article.querySelector('a[href*="/status/"]');

    const texts = Array.from(article.querySelectorAll('[data-testid="tweetText"]'));
    const main = texts.find((t) => !inQuote(t));
    const quotedText = texts.find((t) => inQuote(t));
    let quoted = null;
    if (quotedText) {
      const box = quotedText.closest('div[role="link"]');
      const qLink = box.querySelector('a[href*="/status/"]');
      quoted = {
        text: txt(quotedText),
        user: txt(box.querySelector('[data-testid="User-Name"]')),
        href: qLink ? qLink.href : '',
      };
    }

    const userName = Array.from(article.querySelectorAll('[data-testid="User-Name"]')).find((u) => !inQuote(u));
    const avatar = article.querySelector('[data-testid="Tweet-User-Avatar"] img');

    const media = [];
    article.querySelectorAll('[data-testid="tweetPhoto"] img').forEach((img) => {
      if (!inQuote(img) && img.src) media.push({ type: 'image', url: img.src, thumbnail: null });
    });
    article.querySelectorAll('[data-testid="videoPlayer"]').forEach((player) => {
      if (inQuote(player)) return;
      const video = player.querySelector('video');
      const isGif = /\bGIF\b/.test(txt(player));
      media.push({
        type: isGif ? 'gif' : 'video',
        url: (video && (video.currentSrc || video.src)) || '',
        thumbnail: (video && video.poster) || null,
      });
    });

    const reply = Array.from(article.querySelectorAll('div')).find((d) => {
      const t = (d.textContent || '').trim();
      if (d.closest('[data-testid="tweetText"]') || d.querySelector('[data-testid="tweetText"]')) return false;
      return t.startsWith('Replying to') && t.length < 200;
    });

    const phrases = Array.from(article.querySelectorAll('a, span, button')).map((e) => (e.textContent || '').trim());

    return {
      href: statusLink ? statusLink.href : '',
      text: txt(main),
      user: txt(userName),
      verified: !!(userName && userName.querySelector('[data-testid="icon-verified"]')),
      avatar: avatar ? avatar.src : null,
      datetime: timeEl ? timeEl.getAttribute('datetime') : null,
      time_text: txt(timeEl),
      replies: label(article.querySelector('[data-testid="reply"]')),
      retweets: label(article.querySelector('[data-testid="retweet"], [data-testid="unretweet"]')),
      likes: label(article.querySelector('[data-testid="like"], [data-testid="unlike"]')),
      views: label(article.querySelector('a[href$="/analytics"]')),
      media,
      quoted,
      social_context: txt(article.querySelector('[data-testid="socialContext"]')) || null,
      reply_context: reply ? reply.textContent.trim() : null,
      show_thread: phrases.includes('Show this thread'),
      large_card: !!article.querySelector('[data-testid="card.layoutLarge.detail"]'),
      show_more:
        !!article.querySelector('[data-testid="tweet-text-show-more-link"]') ||
        phrases.includes('Show more'),
    };
  });
}
"""

_PROFILE_JS = r"""
() => {
  const txt = (sel) => {
    const el = document.querySelector(sel);
    return el ? (el.innerText || el.textContent || '').trim() : null;
  };
  const attr = (sel, name) => {
    const el = document.querySelector(sel);
    return el ? el.getAttribute(name) : null;
  };
  const header = document.querySelector('[data-testid="primaryColumn"] h2');
  return {
    user_name: txt('[data-testid="UserName"]'),
    bio: txt('[data-testid="UserDescription"]'),
    location: txt('[data-testid="UserLocation"]'),
    website: attr('[data-testid="UserUrl"]', 'href') || txt('[data-testid="UserUrl"]'),
    join_date: txt('[data-testid="UserJoinDate"]'),
    following: txt('a[href$="/following"]'),
    followers: txt('a[href$="/verified_followers"]') || txt('a[href$="/followers"]'),
    header: header && header.parentElement ? header.parentElement.innerText : null,
    verified: !!document.querySelector('[data-testid="UserName"] [data-testid="icon-verified"]'),
    avatar: attr('a[href$="/photo"] img', 'src'),
    banner: attr('a[href$="/header_photo"] img', 'src'),
  };
}
"""

_LIST_JS = r"""
() => {
  const column = document.querySelector('[data-testid="primaryColumn"]');
  if (!column) return null;
  const txt = (el) => ((el && (el.innerText || el.textContent)) || '').trim();
  const heading = column.querySelector('h2');
  const members = column.querySelector('a[href$="/members"]');
  const followers = column.querySelector('a[href$="/followers"]');
  const description = column.querySelector('[data-testid="listDescription"]');
  return {
    name: txt(heading),
    description: txt(description) || null,
    members: txt(members),
    followers: txt(followers),
  };
}
"""


def _split_user_text(user_text: str | None) -> tuple[str, str | None]:
    """'Display Name\\n@handle\\n·\\n2h' -> (display name, handle)."""
    lines = [ln.strip() for ln in (user_text or "").splitlines() if ln.strip()]
    display = lines[0] if lines else ""
    m = _HANDLE_RE.search(user_text or "")
    return display, (m.group(1) if m else None)


def _media_from_raw(raw: list[dict[str, Any]] | None) -> list[TwitterMedia]:
    out = []
    for m in raw or []:
        url = m.get("url") or m.get("thumbnail")
        if not url:
            continue
        out.append(TwitterMedia(type=m.get("type") or "image", url=url, thumbnail_url=m.get("thumbnail")))
    return out


def _quoted_from_raw(raw: dict[str, Any] | None) -> QuotedTweet | None:
    if not raw or not raw.get("text"):
        return None
    _, handle = _split_user_text(raw.get("user"))
    quoted = QuotedTweet(text=clean_text(raw["text"]), author_username=handle)
    m = _STATUS_RE.search(raw.get("href") or "")
    if m:
        quoted.author_username = quoted.author_username or m.group(1)
        quoted.id = m.group(2)
        quoted.url = f"{BASE_URL}/{m.group(1)}/status/{m.group(2)}"
    return quoted


def tweet_from_raw(raw: dict[str, Any]) -> Tweet | None:
    """Build a typed Tweet from one raw article; None when it has no status id.

    The article is classified as seen by its own author, so a reply counts as
    a thread only when the author is answering themselves.
    """
    m = _STATUS_RE.search(raw.get("href") or "")
    if not m:
        return None
    username, tweet_id = m.group(1), m.group(2)
    display, handle = _split_user_text(raw.get("user"))
    text = clean_text(raw.get("text"))
    markers = TweetMarkers.from_raw(raw)

    return Tweet(
        id=tweet_id,
        url=f"{BASE_URL}/{username}/status/{tweet_id}",
        text=text,
        author=TwitterAuthor(
            username=username,
            display_name=display or handle or username,
            profile_image_url=raw.get("avatar"),
            verified=bool(raw.get("verified")),
        ),
        created_at=raw.get("datetime") or parse_relative_date(raw.get("time_text")),
        metrics=TwitterMetrics(
            replies=parse_number_in_text(raw.get("replies")),
            retweets=parse_number_in_text(raw.get("retweets")),
            likes=parse_number_in_text(raw.get("likes")),
            views=parse_number_in_text(raw.get("views")),
        ),
        media=_media_from_raw(raw.get("media")),
        type=detect_tweet_type(markers, text, username),
        quoted_tweet=_quoted_from_raw(raw.get("quoted")),
        in_reply_to=markers.replying_to,
    )


def profile_from_raw(username: str, raw: dict[str, Any]) -> TwitterProfile:
    display, handle = _split_user_text(raw.get("user_name"))
    join = (raw.get("join_date") or "").replace("Joined", "").strip()
    posts = _POSTS_COUNT_RE.search(raw.get("header") or "")
    return TwitterProfile(
        username=handle or username,
        display_name=display or username,
        bio=raw.get("bio") or None,
        location=raw.get("location") or None,
        website=raw.get("website") or None,
        join_date=parse_relative_date(join) if join else None,
        followers_count=parse_number_in_text(raw.get("followers")),
        following_count=parse_number_in_text(raw.get("following")),
        posts_count=parse_number_in_text(posts.group(1)) if posts else 0,
        verified=bool(raw.get("verified")),
        profile_image_url=raw.get("avatar"),
        banner_image_url=raw.get("banner"),
    )


def _normalize_username(username: str) -> str:
    u = (username or "").strip().lstrip("@")
    if not _USERNAME_RE.match(u):
        raise InvalidInputError(f"Invalid Twitter username: {username!r}")
    return u


def post_url(url_or_id: str) -> tuple[str, str]:
    """Accept a status URL or a bare id; return (canonical url, id)."""
    s = (url_or_id or "").strip()
    if s.isdigit():
        return f"{BASE_URL}/i/status/{s}", s
    m = _STATUS_RE.search(s)
    if not m:
        raise InvalidInputError(f"Not a tweet URL: {url_or_id}")
    return f"{BASE_URL}/{m.group(1)}/status/{m.group(2)}", m.group(2)


# --------------------------------------------------------------------------- #
# Adapters
# --------------------------------------------------------------------------- #


class TwitterProfileAdapter(SiteAdapter[TwitterProfile]):
    name = "twitter"
    loaded_selector = '[data-testid="UserName"]'
    sentinels = SENTINELS

    def __init__(self, page: Any, username: str, **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.username = username

    async def extract_items(self) -> list[TwitterProfile]:
        raw = await evaluate(self.page, _PROFILE_JS)
        return [profile_from_raw(self.username, raw)] if raw else []

    def item_key(self, item: TwitterProfile) -> str | None:
        return item.username


class TweetFeedAdapter(SiteAdapter[Tweet]):
    """Any page whose content is a scrolling column of tweet articles."""

    name = "twitter"
    loaded_selector = TWEET_SELECTOR
    sentinels = SENTINELS
    empty_sentinels = ("hasn’t posted", "hasn't posted", "No results for", "There aren’t any", "There aren't any")

    async def extract_items(self) -> list[Tweet]:
        raws = await evaluate(self.page, _TWEETS_JS) or []
        out = []
        for raw in raws:
            t = tweet_from_raw(raw)
            if t is not None:
                out.append(t)
        return out

    def item_key(self, item: Tweet) -> str | None:
        return item.id


# --------------------------------------------------------------------------- #
# Public operations
# --------------------------------------------------------------------------- #


async def scrape_twitter_profile(
    page: Any, username: str, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> TwitterProfile:
    username = _normalize_username(username)
    adapter = TwitterProfileAdapter(page, username, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(f"{BASE_URL}/{username}")
    profiles = await adapter.extract_items()
    if not profiles:
        raise ElementNotFoundError(f"Could not read profile header for @{username}")
    profile = profiles[0]
    logger.debug("twitter profile %s: %d followers", profile.username, profile.followers_count)
    return profile


async def scrape_twitter_timeline(
    page: Any, username: str | None = None, count: int = 20, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> TimelineResult:
    """User timeline, or the home timeline when no username is given."""
    count = clamp_count(count, MAX_TWEETS)
    if username:
        username = _normalize_username(username)
        url = f"{BASE_URL}/{username}"
    else:
        url = f"{BASE_URL}/home"

    adapter = TweetFeedAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(url):
        return TimelineResult(username=username, tweets=[], has_more=False)
    tweets, has_more = await adapter.collect(count)
    return TimelineResult(username=username, tweets=tweets, has_more=has_more)


async def scrape_twitter_post(
    page: Any, url: str, max_replies: int = MAX_REPLIES, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> TweetWithContext:
    """The focal tweet, the thread above it, and the replies loaded below it."""
    canonical, tweet_id = post_url(url)
    adapter = TweetFeedAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(canonical)

    raws = await evaluate(page, _TWEETS_JS) or []
    focal_at = None
    for i, raw in enumerate(raws):
        m = _STATUS_RE.search(raw.get("href") or "")
        if m and m.group(2) == tweet_id:
            focal_at = i
            break
    if focal_at is None:
        raise ElementNotFoundError(f"Tweet {tweet_id} not found on page")

    focal_raw = raws[focal_at]
    focal = tweet_from_raw(focal_raw)
    thread = [t for t in (tweet_from_raw(r) for r in raws[:focal_at]) if t is not None]
    replies = [t for t in (tweet_from_raw(r) for r in raws[focal_at + 1 :]) if t is not None]

    return TweetWithContext(**vars(focal), thread=thread, replies=replies[: max(0, max_replies)])


async def scrape_twitter_search(
    page: Any, query: str, count: int = 20, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> SearchResults:
    """Latest-tab search; operators like from: or min_faves: pass through unchanged."""
    query = (query or "").strip()
    if not query:
        raise InvalidInputError("Search query is empty")
    count = clamp_count(count, MAX_TWEETS)

    adapter = TweetFeedAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(f"{BASE_URL}/search?q={quote(query, safe='')}&f=live"):
        return SearchResults(query=query, tweets=[], has_more=False)
    tweets, has_more = await adapter.collect(count)
    return SearchResults(query=query, tweets=tweets, has_more=has_more)


async def scrape_twitter_list(
    page: Any, list_id: str, count: int = 20, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> TwitterListTimeline:
    list_id = (list_id or "").strip()
    m = re.search(r"lists/(\d+)", list_id)
    if m:
        list_id = m.group(1)
    if not list_id.isdigit():
        raise InvalidInputError(f"Invalid Twitter List id: {list_id!r}")
    count = clamp_count(count, MAX_TWEETS)

    url = f"{BASE_URL}/i/lists/{list_id}"
    adapter = TweetFeedAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    loaded = await adapter.open(url)

    raw = await evaluate(page, _LIST_JS) or {}
    info = TwitterListInfo(
        id=list_id,
        url=url,
        name=raw.get("name") or "",
        description=raw.get("description"),
        member_count=parse_number_in_text(raw.get("members")),
        follower_count=parse_number_in_text(raw.get("followers")),
    )
    if not loaded:
        return TwitterListTimeline(info=info, tweets=[], has_more=False)
    tweets, has_more = await adapter.collect(count)
    return TwitterListTimeline(info=info, tweets=tweets, has_more=has_more)
