"""LinkedIn profiles, activity feeds and search.

LinkedIn throttles fast clients, so every flow here is paced: smaller
scroll steps, a longer settle delay and randomized pauses between passes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError

from ..errors import ErrorKind, InvalidInputError, NavigationError
from ..models import Record
from ..parse import clean_text, parse_number_in_text
from .base import NAVIGATION_TIMEOUT_MS, SiteAdapter
from .common import ScrollCursor, clamp_count, evaluate, human_delay, scroll_once


logger = logging.getLogger(__name__)

BASE_URL = "https://www.linkedin.com"
MAX_POSTS = 50
MAX_SEARCH_RESULTS = 50
MAX_EXPERIENCE = 10
MAX_EDUCATION = 5
MAX_SKILLS = 10
SCROLL_DELAY_MS = 2000
SCROLL_STEP_PX = 500
MAX_SCROLL_ATTEMPTS = 10

SEARCH_PATHS = {"people": "people", "companies": "companies", "posts": "content"}

SENTINELS: dict[str, ErrorKind] = {
    "Page not found": ErrorKind.PROFILE_NOT_FOUND,
    "profile is not available": ErrorKind.PROFILE_NOT_FOUND,
    "This page doesn’t exist": ErrorKind.PROFILE_NOT_FOUND,
    "This page doesn't exist": ErrorKind.PROFILE_NOT_FOUND,
    "You’ve reached the commercial use limit": ErrorKind.RATE_LIMITED,
    "You've reached the commercial use limit": ErrorKind.RATE_LIMITED,
    "Too many requests": ErrorKind.RATE_LIMITED,
    "Sign in": ErrorKind.LOGIN_REQUIRED,
    "Join now": ErrorKind.LOGIN_REQUIRED,
}

PROFILE_SELECTORS = {
    "profile_card": ".pv-top-card",
    "name": ".pv-top-card h1",
    "headline": ".pv-top-card .text-body-medium",
    "location": ".pv-top-card .pb2 .text-body-small",
    "profile_image": ".pv-top-card img.pv-top-card-profile-picture__image",
    "about_text": "#about + .display-flex .inline-show-more-text",
    "connection_count": ".pv-top-card .pv-top-card--list-bullet li:first-child span",
    "experience_item": "#experience ~ .pvs-list__outer-container li.artdeco-list__item",
    "education_item": "#education ~ .pvs-list__outer-container li.artdeco-list__item",
    "skill_item": '#skills ~ .pvs-list__outer-container .hoverable-link-text span[aria-hidden="true"]',
}

POST_SELECTORS = {
    "container": ".feed-shared-update-v2",
    "author_name": '.update-components-actor__name span[aria-hidden="true"]',
    "author_headline": ".update-components-actor__description",
    "author_image": ".update-components-actor__image img",
    "author_link": ".update-components-actor__container-link",
    "text": ".feed-shared-update-v2__description .break-words",
    "image": ".feed-shared-image__image",
    "video": "video",
    "document": ".document-s-container",
    "article_link": ".update-components-article__meta a, a.app-aware-link.update-components-article__image-link",
    "reactions": ".social-details-social-counts__reactions-count",
    "comments": ".social-details-social-counts__comments",
    "reposts": ".social-details-social-counts__reposts",
    "time": '.update-components-actor__sub-description span[aria-hidden="true"]',
}

SEARCH_SELECTORS = {
    "result": ".reusable-search__result-container",
    "title": '.entity-result__title-text a span[aria-hidden="true"]',
    "title_link": ".entity-result__title-text a",
    "primary": ".entity-result__primary-subtitle",
    "secondary": ".entity-result__secondary-subtitle",
    "badge": ".entity-result__badge-text",
    "post_text": ".update-components-text",
    "post_author": ".update-components-actor__name",
    "post_link": 'a[href*="/feed/update/"]',
    "next_button": 'button[aria-label="Next"]',
}


@dataclass
class LinkedInExperience(Record):
    title: str
    company: str
    company_url: str | None = None
    duration: str = ""
    location: str | None = None
    description: str | None = None


@dataclass
class LinkedInEducation(Record):
    school: str
    degree: str | None = None
    years: str | None = None


@dataclass
class LinkedInProfile(Record):
    url: str
    name: str
    headline: str
    location: str | None = None
    about: str | None = None
    profile_image_url: str | None = None
    connection_count: str = "0"
    experience: list[LinkedInExperience] = field(default_factory=list)
    education: list[LinkedInEducation] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)


@dataclass
class LinkedInPostAuthor(Record):
    name: str
    headline: str = ""
    profile_url: str | None = None
    profile_image_url: str | None = None


@dataclass
class LinkedInPostMetrics(Record):
    reactions: int = 0
    comments: int = 0
    reposts: int = 0


@dataclass
class LinkedInMedia(Record):
    type: str  # image | video | document | link
    url: str
    thumbnail_url: str | None = None


@dataclass
class LinkedInPost(Record):
    id: str | None
    author: LinkedInPostAuthor
    text: str
    created_at: str
    metrics: LinkedInPostMetrics = field(default_factory=LinkedInPostMetrics)
    media: list[LinkedInMedia] = field(default_factory=list)


@dataclass
class LinkedInPostsResult(Record):
    url: str
    posts: list[LinkedInPost]
    has_more: bool


@dataclass
class LinkedInPersonResult(Record):
    name: str
    headline: str
    location: str | None
    profile_url: str
    connection_degree: str


@dataclass
class LinkedInCompanyResult(Record):
    name: str
    industry: str | None
    followers: int
    company_url: str


@dataclass
class LinkedInPostResult(Record):
    author: str
    text: str
    post_url: str


@dataclass
class LinkedInSearchResults(Record):
    query: str
    type: str
    results: list[Any]
    total_results: int
    has_more: bool


# --------------------------------------------------------------------------- #
# Text helpers
# --------------------------------------------------------------------------- #


def parse_connection_degree(text: str | None) -> str:
    s = text or ""
    for degree in ("1st", "2nd", "3rd"):
        if degree in s:
            return degree
    return "Out of Network"


@dataclass
class Duration:
    start: str
    end: str
    total: str


def parse_duration(text: str | None) -> Duration:
    """'Jan 2020 - Present · 4 yrs 2 mos' -> Duration('Jan 2020', 'Present', '4 yrs 2 mos')."""
    # Mis-decoded pages render the middle dot as 'Â·'
    parts = [p.strip() for p in re.split(r"Â·|·", text or "", maxsplit=1)]
    date_range = parts[0]
    total = parts[1] if len(parts) > 1 else ""
    bounds = [b.strip() for b in re.split(r"\s+[-–]\s+", date_range, maxsplit=1)]
    start = bounds[0]
    end = bounds[1] if len(bounds) > 1 and bounds[1] else "Present"
    return Duration(start=start, end=end, total=total)


def parse_follower_count(text: str | None) -> int:
    """'1,234 followers' / '1.2M followers' -> int."""
    return parse_number_in_text(text)


def _absolute(href: str | None) -> str:
    href = (href or "").split("?")[0]
    if not href:
        return ""
    if href.startswith("http"):
        return href
    return BASE_URL + (href if href.startswith("/") else "/" + href)


def _validate_profile_url(url: str) -> str:
    url = (url or "").strip()
    if "linkedin.com/in/" not in url:
        raise InvalidInputError(
            "Invalid LinkedIn profile URL. Expected format: https://www.linkedin.com/in/username/"
        )
    return url


def activity_url(profile_url: str) -> str:
    url = profile_url.split("?")[0]
    if "/in/" in url and "/recent-activity/" not in url:
        url = url.rstrip("/") + "/recent-activity/all/"
    return url


# --------------------------------------------------------------------------- #
# In-page extraction
# --------------------------------------------------------------------------- #

_PROFILE_JS = r"""
(s) => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : null) || null;
  const q = (sel) => txt(document.querySelector(sel));
  const img = document.querySelector(s.profile_image);

  const experience = Array.from(document.querySelectorAll(s.experience_item)).map((item) => {
    const link = item.querySelector('a[href*="/company/"]');
    return {
      title: txt(item.querySelector('.mr1 .visually-hidden')),
      company: txt(item.querySelector('.t-14.t-normal span[aria-hidden="true"]')),
      company_url: link ? link.getAttribute('href') : null,
      duration: txt(item.querySelector('.pvs-entity__caption-wrapper')),
      description: txt(item.querySelector('.inline-show-more-text')),
    };
  });
  const education = Array.from(document.querySelectorAll(s.education_item)).map((item) => ({
    school: txt(item.querySelector('.mr1 .visually-hidden')),
    degree: txt(item.querySelector('.t-14.t-normal span[aria-hidden="true"]')),
    years: txt(item.querySelector('.pvs-entity__caption-wrapper')),
  }));
  const skills = Array.from(document.querySelectorAll(s.skill_item)).map(txt).filter(Boolean);

  return {
    name: q(s.name),
    headline: q(s.headline),
    location: q(s.location),
    about: q(s.about_text),
    image: img ? img.getAttribute('src') : null,
    connections: q(s.connection_count),
    experience,
    education,
    skills,
  };
}
"""

_POSTS_JS = r"""
(s) => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  return Array.from(document.querySelectorAll(s.container)).map((c) => {
    const urnEl = c.closest('[data-urn]') || c.querySelector('[data-urn]');
    const authorImg = c.querySelector(s.author_image);
    const authorLink = c.querySelector(s.author_link);
    const media = [];
    c.querySelectorAll(s.image).forEach((img) => {
      const src = img.getAttribute('src');
      if (src) media.push({ type: 'image', url: src });
    });
    c.querySelectorAll(s.video).forEach((v) => {
      const src = v.currentSrc || v.getAttribute('src') || '';
      media.push({ type: 'video', url: src, thumbnail: v.getAttribute('poster') });
    });
    if (c.querySelector(s.document)) {
      const frame = c.querySelector(s.document + ' iframe');
      media.push({ type: 'document', url: frame ? frame.getAttribute('src') || '' : '' });
    }
    const article = c.querySelector(s.article_link);
    if (article && article.href) media.push({ type: 'link', url: article.href });

    return {
      urn: urnEl ? urnEl.getAttribute('data-urn') : null,
      author_name: txt(c.querySelector(s.author_name)),
      author_headline: txt(c.querySelector(s.author_headline)),
      author_url: authorLink ? authorLink.getAttribute('href') : null,
      author_image: authorImg ? authorImg.getAttribute('src') : null,
      text: txt(c.querySelector(s.text)),
      time: txt(c.querySelector(s.time)),
      reactions: txt(c.querySelector(s.reactions)),
      comments: txt(c.querySelector(s.comments)),
      reposts: txt(c.querySelector(s.reposts)),
      media,
    };
  });
}
"""

_SEARCH_JS = r"""
(s) => {
  const txt = (el) => (el && el.textContent ? el.textContent.trim() : '');
  return Array.from(document.querySelectorAll(s.result)).map((c) => {
    const link = c.querySelector(s.title_link);
    const postLink = c.querySelector(s.post_link);
    return {
      title: txt(c.querySelector(s.title)),
      href: link ? link.getAttribute('href') : null,
      primary: txt(c.querySelector(s.primary)),
      secondary: txt(c.querySelector(s.secondary)),
      badge: txt(c.querySelector(s.badge)),
      post_author: txt(c.querySelector(s.post_author)),
      post_text: txt(c.querySelector(s.post_text)),
      post_href: postLink ? postLink.getAttribute('href') : null,
    };
  });
}
"""


def profile_from_raw(url: str, raw: dict[str, Any]) -> LinkedInProfile:
    experience = [
        LinkedInExperience(
            title=e.get("title") or "",
            company=e.get("company") or "",
            company_url=e.get("company_url"),
            duration=e.get("duration") or "",
            description=e.get("description"),
        )
        for e in raw.get("experience") or []
        if e.get("title") or e.get("company")
    ]
    education = [
        LinkedInEducation(school=e["school"], degree=e.get("degree"), years=e.get("years"))
        for e in raw.get("education") or []
        if e.get("school")
    ]
    m = re.search(r"\d[\d,]*\+?", raw.get("connections") or "")
    return LinkedInProfile(
        url=url,
        name=raw.get("name") or "Unknown",
        headline=raw.get("headline") or "",
        location=raw.get("location"),
        about=clean_text(raw.get("about")) or None,
        profile_image_url=raw.get("image"),
        connection_count=m.group(0) if m else "0",
        experience=experience[:MAX_EXPERIENCE],
        education=education[:MAX_EDUCATION],
        skills=[s for s in raw.get("skills") or [] if s][:MAX_SKILLS],
    )


def post_from_raw(raw: dict[str, Any]) -> LinkedInPost | None:
    text = clean_text(raw.get("text"))
    media = [
        LinkedInMedia(type=m.get("type") or "image", url=m.get("url") or "", thumbnail_url=m.get("thumbnail"))
        for m in raw.get("media") or []
    ]
    if not text and not media:
        return None
    return LinkedInPost(
        id=raw.get("urn") or None,
        author=LinkedInPostAuthor(
            name=raw.get("author_name") or "",
            headline=raw.get("author_headline") or "",
            profile_url=_absolute(raw.get("author_url")) or None,
            profile_image_url=raw.get("author_image"),
        ),
        text=text,
        created_at=raw.get("time") or "",
        metrics=LinkedInPostMetrics(
            reactions=parse_number_in_text(raw.get("reactions")),
            comments=parse_number_in_text(raw.get("comments")),
            reposts=parse_number_in_text(raw.get("reposts")),
        ),
        media=media,
    )


def search_result_from_raw(kind: str, raw: dict[str, Any]) -> Any:
    if kind == "posts":
        href = raw.get("post_href")
        if not href:
            return None
        return LinkedInPostResult(
            author=raw.get("post_author") or "Unknown",
            text=(raw.get("post_text") or "")[:200],
            post_url=_absolute(href),
        )

    url = _absolute(raw.get("href"))
    if not url or not raw.get("title"):
        return None
    if kind == "companies":
        return LinkedInCompanyResult(
            name=raw["title"],
            industry=raw.get("primary") or None,
            followers=parse_follower_count(raw.get("secondary")),
            company_url=url,
        )
    return LinkedInPersonResult(
        name=raw["title"],
        headline=raw.get("primary") or "",
        location=raw.get("secondary") or None,
        profile_url=url,
        connection_degree=parse_connection_degree(raw.get("badge")),
    )


# --------------------------------------------------------------------------- #
# Adapters
# --------------------------------------------------------------------------- #


class _LinkedInAdapter(SiteAdapter):
    name = "linkedin"
    sentinels = SENTINELS
    paced = True
    max_no_growth = MAX_SCROLL_ATTEMPTS
    scroll_delay_ms = SCROLL_DELAY_MS
    scroll_step_px = SCROLL_STEP_PX


class LinkedInProfileAdapter(_LinkedInAdapter):
    loaded_selector = PROFILE_SELECTORS["profile_card"]

    def __init__(self, page: Any, url: str, **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.url = url

    async def load_lazy_sections(self, passes: int = 3) -> None:
        cursor = ScrollCursor()
        for _ in range(passes):
            await scroll_once(self.page, cursor, self.scroll_delay_ms, self.scroll_step_px)
            await human_delay()

    async def extract_items(self) -> list[LinkedInProfile]:
        raw = await evaluate(self.page, _PROFILE_JS, PROFILE_SELECTORS)
        return [profile_from_raw(self.url, raw)] if raw else []

    def item_key(self, item: LinkedInProfile) -> str | None:
        return item.url


class LinkedInPostsAdapter(_LinkedInAdapter):
    loaded_selector = POST_SELECTORS["container"]
    # An activity page without posts simply never renders a container
    empty_when_missing = True

    async def extract_items(self) -> list[LinkedInPost]:
        raws = await evaluate(self.page, _POSTS_JS, POST_SELECTORS) or []
        return [p for p in (post_from_raw(r) for r in raws) if p is not None]

    def item_key(self, item: LinkedInPost) -> str | None:
        # Feed updates carry an activity URN; fall back to the text prefix
        return item.id or (item.text[:100] or None)


class LinkedInSearchAdapter(_LinkedInAdapter):
    loaded_selector = SEARCH_SELECTORS["result"]
    empty_sentinels = ("No results found",)
    empty_when_missing = True

    def __init__(self, page: Any, kind: str, **kwargs: Any) -> None:
        super().__init__(page, **kwargs)
        self.kind = kind

    async def extract_items(self) -> list[Any]:
        raws = await evaluate(self.page, _SEARCH_JS, SEARCH_SELECTORS) or []
        out = []
        for raw in raws:
            r = search_result_from_raw(self.kind, raw)
            if r is not None:
                out.append(r)
        return out

    def item_key(self, item: Any) -> str | None:
        if isinstance(item, LinkedInPersonResult):
            return item.profile_url
        if isinstance(item, LinkedInCompanyResult):
            return item.company_url
        return item.post_url

    async def scroll(self, cursor: ScrollCursor) -> bool:
        """Result pages are paginated; use the Next button while there is one."""
        try:
            button = await self.page.query_selector(SEARCH_SELECTORS["next_button"])
            if button is not None and await button.is_enabled():
                logger.debug("linkedin: next search page")
                await button.click()
                await self.page.wait_for_timeout(self.scroll_delay_ms)
                cursor.no_growth = 0
                return True
        except PlaywrightError as e:
            raise NavigationError(f"linkedin: could not open the next search page: {e.message}") from e
        return await super().scroll(cursor)


# --------------------------------------------------------------------------- #
# Public operations
# --------------------------------------------------------------------------- #


async def scrape_linkedin_profile(
    page: Any, url: str, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> LinkedInProfile:
    url = _validate_profile_url(url)
    adapter = LinkedInProfileAdapter(page, url, navigation_timeout_ms=navigation_timeout_ms)
    await adapter.open(url)
    await human_delay()
    await adapter.load_lazy_sections()
    profiles = await adapter.extract_items()
    if not profiles:
        return LinkedInProfile(url=url, name="Unknown", headline="")
    return profiles[0]


async def scrape_linkedin_posts(
    page: Any, url: str, count: int = 10, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
) -> LinkedInPostsResult:
    url = _validate_profile_url(url)
    count = clamp_count(count, MAX_POSTS)
    adapter = LinkedInPostsAdapter(page, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(activity_url(url)):
        return LinkedInPostsResult(url=url, posts=[], has_more=False)
    await human_delay()
    posts, has_more = await adapter.collect(count)
    return LinkedInPostsResult(url=url, posts=posts, has_more=has_more)


async def scrape_linkedin_search(
    page: Any,
    query: str,
    type: str = "people",
    count: int = 10,
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
) -> LinkedInSearchResults:
    """Search people, companies or posts; follows Next pages, else scrolls."""
    query = (query or "").strip()
    if not query:
        raise InvalidInputError("Search query is empty")
    if type not in SEARCH_PATHS:
        raise InvalidInputError(f"Unknown LinkedIn search type: {type!r} (expected people, companies or posts)")
    count = clamp_count(count, MAX_SEARCH_RESULTS)

    url = f"{BASE_URL}/search/results/{SEARCH_PATHS[type]}/?keywords={quote(query, safe='')}"
    adapter = LinkedInSearchAdapter(page, type, navigation_timeout_ms=navigation_timeout_ms)
    if not await adapter.open(url):
        return LinkedInSearchResults(query=query, type=type, results=[], total_results=0, has_more=False)
    await human_delay()
    results, has_more = await adapter.collect(count)
    return LinkedInSearchResults(
        query=query, type=type, results=results, total_results=len(results), has_more=has_more
    )
