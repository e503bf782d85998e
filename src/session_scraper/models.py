from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
import json


# Payload caps for downstream consumers (agent tool servers choke on huge blobs)
MAX_TEXT_LENGTH = 100_000
MAX_HTML_LENGTH = 50_000
MAX_LINKS = 100
MAX_IMAGES = 50
MAX_SCRIPT_RESULT_SIZE = 1_000_000
MAX_SCREENSHOT_SIZE = 5 * 1024 * 1024


class Record:
    """Mixin for JSON-serializable dataclass records."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


@dataclass
class Link(Record):
    text: str
    href: str


@dataclass
class Image(Record):
    alt: str
    src: str


@dataclass
class PageContent(Record):
    url: str
    title: str
    text: str
    links: list[Link] = field(default_factory=list)
    images: list[Image] = field(default_factory=list)

    # Only set for selector-scoped extraction
    selector: str | None = None
    html: str | None = None


@dataclass
class NavigateResult(Record):
    success: bool
    url: str
    title: str


@dataclass
class PageInfo(Record):
    url: str
    title: str


@dataclass
class TabInfo(Record):
    index: int
    url: str
    title: str


@dataclass
class TabList(Record):
    pages: list[TabInfo]
    current: int


@dataclass
class ScriptResult(Record):
    script: str
    result: Any
    size: int
