import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from joara_scrap.config import BOOK_URL, BOOK_URL_PATTERN, UNTITLED_UNIT

_BOOK_URL_RE = re.compile(BOOK_URL_PATTERN)
_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9가-힣]")


def sanitize(name: str) -> str:
    """Replace anything that is not ASCII alnum or a Hangul syllable with '_'."""
    return _UNSAFE_RE.sub("_", name or "")


def parse_work_token(token: str) -> Optional[str]:
    m = _BOOK_URL_RE.search(token)
    if m:
        return m.group(1)
    if token.isdigit():
        return token
    return None


# --------- Data ---------
class SessionMode(Enum):
    HEADLESS = "headless"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class WorkRequest:
    work_id: str

    @classmethod
    def parse(cls, token: str) -> Optional["WorkRequest"]:
        work_id = parse_work_token(token)
        return cls(work_id) if work_id else None

    @property
    def landing_url(self) -> str:
        return BOOK_URL.format(work_id=self.work_id)


@dataclass(frozen=True)
class ContentUnit:
    index: int
    url: str
    title: str = UNTITLED_UNIT

    @property
    def label(self) -> str:
        return f"{self.index + 1:03d} {self.title}"


@dataclass(frozen=True)
class FetchResult:
    unit: ContentUnit
    text: str


@dataclass(frozen=True)
class WorkMetadata:
    title: str
    author: str
    cover_url: Optional[str] = None

    @property
    def safe_title(self) -> str:
        return sanitize(self.title)

    @property
    def safe_author(self) -> str:
        return sanitize(self.author)


class RetryBudget:
    """Attempt counter for one operation instance; create a fresh one per operation."""

    def __init__(self, name: str, limit: int):
        if limit < 1:
            raise ValueError("retry limit must be at least 1")
        self.name = name
        self.limit = limit
        self.used = 0

    def spend(self) -> int:
        self.used += 1
        return self.used

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def reset(self) -> None:
        self.used = 0

    def __repr__(self) -> str:
        return f"RetryBudget({self.name!r}, {self.used}/{self.limit})"
