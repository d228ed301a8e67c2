"""Pydantic models for API input/output — shared across the search paths.

Split into: search vocabulary, the normalized post, API requests, and
final API responses.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ═══════════════ SEARCH VOCABULARY ═══════════════

class SortMode(str, Enum):
    TOP = "top"
    HOT = "hot"


class TimeBucket(str, Enum):
    """Upstream time ranges plus the synthetic ``15days`` bucket."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    LAST_15_DAYS = "15days"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    @property
    def is_synthetic(self) -> bool:
        return self in SYNTHETIC_BUCKETS

    @property
    def native(self) -> TimeBucket:
        """Nearest bucket the upstream understands."""
        return SYNTHETIC_BUCKETS.get(self, (self, 0))[0]

    @property
    def synthetic_days(self) -> int:
        return SYNTHETIC_BUCKETS.get(self, (self, 0))[1]


# synthetic bucket -> (native bucket sent upstream, client-side cutoff in days)
SYNTHETIC_BUCKETS: dict[TimeBucket, tuple[TimeBucket, int]] = {
    TimeBucket.LAST_15_DAYS: (TimeBucket.MONTH, 15),
}


class SearchQuery(BaseModel):
    """Immutable search parameters for one upstream fetch."""

    model_config = ConfigDict(frozen=True)

    text: str
    sort: SortMode = SortMode.TOP
    time: TimeBucket | None = None


# ═══════════════ NORMALIZED POST ═══════════════

class Post(BaseModel):
    """A single upstream search result."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    upvotes: int = 0
    comments: int = 0
    link: str = ""
    subreddit: str = ""
    created: datetime
    author: str = ""
    excerpt: str | None = None
    relevance_score: int | None = None


# ═══════════════ API REQUESTS ═══════════════

class PlainSearchRequest(BaseModel):
    keywords: str
    sort: SortMode = SortMode.TOP
    time: TimeBucket | None = None

    @field_validator("keywords")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("keywords must not be empty")
        return value


class ContextSearchRequest(BaseModel):
    query: str
    sort: SortMode = SortMode.TOP
    time: TimeBucket | None = None

    @field_validator("query")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value


class DiscussionRequest(BaseModel):
    permalinks: list[str] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    """Posts picked from a search result; the first ones are analyzed."""

    posts: list[Post] = Field(min_length=1)


# ═══════════════ PIPELINE STATE ═══════════════

class PipelineState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    FETCHING = "fetching"
    FILTERING = "filtering"
    DONE = "done"
    FAILED = "failed"


# ═══════════════ FINAL API RESPONSES ═══════════════

class PlainSearchResponse(BaseModel):
    posts: list[Post] = Field(default_factory=list)
    cached: bool = False
    cache_age_seconds: int | None = None
    query: str = ""
    sort: SortMode = SortMode.TOP
    time: TimeBucket | None = None
    total_results: int = 0


class QueryContext(BaseModel):
    original_query: str = ""
    queries: list[str] = Field(default_factory=list)
    state: PipelineState = PipelineState.IDLE
    failed_branches: int = 0


class FilterStats(BaseModel):
    candidates: int = 0
    retained: int = 0
    min_score: int = 0
    fallback: bool = False


class ContextSearchResponse(BaseModel):
    posts: list[Post] = Field(default_factory=list)
    query_context: QueryContext = Field(default_factory=QueryContext)
    filter_stats: FilterStats | None = None


class Discussion(BaseModel):
    permalink: str = ""
    excerpt: str = ""


class DiscussionResponse(BaseModel):
    discussions: list[Discussion] = Field(default_factory=list)


class ContentIdea(BaseModel):
    """One short-form video idea derived from community discussions."""

    hook: str = ""
    concept: str = ""
    why: str = ""
    cta: str = ""


class AnalyzeResponse(BaseModel):
    ideas: list[ContentIdea] = Field(default_factory=list)
    topic: str = ""
    analyzed_posts: int = 0
