"""Shared test fixtures and configuration."""

import os
from datetime import datetime, timezone

import pytest

# No real API keys during tests
os.environ.setdefault("ANTHROPIC_API_KEY", "")

from redscout.integrations.reddit import RedditClient  # noqa: E402
from redscout.orchestrator.schemas import Post  # noqa: E402
from redscout.services.retry import RetryPolicy  # noqa: E402

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now():
    """Fixed wall-clock instant the Reddit client fixture treats as the present."""
    return NOW


@pytest.fixture
def make_post():
    def _make(post_id: str, upvotes: int = 0, **kwargs) -> Post:
        kwargs.setdefault("title", f"Post {post_id}")
        kwargs.setdefault("subreddit", "r/test")
        kwargs.setdefault("link", f"https://www.reddit.com/r/test/comments/{post_id}/post/")
        kwargs.setdefault("created", NOW)
        return Post(id=post_id, upvotes=upvotes, **kwargs)

    return _make


@pytest.fixture
def make_child():
    """One search-listing child in Reddit's wire format."""

    def _make(post_id: str, score: int = 1, created: datetime = NOW, **data) -> dict:
        payload = {
            "id": post_id,
            "title": f"Title {post_id}",
            "score": score,
            "num_comments": 3,
            "permalink": f"/r/test/comments/{post_id}/title_{post_id}/",
            "subreddit": "test",
            "subreddit_name_prefixed": "r/test",
            "created_utc": created.timestamp(),
            "author": "someone",
            "selftext": "",
        }
        payload.update(data)
        return {"kind": "t3", "data": payload}

    return _make


@pytest.fixture
def listing():
    def _make(children: list[dict], after: str | None = None) -> dict:
        return {"kind": "Listing", "data": {"children": children, "after": after}}

    return _make


@pytest.fixture
def reddit_client():
    """Reddit client with no delays and a fixed wall clock."""
    return RedditClient(
        base_url="https://www.reddit.com",
        page_delay=0,
        list_retry=RetryPolicy(max_attempts=3, base_delay=0, name="test-search"),
        detail_retry=RetryPolicy(max_attempts=2, base_delay=0, name="test-detail"),
        now=lambda: NOW,
    )


@pytest.fixture
def sample_comment_thread():
    """Sample Reddit item-detail response: [post listing, comment listing]."""
    return [
        {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": {"id": "abc"}}]}},
        {
            "kind": "Listing",
            "data": {
                "children": [
                    {"kind": "t1", "data": {"body": "Clean the fans with compressed air."}},
                    {"kind": "t1", "data": {"body": "[deleted]"}},
                    {"kind": "t1", "data": {"body": "[removed]"}},
                    {"kind": "t1", "data": {"body": "Repaste the CPU."}},
                    {"kind": "more", "data": {"count": 12, "children": ["x1", "x2"]}},
                ],
            },
        },
    ]
