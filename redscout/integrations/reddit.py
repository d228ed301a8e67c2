"""Reddit public JSON search integration (search listing + comment thread).

Endpoints: https://www.reddit.com/search.json
           https://www.reddit.com/{permalink}.json
No authentication required; a descriptive User-Agent is sent on every call.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

import httpx

from redscout.config import settings
from redscout.errors import UpstreamUnavailableError
from redscout.orchestrator.schemas import Post, SortMode, TimeBucket
from redscout.services.retry import RetryPolicy, describe_error

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search.json"

# Bodies Reddit leaves behind for deleted or moderated comments
TOMBSTONES = frozenset({"[deleted]", "[removed]"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def list_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.reddit_max_attempts,
        base_delay=settings.reddit_retry_base_seconds,
        name="reddit-search",
    )


def detail_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.reddit_detail_max_attempts,
        base_delay=settings.reddit_detail_retry_base_seconds,
        name="reddit-detail",
    )


class RedditClient:
    """Async client for Reddit's public search listing."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        page_delay: float | None = None,
        list_retry: RetryPolicy | None = None,
        detail_retry: RetryPolicy | None = None,
        max_posts: int | None = None,
        max_pages: int | None = None,
        page_size: int | None = None,
        now: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.reddit_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.reddit_timeout_seconds
        self.page_delay = page_delay if page_delay is not None else settings.reddit_page_delay_seconds
        self.list_retry = list_retry or list_retry_policy()
        self.detail_retry = detail_retry or detail_retry_policy()
        self.max_posts = max_posts or settings.reddit_max_posts
        self.max_pages = max_pages or settings.reddit_max_pages
        self.page_size = page_size or settings.reddit_page_size
        self._now = now
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": settings.reddit_user_agent},
            follow_redirects=True,
        )

    async def fetch_posts(
        self,
        keywords: str,
        sort: SortMode | str = SortMode.TOP,
        time_bucket: TimeBucket | str | None = None,
    ) -> list[Post]:
        """Page through the search listing and return up to ``max_posts`` posts.

        Posts are deduplicated by id (first seen wins) and sorted by upvotes,
        highest first. A failed page ends pagination; what was collected so
        far is returned. Only a failure before any page succeeded raises
        ``UpstreamUnavailableError``.
        """
        sort = SortMode(sort)
        bucket = TimeBucket(time_bucket) if time_bucket else None
        started_at = self._now()
        cutoff = None
        if bucket is not None and bucket.is_synthetic:
            cutoff = started_at - timedelta(days=bucket.synthetic_days)

        collected: list[Post] = []
        seen_ids: set[str] = set()
        after: str | None = None
        start = time.monotonic()

        async with self._client() as client:
            for page in range(self.max_pages):
                params = self._build_params(keywords, sort, bucket, after)
                try:
                    data = await self.list_retry.run(
                        lambda: self._get_json(client, SEARCH_PATH, params),
                        label=f"page={page + 1}",
                    )
                except Exception as e:
                    elapsed_ms = int((time.monotonic() - start) * 1000)
                    if page == 0:
                        logger.error(
                            "Reddit search failed | %dms | query=%s | %s",
                            elapsed_ms, keywords[:80], describe_error(e),
                        )
                        raise UpstreamUnavailableError(
                            f"Reddit search unavailable: {describe_error(e)}"
                        ) from e
                    logger.warning(
                        "Reddit search page failed — returning partial results | page=%d | posts=%d | %s",
                        page + 1, len(collected), describe_error(e),
                    )
                    break

                listing = (data.get("data") if isinstance(data, dict) else None) or {}
                children = listing.get("children") or []
                if not children:
                    break

                for child in children:
                    post = self._parse_post(child)
                    if post is None or post.id in seen_ids:
                        continue
                    if cutoff is not None and post.created < cutoff:
                        continue
                    seen_ids.add(post.id)
                    collected.append(post)

                after = listing.get("after")
                if not after or len(collected) >= self.max_posts:
                    break

                if page < self.max_pages - 1 and self.page_delay > 0:
                    await self._sleep(self.page_delay)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Reddit search OK | posts=%d | %dms | query=%s | sort=%s | t=%s",
            len(collected), elapsed_ms, keywords[:80], sort.value,
            bucket.value if bucket else "-",
        )
        collected.sort(key=lambda p: p.upvotes, reverse=True)
        return collected[: self.max_posts]

    async def fetch_detail(self, permalink: str, max_comments: int | None = None) -> str:
        """Join up to ``max_comments`` top-level replies into one excerpt.

        Never raises — any failure yields an empty string.
        """
        limit = max_comments or settings.reddit_detail_max_comments
        path = permalink.strip()
        if "://" in path:
            path = urlparse(path).path
        path = "/" + path.strip("/") + ".json"
        params = {"limit": str(limit), "depth": "1", "sort": "top", "raw_json": "1"}

        start = time.monotonic()
        try:
            async with self._client() as client:
                data = await self.detail_retry.run(
                    lambda: self._get_json(client, path, params),
                    label=permalink[:60],
                )
            bodies = self._parse_comments(data, limit)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "Reddit detail failed | %dms | permalink=%s | %s",
                elapsed_ms, permalink[:80], describe_error(e),
            )
            return ""

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Reddit detail OK | comments=%d | %dms", len(bodies), elapsed_ms)
        return "\n\n".join(bodies)

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict[str, str]) -> Any:
        response = await client.get(f"{self.base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()

    def _build_params(
        self,
        keywords: str,
        sort: SortMode,
        bucket: TimeBucket | None,
        after: str | None,
    ) -> dict[str, str]:
        params: dict[str, str] = {
            "q": keywords,
            "limit": str(self.page_size),
            "sort": sort.value,
            "t": bucket.native.value if bucket else TimeBucket.ALL.value,
            "type": "link",
            "raw_json": "1",
        }
        if after:
            params["after"] = after
        return params

    def _parse_post(self, child: dict) -> Post | None:
        """Map one listing child onto ``Post``. Returns None for malformed items."""
        d = child.get("data") if isinstance(child, dict) else None
        if not d or not d.get("id"):
            return None

        try:
            created = datetime.fromtimestamp(float(d.get("created_utc") or 0), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None

        permalink = d.get("permalink", "")
        selftext = (d.get("selftext") or "").strip()
        if len(selftext) > settings.reddit_excerpt_chars:
            selftext = selftext[: settings.reddit_excerpt_chars] + "..."

        return Post(
            id=str(d["id"]),
            title=d.get("title", ""),
            upvotes=int(d.get("score", 0) or 0),
            comments=int(d.get("num_comments", 0) or 0),
            link=f"{self.base_url}{permalink}" if permalink else "",
            subreddit=d.get("subreddit_name_prefixed") or d.get("subreddit", ""),
            created=created,
            author=d.get("author", ""),
            excerpt=selftext or None,
        )

    @staticmethod
    def _parse_comments(data: Any, limit: int) -> list[str]:
        # [post listing, comment listing]
        if not isinstance(data, list) or len(data) < 2 or not isinstance(data[1], dict):
            return []

        bodies: list[str] = []
        for child in data[1].get("data", {}).get("children", []):
            if child.get("kind") != "t1":
                continue  # "more" stubs
            body = (child.get("data", {}).get("body") or "").strip()
            if not body or body in TOMBSTONES:
                continue
            bodies.append(body)
            if len(bodies) >= limit:
                break
        return bodies
