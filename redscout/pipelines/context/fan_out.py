"""Fan-out Aggregator — runs planned queries concurrently and merges results."""

import asyncio
import logging
from dataclasses import dataclass, field

from redscout.integrations.reddit import RedditClient
from redscout.orchestrator.schemas import Post, SearchQuery

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    posts: list[Post] = field(default_factory=list)
    branches: int = 0
    failed_branches: int = 0

    @property
    def all_failed(self) -> bool:
        return self.branches > 0 and self.failed_branches == self.branches


def dedupe_posts(batches: list[list[Post]]) -> list[Post]:
    """Flatten in branch order; the first post seen for an id wins its slot."""
    seen: set[str] = set()
    unique: list[Post] = []
    for batch in batches:
        for post in batch:
            if post.id in seen:
                continue
            seen.add(post.id)
            unique.append(post)
    return unique


class FanOutAggregator:
    """Fetch every query in parallel; a failing branch contributes nothing."""

    def __init__(self, fetcher: RedditClient):
        self.fetcher = fetcher

    async def aggregate(self, queries: list[SearchQuery]) -> FanOutResult:
        if not queries:
            return FanOutResult()

        tasks = [self.fetcher.fetch_posts(q.text, q.sort, q.time) for q in queries]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        batches: list[list[Post]] = []
        failed = 0
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.warning("Fan-out branch failed | query=%s | %s", query.text[:80], str(result)[:200])
                continue
            logger.info("Fan-out branch | query=%s | posts=%d", query.text[:80], len(result))
            batches.append(result)

        posts = dedupe_posts(batches)
        logger.info(
            "Fan-out complete | branches=%d | failed=%d | unique=%d",
            len(queries), failed, len(posts),
        )
        return FanOutResult(posts=posts, branches=len(queries), failed_branches=failed)
