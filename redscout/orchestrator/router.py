"""Orchestrator — the single entry point for both search paths.

Responsibilities:
  - Plain search: cache lookup → admission control → Reddit fetch → cache fill
  - Context search: admission control → ContextSearchPipeline (never cached)
  - Discussion excerpts for a handful of posts, fetched concurrently
  - Content ideas: discussion excerpts → ContentIdeaGenerator

The cache and rate limiter are injected so tests (and multiple app
instances) get independent state.
"""

import asyncio
import logging

from redscout.config import settings
from redscout.errors import AdmissionDeniedError, ConfigurationMissingError, UpstreamUnavailableError
from redscout.integrations.reddit import RedditClient
from redscout.orchestrator.schemas import (
    AnalyzeResponse,
    ContextSearchResponse,
    Discussion,
    DiscussionResponse,
    PlainSearchResponse,
    Post,
    SortMode,
    TimeBucket,
)
from redscout.pipelines.context import ContextSearchPipeline
from redscout.pipelines.context.query_planner import QueryPlanner
from redscout.pipelines.context.relevance_filter import RelevanceFilter
from redscout.pipelines.ideas import ContentIdeaGenerator, format_discussion
from redscout.services.cache import ResultCache
from redscout.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class SearchService:
    """Main dispatcher — owns the process-wide cache and rate limiter."""

    def __init__(
        self,
        cache: ResultCache | None = None,
        rate_limiter: RateLimiter | None = None,
        fetcher: RedditClient | None = None,
        planner: QueryPlanner | None = None,
        relevance: RelevanceFilter | None = None,
        ideas: ContentIdeaGenerator | None = None,
    ):
        self.cache = cache if cache is not None else ResultCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.fetcher = fetcher if fetcher is not None else RedditClient()
        self.planner = planner
        self.relevance = relevance
        self.ideas = ideas if ideas is not None else ContentIdeaGenerator()

    def start(self):
        """Start background sweeps. Must be called from a running event loop."""
        self.cache.start()
        self.rate_limiter.start()

    async def stop(self):
        await self.cache.stop()
        await self.rate_limiter.stop()

    def _admit(self, identity: str):
        admission = self.rate_limiter.admit(identity)
        if not admission.allowed:
            raise AdmissionDeniedError(admission.retry_after_ms or self.rate_limiter.window_ms)

    async def search_plain(
        self,
        query: str,
        sort: SortMode = SortMode.TOP,
        time_bucket: TimeBucket | None = None,
        client_id: str = "anonymous",
    ) -> PlainSearchResponse:
        hit = self.cache.get(query, sort, time_bucket)
        if hit is not None:
            return PlainSearchResponse(
                posts=hit.posts,
                cached=True,
                cache_age_seconds=hit.age_seconds,
                query=query,
                sort=sort,
                time=time_bucket,
                total_results=len(hit.posts),
            )

        self._admit(client_id)

        posts = await self.fetcher.fetch_posts(query, sort, time_bucket)
        self.cache.put(query, sort, time_bucket, posts)
        return PlainSearchResponse(
            posts=posts,
            cached=False,
            query=query,
            sort=sort,
            time=time_bucket,
            total_results=len(posts),
        )

    async def search_with_context(
        self,
        query: str,
        sort: SortMode = SortMode.TOP,
        time_bucket: TimeBucket | None = None,
        client_id: str = "anonymous",
    ) -> ContextSearchResponse:
        self._admit(client_id)

        pipeline = ContextSearchPipeline(
            fetcher=self.fetcher,
            planner=self.planner,
            relevance=self.relevance,
        )
        return await pipeline.execute(query, sort, time_bucket)

    async def fetch_discussions(
        self,
        permalinks: list[str],
        client_id: str = "anonymous",
    ) -> DiscussionResponse:
        """Top-level replies for up to ``max_discussion_posts`` posts; failures yield ''."""
        permalinks = [p for p in permalinks if p and p.strip()][: settings.max_discussion_posts]
        if not permalinks:
            return DiscussionResponse()

        self._admit(client_id)

        excerpts = await asyncio.gather(*(self.fetcher.fetch_detail(p) for p in permalinks))
        logger.info(
            "Discussions | posts=%d | with_replies=%d",
            len(permalinks), sum(1 for e in excerpts if e),
        )
        return DiscussionResponse(discussions=[
            Discussion(permalink=p, excerpt=e) for p, e in zip(permalinks, excerpts)
        ])

    async def analyze(self, posts: list[Post], client_id: str = "anonymous") -> AnalyzeResponse:
        """Content ideas from the top ``max_discussion_posts`` posts and their replies.

        The first post's community stands in for the topic. Raises
        ``UpstreamUnavailableError`` when no post yields any replies.
        """
        if not settings.has_anthropic_key:
            raise ConfigurationMissingError("ANTHROPIC_API_KEY is not configured")

        top = [p for p in posts if p.link][: settings.max_discussion_posts]
        if not top:
            raise UpstreamUnavailableError("Selected posts have no links to analyze")
        topic = top[0].subreddit

        fetched = await self.fetch_discussions([p.link for p in top], client_id=client_id)
        discussions = [
            format_discussion(post, d.excerpt)
            for post, d in zip(top, fetched.discussions)
            if d.excerpt
        ]
        if not discussions:
            raise UpstreamUnavailableError("Could not fetch discussions for the selected posts")

        ideas = await self.ideas.generate(topic, discussions)
        return AnalyzeResponse(ideas=ideas, topic=topic, analyzed_posts=len(discussions))
