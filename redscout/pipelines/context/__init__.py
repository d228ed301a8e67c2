"""Context Search — AI-assisted multi-query search.

Flow: Planner → Fan-out (parallel Reddit fetches) → dedup → Relevance Filter

States: idle → planning → fetching → filtering → done. ``failed`` is reachable
from planning (text-generation service unavailable or not configured) and
from fetching (every fan-out branch failed). Filtering always ends in done.
A pipeline instance serves a single invocation.
"""

import logging

from redscout.errors import (
    AIServiceError,
    ConfigurationMissingError,
    PipelineFailedError,
)
from redscout.integrations.reddit import RedditClient
from redscout.orchestrator.schemas import (
    ContextSearchResponse,
    PipelineState,
    QueryContext,
    SortMode,
    TimeBucket,
)
from redscout.pipelines.context.fan_out import FanOutAggregator
from redscout.pipelines.context.query_planner import QueryPlanner
from redscout.pipelines.context.relevance_filter import RelevanceFilter

logger = logging.getLogger(__name__)

TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.PLANNING},
    PipelineState.PLANNING: {PipelineState.FETCHING, PipelineState.FAILED},
    PipelineState.FETCHING: {PipelineState.FILTERING, PipelineState.FAILED},
    PipelineState.FILTERING: {PipelineState.DONE},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


class ContextSearchPipeline:
    """Orchestrates the full context search pipeline."""

    def __init__(
        self,
        fetcher: RedditClient,
        planner: QueryPlanner | None = None,
        relevance: RelevanceFilter | None = None,
    ):
        self.planner = planner if planner is not None else QueryPlanner()
        self.aggregator = FanOutAggregator(fetcher)
        self.relevance = relevance if relevance is not None else RelevanceFilter()
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]

    def _transition(self, new_state: PipelineState):
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {new_state.value}")
        logger.info("Context search | %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    async def execute(
        self,
        query: str,
        sort: SortMode = SortMode.TOP,
        time_bucket: TimeBucket | None = None,
    ) -> ContextSearchResponse:
        if self.state is not PipelineState.IDLE:
            raise RuntimeError("ContextSearchPipeline instances are single-use")

        logger.info("Context search | query=%s | sort=%s", query[:80], sort.value)

        # Planning
        self._transition(PipelineState.PLANNING)
        try:
            queries = await self.planner.plan(query, sort, time_bucket)
        except ConfigurationMissingError:
            self._transition(PipelineState.FAILED)
            raise
        except AIServiceError as e:
            self._transition(PipelineState.FAILED)
            logger.error("Context search | planning failed | %s", e.message[:200])
            raise PipelineFailedError("Query planning failed", state=PipelineState.PLANNING.value) from e

        # Fetching
        self._transition(PipelineState.FETCHING)
        fanned = await self.aggregator.aggregate(queries)
        if fanned.all_failed:
            self._transition(PipelineState.FAILED)
            logger.error("Context search | all %d fetch branches failed", fanned.branches)
            raise PipelineFailedError("All searches failed", state=PipelineState.FETCHING.value)

        # Filtering
        self._transition(PipelineState.FILTERING)
        posts, stats = await self.relevance.filter(fanned.posts, query)

        self._transition(PipelineState.DONE)
        logger.info(
            "Context search complete | candidates=%d | retained=%d | fallback=%s",
            stats.candidates, stats.retained, stats.fallback,
        )
        return ContextSearchResponse(
            posts=posts,
            query_context=QueryContext(
                original_query=query,
                queries=[q.text for q in queries],
                state=self.state,
                failed_branches=fanned.failed_branches,
            ),
            filter_stats=stats,
        )
