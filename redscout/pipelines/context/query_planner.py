"""Query Planner — turns a natural-language question into Reddit search queries.

One LLM call asks for three queries: a broad synonym expansion, a
field-targeted precision query, and a problem-solving / community-targeted
query. A malformed answer falls back to the original question verbatim.
"""

import logging

from redscout.config import settings
from redscout.orchestrator.schemas import SearchQuery, SortMode, TimeBucket
from redscout.services.llm_client import call_model, extract_json_list, load_prompt

logger = logging.getLogger(__name__)


class QueryPlanner:
    """Decompose a question into at most ``max_queries`` structured searches."""

    def __init__(self, max_queries: int | None = None, temperature: float = 0.3):
        self.max_queries = max_queries or settings.planner_max_queries
        self.temperature = temperature

    async def plan(
        self,
        query: str,
        sort: SortMode = SortMode.TOP,
        time_bucket: TimeBucket | None = None,
    ) -> list[SearchQuery]:
        """Service errors propagate; unparsable output does not."""
        system_prompt = load_prompt("query_planner")
        text = await call_model(system_prompt, f"Question: {query}", temperature=self.temperature)

        queries = self.parse(text, query)
        logger.info("Planner | queries=%d | %s", len(queries), " || ".join(q[:60] for q in queries))
        return [SearchQuery(text=q, sort=sort, time=time_bucket) for q in queries]

    def parse(self, text: str, original_query: str) -> list[str]:
        parsed = extract_json_list(text)
        if parsed is None:
            logger.warning("Planner response not JSON, using original query | %s", text[:120])
            return [original_query]

        queries = [q.strip() for q in parsed if isinstance(q, str) and q.strip()]
        if not queries:
            logger.warning("Planner returned no usable queries, using original query")
            return [original_query]
        return queries[: self.max_queries]
