"""Relevance Filter — LLM scores each post 0-10 against the original question.

Posts scoring below ``min_score`` are dropped; the rest are sorted by score.
An unusable scoring response (or an unavailable service) returns the first
``fallback_limit`` posts unscored instead.
"""

import json
import logging

from redscout.config import settings
from redscout.errors import AIServiceError, ConfigurationMissingError
from redscout.orchestrator.schemas import FilterStats, Post
from redscout.services.llm_client import call_model, extract_json, load_prompt

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200


class RelevanceFilter:
    """Score and filter aggregated posts for one context search."""

    def __init__(
        self,
        min_score: int | None = None,
        fallback_limit: int | None = None,
        temperature: float = 0.1,
    ):
        self.min_score = min_score if min_score is not None else settings.relevance_min_score
        self.fallback_limit = (
            fallback_limit if fallback_limit is not None else settings.relevance_fallback_limit
        )
        self.temperature = temperature

    async def filter(self, posts: list[Post], query: str) -> tuple[list[Post], FilterStats]:
        if not posts:
            return [], FilterStats(min_score=self.min_score)

        system_prompt = load_prompt("relevance_filter")
        user_message = (
            f"Question: {query}\n\n"
            f"Posts ({len(posts)}):\n"
            f"{json.dumps(self._project(posts), ensure_ascii=False)}"
        )

        try:
            text = await call_model(system_prompt, user_message, temperature=self.temperature, max_tokens=4000)
        except (AIServiceError, ConfigurationMissingError) as e:
            logger.warning("Relevance scoring unavailable, using fallback | %s", e.message[:200])
            return self._fallback(posts)

        scores = self.parse_scores(text)
        if scores is None:
            logger.warning("Relevance response not a score map, using fallback | %s", text[:120])
            return self._fallback(posts)

        return self.apply_scores(posts, scores)

    def apply_scores(self, posts: list[Post], scores: dict[int, int]) -> tuple[list[Post], FilterStats]:
        """Keep posts at or above ``min_score``, highest score first."""
        ranked = [
            (scores.get(i, 0), i, post) for i, post in enumerate(posts)
            if scores.get(i, 0) >= self.min_score
        ]
        ranked.sort(key=lambda r: (-r[0], r[1]))
        kept = [post.model_copy(update={"relevance_score": score}) for score, _, post in ranked]

        logger.info("Relevance filter | candidates=%d | retained=%d", len(posts), len(kept))
        return kept, FilterStats(
            candidates=len(posts), retained=len(kept), min_score=self.min_score,
        )

    @staticmethod
    def parse_scores(text: str) -> dict[int, int] | None:
        """Read ``{"0": 7, ...}`` into ``{0: 7}``. None when no score map is found.

        Unusable entries are skipped, so an empty map is a valid answer and
        retains nothing.
        """
        parsed = extract_json(text)
        if parsed is None:
            return None

        scores: dict[int, int] = {}
        for key, value in parsed.items():
            try:
                index = int(str(key).strip())
                score = int(round(float(value)))
            except (TypeError, ValueError, OverflowError):
                continue
            scores[index] = max(0, min(10, score))
        return scores

    def _fallback(self, posts: list[Post]) -> tuple[list[Post], FilterStats]:
        kept = posts[: self.fallback_limit]
        return kept, FilterStats(
            candidates=len(posts), retained=len(kept), min_score=self.min_score, fallback=True,
        )

    @staticmethod
    def _project(posts: list[Post]) -> list[dict]:
        items = []
        for i, post in enumerate(posts):
            excerpt = post.excerpt or ""
            if len(excerpt) > EXCERPT_CHARS:
                excerpt = excerpt[:EXCERPT_CHARS] + "..."
            items.append({
                "index": i,
                "title": post.title[:200],
                "subreddit": post.subreddit,
                "excerpt": excerpt,
            })
        return items
