"""Content ideas — short-form video ideas from a community's discussions.

Flow: discussion texts (title, community, upvotes, top replies) → one LLM
call → tolerant JSON-array parse. An unusable answer yields no ideas rather
than an error; service errors propagate.
"""

import logging

from redscout.config import settings
from redscout.orchestrator.schemas import ContentIdea, Post
from redscout.services.llm_client import call_model, extract_json_list, load_prompt

logger = logging.getLogger(__name__)

IDEA_FIELDS = ("hook", "concept", "why", "cta")
SEPARATOR = "\n\n---\n\n"


def format_discussion(post: Post, replies: str) -> str:
    return (
        f"Title: {post.title}\n"
        f"Subreddit: {post.subreddit}\n"
        f"Upvotes: {post.upvotes}\n"
        f"Comments:\n{replies}"
    )


class ContentIdeaGenerator:
    """Turn collected discussions into at most ``max_ideas`` content ideas."""

    def __init__(
        self,
        max_ideas: int | None = None,
        max_chars: int | None = None,
        temperature: float = 0.7,
    ):
        self.max_ideas = max_ideas or settings.ideas_count
        self.max_chars = max_chars or settings.ideas_max_discussion_chars
        self.temperature = temperature

    async def generate(self, topic: str, discussions: list[str]) -> list[ContentIdea]:
        system_prompt = load_prompt("content_ideas")
        body = SEPARATOR.join(discussions)[: self.max_chars]
        user_message = (
            f"Community: {topic}\n"
            f"Generate the top {self.max_ideas} ideas.\n\n"
            f"Discussions:\n{body}"
        )

        text = await call_model(system_prompt, user_message, temperature=self.temperature, max_tokens=3000)
        ideas = self.parse(text)
        logger.info("Content ideas | topic=%s | discussions=%d | ideas=%d", topic[:40], len(discussions), len(ideas))
        return ideas

    def parse(self, text: str) -> list[ContentIdea]:
        parsed = extract_json_list(text)
        if parsed is None:
            logger.warning("Ideas response not a JSON array | %s", text[:120])
            return []

        ideas = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            fields = {k: str(item[k]).strip() for k in IDEA_FIELDS if item.get(k) is not None}
            if not fields.get("hook") and not fields.get("concept"):
                continue
            ideas.append(ContentIdea(**fields))
        return ideas[: self.max_ideas]
