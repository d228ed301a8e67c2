"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration — reads from environment / .env file."""

    # Anthropic
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-6"

    # LLM defaults
    llm_timeout_seconds: int = 30
    llm_max_attempts: int = 3
    llm_retry_base_seconds: float = 1.0

    # Reddit public JSON API
    reddit_base_url: str = "https://www.reddit.com"
    reddit_user_agent: str = "RedScout/1.0 (keyword search service)"
    reddit_timeout_seconds: float = 10.0
    reddit_page_size: int = 100
    reddit_max_pages: int = 4
    reddit_max_posts: int = 100
    reddit_page_delay_seconds: float = 1.0
    reddit_max_attempts: int = 3
    reddit_retry_base_seconds: float = 1.0
    reddit_detail_max_attempts: int = 2
    reddit_detail_retry_base_seconds: float = 0.5
    reddit_detail_max_comments: int = 10
    reddit_excerpt_chars: int = 300

    # Result cache
    cache_ttl_seconds: int = 300                # 5 minutes
    cache_max_entries: int = 512
    sweep_interval_seconds: float = 60.0

    # Admission control: 1 request per 2 seconds per client
    rate_limit_window_ms: int = 2000
    rate_limit_max_requests: int = 1

    # Context search
    planner_max_queries: int = 3
    relevance_min_score: int = 6
    relevance_fallback_limit: int = 20
    max_discussion_posts: int = 10

    # Content ideas
    ideas_count: int = 5
    ideas_max_discussion_chars: int = 15000

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def cors_origins(self) -> list[str]:
        if self.allowed_origins == "*":
            return ["*"]
        return [o.strip() for o in self.allowed_origins.split(",")]


settings = Settings()
