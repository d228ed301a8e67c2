"""Async Anthropic API wrapper with retry, logging, and JSON extraction."""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

import anthropic
import httpx

from redscout.config import settings
from redscout.errors import AIServiceError, ConfigurationMissingError
from redscout.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Singleton client, initialized lazily
_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    global _client
    if _client is None:
        _client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=httpx.Timeout(settings.llm_timeout_seconds, connect=10.0),
            max_retries=0,  # retries are handled by RetryPolicy
        )
    return _client


def is_transient_llm_error(exc: BaseException) -> bool:
    """Rate limits, 5xx, timeouts and connection failures are worth retrying."""
    if isinstance(exc, (anthropic.APITimeoutError, anthropic.APIConnectionError)):
        return True
    if isinstance(exc, anthropic.APIStatusError):
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def llm_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.llm_max_attempts,
        base_delay=settings.llm_retry_base_seconds,
        is_retryable=is_transient_llm_error,
        name="llm",
    )


def load_prompt(name: str) -> str:
    """Load a prompt template from redscout/prompts/{name}.txt."""
    prompt_path = Path(__file__).parent.parent / "prompts" / f"{name}.txt"
    return prompt_path.read_text(encoding="utf-8")


async def call_model(
    system: str,
    user_message: str,
    temperature: float = 0.3,
    max_tokens: int = 2000,
    retry: RetryPolicy | None = None,
) -> str:
    """Call the configured Claude model and return the raw text response.

    Raises ``ConfigurationMissingError`` when no API key is set and
    ``AIServiceError`` when the service rejects the call or stays
    unavailable after retries.
    """
    if not settings.has_anthropic_key:
        raise ConfigurationMissingError("ANTHROPIC_API_KEY is not configured")

    client = _get_client()
    model = settings.claude_model
    policy = retry or llm_retry_policy()

    async def _create():
        return await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user_message}],
        )

    start = time.monotonic()
    try:
        response = await policy.run(_create, label=model)
    except anthropic.APIStatusError as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            "LLM error | model=%s | status=%d | %dms | %s",
            model, e.status_code, elapsed_ms, str(e)[:200],
        )
        raise AIServiceError(f"LLM request failed with status {e.status_code}", e.status_code) from e
    except (anthropic.APITimeoutError, anthropic.APIConnectionError) as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.error("LLM connection error | model=%s | %dms | %s", model, elapsed_ms, str(e)[:200])
        raise AIServiceError("LLM service unreachable") from e

    elapsed_ms = int((time.monotonic() - start) * 1000)
    text = response.content[0].text if response.content else ""
    usage = response.usage
    logger.info(
        "LLM OK | model=%s | tokens_in=%d tokens_out=%d | %dms",
        model, usage.input_tokens, usage.output_tokens, elapsed_ms,
    )
    return text


# ═══════════════ BEST-EFFORT STRUCTURED EXTRACTION ═══════════════

_BRACKETS = {dict: ("{", "}"), list: ("[", "]")}


def extract_json(text: str) -> dict | None:
    """Extract a JSON object from potentially messy LLM output."""
    return extract_structured(text, dict)


def extract_json_list(text: str) -> list | None:
    """Extract a JSON array from potentially messy LLM output."""
    return extract_structured(text, list)


def extract_structured(text: str, kind: type) -> Any:
    """Extract a JSON value of type ``kind`` (dict or list) from LLM output.

    Strategies (in order):
      1. Full text as JSON
      2. Code fence (```json ... ```)
      3. Balanced-bracket extraction
    Returns None when nothing parses to the requested type.
    """
    if not text:
        return None
    open_ch, close_ch = _BRACKETS[kind]

    # Strategy 1: full text
    result = _try_parse(text.strip(), kind)
    if result is not None:
        return result

    # Strategy 2: code fence
    for fence in re.finditer(r"```(?:json)?\s*([\s\S]*?)\s*```", text):
        result = _try_parse(fence.group(1), kind)
        if result is not None:
            return result

    # Strategy 3: balanced brackets
    return _extract_balanced(text, kind, open_ch, close_ch)


def _try_parse(s: str, kind: type) -> Any:
    try:
        obj = json.loads(s)
        if isinstance(obj, kind):
            return obj
    except (json.JSONDecodeError, ValueError):
        pass
    return None


def _extract_balanced(text: str, kind: type, open_ch: str, close_ch: str) -> Any:
    pos = 0
    while pos < len(text):
        start = text.find(open_ch, pos)
        if start == -1:
            break
        depth = 0
        in_string = False
        escape = False
        for i in range(start, len(text)):
            ch = text[i]
            if escape:
                escape = False
                continue
            if ch == "\\" and in_string:
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    result = _try_parse(text[start:i + 1], kind)
                    if result is not None:
                        return result
                    break
        else:
            break
        pos = start + 1
    return None
