#!/usr/bin/env python3
"""Live upstream verification script — run outside the sandbox with network access.

Usage:
  1. Fill in ANTHROPIC_API_KEY in .env (steps 4-5 need it)
  2. Run: python scripts/verify_upstream.py

Steps:
  Step 1: Verify .env configuration
  Step 2: Plain Reddit search (no key required)
  Step 3: Discussion excerpt for the top result
  Step 4: Query planner
  Step 5: Full context search
"""

import asyncio
import sys

QUESTION = "how do I stop my laptop from overheating while gaming"


def step_header(n: int, title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  Step {n}: {title}")
    print(f"{'='*60}\n")


def ok(msg: str) -> None:
    print(f"  ✅ {msg}")


def fail(msg: str) -> None:
    print(f"  ❌ {msg}")


def info(msg: str) -> None:
    print(f"  ℹ️  {msg}")


async def step1_verify_env():
    step_header(1, "Verify .env Configuration")
    from redscout.config import settings

    ok(f"Reddit base URL: {settings.reddit_base_url}")
    ok(f"User-Agent: {settings.reddit_user_agent}")
    ok(f"Model: {settings.claude_model}")
    if settings.has_anthropic_key:
        ok(f"ANTHROPIC_API_KEY: set ({settings.anthropic_api_key[:10]}...)")
        return True
    fail("ANTHROPIC_API_KEY: NOT SET — context search will answer 503")
    return False


async def step2_plain_search():
    step_header(2, "Plain Reddit Search")
    from redscout.errors import ScoutError
    from redscout.integrations.reddit import RedditClient
    from redscout.orchestrator.schemas import SortMode, TimeBucket

    client = RedditClient()
    info("Searching: 'laptop overheating' (top, last 15 days)")
    try:
        posts = await client.fetch_posts("laptop overheating", SortMode.TOP, TimeBucket.LAST_15_DAYS)
    except ScoutError as e:
        fail(f"Search failed: {e.message}")
        return []

    if posts:
        ok(f"Got {len(posts)} posts")
        for p in posts[:3]:
            print(f"    - [{p.upvotes:>5}] {p.title[:60]} ({p.subreddit})")
    else:
        fail("No results returned — check network connectivity")
    return posts


async def step3_discussion(posts):
    step_header(3, "Discussion Excerpt")
    from redscout.integrations.reddit import RedditClient

    if not posts:
        info("No posts from step 2, skipping")
        return False

    excerpt = await RedditClient().fetch_detail(posts[0].link)
    if excerpt:
        ok(f"Got {len(excerpt.split(chr(10) * 2))} replies")
        print(f"    {excerpt[:120]}...")
        return True
    fail("Empty excerpt — the thread may have no replies")
    return False


async def step4_planner():
    step_header(4, "Query Planner")
    from redscout.pipelines.context.query_planner import QueryPlanner

    info(f"Question: '{QUESTION}'")
    queries = await QueryPlanner().plan(QUESTION)
    for q in queries:
        print(f"    - {q.text}")
    if len(queries) > 1:
        ok(f"Planner produced {len(queries)} queries")
        return True
    fail("Planner fell back to the original question")
    return False


async def step5_context_search():
    step_header(5, "Full Context Search")
    from redscout.integrations.reddit import RedditClient
    from redscout.pipelines.context import ContextSearchPipeline

    result = await ContextSearchPipeline(RedditClient()).execute(QUESTION)
    stats = result.filter_stats
    ok(f"State: {result.query_context.state.value}")
    ok(f"Candidates: {stats.candidates} | retained: {stats.retained} | fallback: {stats.fallback}")
    for p in result.posts[:3]:
        print(f"    - [{p.relevance_score}] {p.title[:60]}")
    return bool(result.posts)


async def main():
    print("\n🔎 RedScout Backend — Live Upstream Verification")
    print("=" * 60)

    results = {}

    results[1] = await step1_verify_env()

    posts = await step2_plain_search()
    results[2] = bool(posts)

    results[3] = await step3_discussion(posts)

    if not results[1]:
        print("\n⚠️  Skipping context search tests (no ANTHROPIC_API_KEY)")
        results[4] = results[5] = False
    else:
        results[4] = await step4_planner()
        results[5] = await step5_context_search()

    print(f"\n{'='*60}")
    print("  SUMMARY")
    print(f"{'='*60}")
    for step_n, passed in sorted(results.items()):
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"  Step {step_n}: {status}")

    total_passed = sum(1 for v in results.values() if v)
    print(f"\n  {total_passed}/{len(results)} steps passed")
    print(f"{'='*60}\n")

    sys.exit(0 if all(results.values()) else 1)


if __name__ == "__main__":
    asyncio.run(main())
