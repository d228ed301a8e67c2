"""Tests for the Reddit search integration — pagination, mapping, retries."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from redscout.errors import UpstreamUnavailableError
from redscout.integrations.reddit import RedditClient
from redscout.orchestrator.schemas import SortMode, TimeBucket
from redscout.services.retry import RetryPolicy


class TestParsePost:
    def test_field_mapping(self, reddit_client, make_child, now):
        child = make_child("abc", score=42, num_comments=7, author="alice", selftext="Body text")
        post = reddit_client._parse_post(child)

        assert post.id == "abc"
        assert post.title == "Title abc"
        assert post.upvotes == 42
        assert post.comments == 7
        assert post.link == "https://www.reddit.com/r/test/comments/abc/title_abc/"
        assert post.subreddit == "r/test"
        assert post.author == "alice"
        assert post.created == now
        assert post.created.tzinfo is not None
        assert post.excerpt == "Body text"
        assert post.relevance_score is None

    def test_long_selftext_truncated(self, reddit_client, make_child):
        post = reddit_client._parse_post(make_child("abc", selftext="x" * 1000))
        assert post.excerpt.endswith("...")
        assert len(post.excerpt) == 303

    def test_empty_selftext_is_none(self, reddit_client, make_child):
        assert reddit_client._parse_post(make_child("abc", selftext="")).excerpt is None

    def test_missing_id_skipped(self, reddit_client):
        assert reddit_client._parse_post({"kind": "t3", "data": {"title": "x"}}) is None

    def test_bad_timestamp_skipped(self, reddit_client, make_child):
        child = make_child("abc")
        child["data"]["created_utc"] = "yesterday"
        assert reddit_client._parse_post(child) is None

    def test_build_params(self, reddit_client):
        params = reddit_client._build_params("laptop", SortMode.HOT, None, None)
        assert params == {
            "q": "laptop", "limit": "100", "sort": "hot", "t": "all",
            "type": "link", "raw_json": "1",
        }

    def test_build_params_with_cursor_and_bucket(self, reddit_client):
        params = reddit_client._build_params("laptop", SortMode.TOP, TimeBucket.WEEK, "t3_x")
        assert params["after"] == "t3_x"
        assert params["t"] == "week"

    def test_synthetic_bucket_sends_native_bucket(self, reddit_client):
        params = reddit_client._build_params("laptop", SortMode.TOP, TimeBucket.LAST_15_DAYS, None)
        assert params["t"] == "month"


class TestFetchPosts:
    @pytest.mark.asyncio
    async def test_single_page(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a", 5), make_child("b", 50)]))

        posts = await reddit_client.fetch_posts("laptop overheating", SortMode.TOP)

        assert [p.id for p in posts] == ["b", "a"]
        request = httpx_mock.get_requests()[0]
        assert request.url.path == "/search.json"
        assert request.url.params["q"] == "laptop overheating"
        assert request.url.params["sort"] == "top"
        assert "User-Agent" in request.headers

    @pytest.mark.asyncio
    async def test_dedupes_across_pages(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a", 10), make_child("b", 20)], after="t3_b"))
        httpx_mock.add_response(json=listing([make_child("b", 99), make_child("c", 5)]))

        posts = await reddit_client.fetch_posts("q")

        assert [p.id for p in posts] == ["b", "a", "c"]
        # first occurrence wins
        assert next(p for p in posts if p.id == "b").upvotes == 20
        assert httpx_mock.get_requests()[1].url.params["after"] == "t3_b"

    @pytest.mark.asyncio
    async def test_never_more_than_100_and_sorted(self, httpx_mock, reddit_client, make_child, listing):
        for page in range(3):
            children = [make_child(f"p{page}_{i}", score=(i * 7 + page) % 53) for i in range(40)]
            httpx_mock.add_response(json=listing(children, after=f"t3_p{page}"))

        posts = await reddit_client.fetch_posts("q")

        assert len(posts) == 100
        scores = [p.upvotes for p in posts]
        assert scores == sorted(scores, reverse=True)
        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    async def test_page_ceiling(self, httpx_mock, reddit_client, make_child, listing):
        for page in range(4):
            httpx_mock.add_response(
                json=listing([make_child(f"p{page}_{i}") for i in range(10)], after=f"t3_{page}")
            )

        posts = await reddit_client.fetch_posts("q")

        assert len(posts) == 40
        assert len(httpx_mock.get_requests()) == 4

    @pytest.mark.asyncio
    async def test_stops_on_empty_page(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a")], after="t3_a"))
        httpx_mock.add_response(json=listing([], after="t3_zzz"))

        posts = await reddit_client.fetch_posts("q")
        assert [p.id for p in posts] == ["a"]

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(status_code=503)
        httpx_mock.add_exception(httpx.ReadTimeout("timeout"))
        httpx_mock.add_response(json=listing([make_child("a")]))

        posts = await reddit_client.fetch_posts("q")
        assert [p.id for p in posts] == ["a"]

    @pytest.mark.asyncio
    async def test_later_page_failure_returns_partial(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a", 3), make_child("b", 9)], after="t3_b"))
        for _ in range(3):
            httpx_mock.add_response(status_code=500)

        posts = await reddit_client.fetch_posts("q")
        assert [p.id for p in posts] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_first_page_failure_raises(self, httpx_mock, reddit_client):
        for _ in range(3):
            httpx_mock.add_response(status_code=429)

        with pytest.raises(UpstreamUnavailableError):
            await reddit_client.fetch_posts("q")

    @pytest.mark.asyncio
    async def test_non_retryable_failure_not_retried(self, httpx_mock, reddit_client):
        httpx_mock.add_response(status_code=403)

        with pytest.raises(UpstreamUnavailableError):
            await reddit_client.fetch_posts("q")
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_last_15_days_filters_old_posts(self, httpx_mock, reddit_client, make_child, listing, now):
        httpx_mock.add_response(json=listing([
            make_child("recent", 1, created=now - timedelta(days=5)),
            make_child("old", 100, created=now - timedelta(days=20)),
            make_child("edge", 2, created=now - timedelta(days=15)),
        ]))

        posts = await reddit_client.fetch_posts("q", SortMode.TOP, TimeBucket.LAST_15_DAYS)

        assert [p.id for p in posts] == ["edge", "recent"]
        assert httpx_mock.get_requests()[0].url.params["t"] == "month"

    @pytest.mark.asyncio
    async def test_native_bucket_not_filtered(self, httpx_mock, reddit_client, make_child, listing):
        httpx_mock.add_response(json=listing([
            make_child("old", 1, created=datetime(2020, 1, 1, tzinfo=timezone.utc)),
        ]))

        posts = await reddit_client.fetch_posts("q", "top", "all")
        assert [p.id for p in posts] == ["old"]


class TestPageDelay:
    @pytest.fixture
    def sleep(self):
        return AsyncMock()

    @pytest.fixture
    def polite_client(self, sleep, now):
        return RedditClient(
            base_url="https://www.reddit.com",
            page_delay=1.0,
            list_retry=RetryPolicy(max_attempts=1, base_delay=0),
            now=lambda: now,
            sleep=sleep,
        )

    @pytest.mark.asyncio
    async def test_delay_between_pages_only(self, httpx_mock, polite_client, sleep, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a")], after="t3_a"))
        httpx_mock.add_response(json=listing([make_child("b")]))

        posts = await polite_client.fetch_posts("q")

        assert len(posts) == 2
        assert [c.args for c in sleep.await_args_list] == [(1.0,)]

    @pytest.mark.asyncio
    async def test_no_delay_for_single_page(self, httpx_mock, polite_client, sleep, make_child, listing):
        httpx_mock.add_response(json=listing([make_child("a")]))

        await polite_client.fetch_posts("q")
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_delay_after_page_ceiling(self, httpx_mock, sleep, make_child, listing, now):
        client = RedditClient(
            page_delay=1.0,
            max_pages=2,
            list_retry=RetryPolicy(max_attempts=1, base_delay=0),
            now=lambda: now,
            sleep=sleep,
        )
        httpx_mock.add_response(json=listing([make_child("a")], after="t3_a"))
        httpx_mock.add_response(json=listing([make_child("b")], after="t3_b"))

        await client.fetch_posts("q")
        assert sleep.await_count == 1


class TestFetchDetail:
    @pytest.mark.asyncio
    async def test_joins_replies_and_drops_tombstones(self, httpx_mock, reddit_client, sample_comment_thread):
        httpx_mock.add_response(json=sample_comment_thread)

        excerpt = await reddit_client.fetch_detail("/r/test/comments/abc/title/")

        assert excerpt == "Clean the fans with compressed air.\n\nRepaste the CPU."
        request = httpx_mock.get_requests()[0]
        assert request.url.path == "/r/test/comments/abc/title.json"
        assert request.url.params["limit"] == "10"

    @pytest.mark.asyncio
    async def test_accepts_full_link(self, httpx_mock, reddit_client, sample_comment_thread):
        httpx_mock.add_response(json=sample_comment_thread)

        await reddit_client.fetch_detail("https://www.reddit.com/r/test/comments/abc/title/")
        assert httpx_mock.get_requests()[0].url.path == "/r/test/comments/abc/title.json"

    @pytest.mark.asyncio
    async def test_respects_comment_limit(self, httpx_mock, reddit_client, sample_comment_thread):
        httpx_mock.add_response(json=sample_comment_thread)

        excerpt = await reddit_client.fetch_detail("/r/test/comments/abc/title/", max_comments=1)
        assert excerpt == "Clean the fans with compressed air."

    @pytest.mark.asyncio
    async def test_failure_returns_empty_string(self, httpx_mock, reddit_client):
        httpx_mock.add_response(status_code=502)
        httpx_mock.add_response(status_code=502)

        assert await reddit_client.fetch_detail("/r/test/comments/abc/title/") == ""
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_unexpected_shape_returns_empty_string(self, httpx_mock, reddit_client):
        httpx_mock.add_response(json={"error": 404})

        assert await reddit_client.fetch_detail("/r/test/comments/abc/title/") == ""
