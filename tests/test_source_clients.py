"""
Tests for the upstream source clients with respx HTTP mocking.
"""
from __future__ import annotations

import asyncio

import httpx
import pytest
import respx
from httpx import Response

from copyscout.core.exceptions import ChallengePageError, RateLimitError, SourceError
from copyscout.services.bing_svc import BingRssService
from copyscout.services.duckduckgo_svc import DuckDuckGoService, decode_result_href
from copyscout.services.health_svc import InMemoryHealthStore
from copyscout.services.jina_svc import JinaMirrorService
from copyscout.services.nitter_svc import NitterService
from copyscout.services.source_base import is_challenge_page, parse_stat, to_x_url
from copyscout.services.syndication_svc import SyndicationService

NITTER = "https://nitter.example"

TIMELINE_HTML = """
<html><body><div class="timeline">
  <div class="timeline-item">
    <a class="tweet-link" href="/copycat/status/1234567890#m"></a>
    <div class="tweet-header">
      <a class="tweet-avatar"><img class="avatar round" src="/pic/avatar.jpg"></a>
      <a class="fullname" href="/copycat">Copy Cat</a>
      <a class="username" href="/copycat">@copycat</a>
      <span class="tweet-date"><a href="/copycat/status/1234567890#m" title="Mar 1, 2024 · 12:00 PM UTC">2h</a></span>
    </div>
    <div class="tweet-content media-body">hello world this is long enough</div>
    <div class="tweet-stats">
      <span class="tweet-stat"><div class="icon-container"><span class="icon-comment"></span> 1,204</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="icon-retweet"></span> 3.5K</div></span>
      <span class="tweet-stat"><div class="icon-container"><span class="icon-heart"></span> 2M</div></span>
    </div>
  </div>
  <div class="timeline-item">
    <div class="retweet-header">Someone retweeted</div>
    <a class="tweet-link" href="/other/status/42#m"></a>
    <a class="fullname">Other</a><a class="username">@other</a>
    <div class="tweet-content">hello world this is long enough</div>
  </div>
</div></body></html>
"""

MAIN_TWEET_HTML = """
<html><body><div class="main-tweet"><div class="timeline-item">
  <a class="fullname">Alice</a><a class="username">@alice</a>
  <span class="tweet-date"><a title="Feb 2, 2024 · 9:00 AM UTC">Feb 2</a></span>
  <div class="tweet-content">the original words</div>
  <div class="tweet-stats"><span><span class="icon-heart"></span> 12</span></div>
</div></div></body></html>
"""


class TestHelpers:
    @pytest.mark.parametrize(
        "text,expected",
        [("1,234", 1234), ("1.2K", 1200), ("3M", 3_000_000), ("", 0), (None, 0), ("n/a", 0)],
    )
    def test_parse_stat(self, text, expected):
        assert parse_stat(text) == expected

    def test_challenge_detection(self):
        assert is_challenge_page("<title>Just a moment...</title>") is True
        assert is_challenge_page("") is True
        assert is_challenge_page("<div class='timeline'></div>") is False

    def test_to_x_url(self):
        assert to_x_url("https://mobile.twitter.com/a/status/1") == "https://x.com/a/status/1"

    def test_decode_duckduckgo_redirect(self):
        href = "//duckduckgo.com/l/?uddg=https%3A%2F%2Ftwitter.com%2Fbob%2Fstatus%2F77&rut=abc"
        assert decode_result_href(href) == "https://twitter.com/bob/status/77"


class TestNitter:
    @pytest.mark.asyncio
    @respx.mock
    async def test_parses_timeline(self):
        respx.get(f"{NITTER}/search").mock(return_value=Response(200, text=TIMELINE_HTML))

        response = await NitterService([NITTER]).search('"hello world"', timeout=5, instance=NITTER)

        assert response.instance == NITTER
        first, second = response.results
        assert first.url == "https://x.com/copycat/status/1234567890"
        assert first.author.username == "@copycat"
        assert first.author.avatar == f"{NITTER}/pic/avatar.jpg"
        assert first.date == "Mar 1, 2024 · 12:00 PM UTC"
        assert (first.stats.replies, first.stats.retweets, first.stats.likes) == (1204, 3500, 2_000_000)
        assert first.source == "nitter"
        assert second.is_retweet is True
        assert second.stats.likes == 0
        assert second.date == "Unknown"

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_state_is_a_valid_empty_answer(self):
        respx.get(f"{NITTER}/search").mock(
            return_value=Response(200, text='<div class="timeline"><div class="timeline-none">No items found</div></div>')
        )
        response = await NitterService([NITTER]).search("query", timeout=5, instance=NITTER)
        assert response.results == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_unrecognized_page_raises(self):
        respx.get(f"{NITTER}/search").mock(return_value=Response(200, text="<html><body>maintenance</body></html>"))
        with pytest.raises(SourceError, match="no empty state"):
            await NitterService([NITTER]).search("query", timeout=5, instance=NITTER)

    @pytest.mark.asyncio
    @respx.mock
    async def test_challenge_page_raises(self):
        respx.get(f"{NITTER}/search").mock(return_value=Response(200, text="Making sure you're not a bot!"))
        with pytest.raises(ChallengePageError):
            await NitterService([NITTER]).search("query", timeout=5, instance=NITTER)

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_errors_carry_status(self):
        respx.get(f"{NITTER}/search").mock(return_value=Response(403))
        with pytest.raises(SourceError, match="returned 403"):
            await NitterService([NITTER]).search("query", timeout=5, instance=NITTER)

    @pytest.mark.asyncio
    @respx.mock
    async def test_walks_mirrors_without_pinned_instance(self):
        respx.get("https://down.example/search").mock(return_value=Response(502))
        respx.get(f"{NITTER}/search").mock(return_value=Response(200, text=TIMELINE_HTML))

        response = await NitterService(["https://down.example", NITTER]).search("query", timeout=5)

        assert response.instance == NITTER
        assert len(response.results) == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_tweet_reads_main_card(self):
        respx.get(f"{NITTER}/i/status/55").mock(return_value=Response(200, text=MAIN_TWEET_HTML))

        tweet = await NitterService([NITTER]).get_tweet("55")

        assert tweet.content == "the original words"
        assert tweet.author.username == "@alice"
        assert tweet.tweet_id == "55"
        assert tweet.stats.likes == 12

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_tweet_reports_not_found(self):
        respx.get(f"{NITTER}/i/status/56").mock(return_value=Response(404))
        respx.get(f"{NITTER}/status/56").mock(return_value=Response(200, text="<html><body></body></html>"))

        with pytest.raises(SourceError, match="not found"):
            await NitterService([NITTER]).get_tweet("56")


    @pytest.mark.asyncio
    @respx.mock
    async def test_get_tweet_moves_past_unreachable_mirror(self):
        respx.get("https://down.example/i/status/57").mock(side_effect=httpx.ConnectTimeout)
        respx.get(f"{NITTER}/i/status/57").mock(return_value=Response(200, text=MAIN_TWEET_HTML))

        tweet = await NitterService(["https://down.example", NITTER]).get_tweet("57", timeout=2)

        assert tweet.author.username == "@alice"

    @pytest.mark.asyncio
    async def test_hanging_mirror_does_not_use_up_the_whole_timeout(self):
        requested: list[str] = []

        async def fake_get(url, timeout):
            requested.append(url)
            if url.startswith("https://hang.example"):
                await asyncio.sleep(10)
            return MAIN_TWEET_HTML

        service = NitterService(["https://hang.example", NITTER])
        service._get = fake_get

        tweet = await asyncio.wait_for(service.get_tweet("58", timeout=0.5), 1.0)

        assert tweet.stats.likes == 12
        assert requested == ["https://hang.example/i/status/58", f"{NITTER}/i/status/58"]

    @pytest.mark.asyncio
    async def test_unhealthy_mirrors_are_tried_last(self):
        health = InMemoryHealthStore()
        await health.record_failure("nitter:https://bad.example", "Instance returned 403")

        service = NitterService(["https://bad.example", NITTER], health=health)

        assert await service.ordered_instances() == [NITTER, "https://bad.example"]
        assert await NitterService(["https://bad.example", NITTER]).ordered_instances() == [
            "https://bad.example",
            NITTER,
        ]

class TestFallbackSources:
    @pytest.mark.asyncio
    @respx.mock
    async def test_duckduckgo_parses_results(self):
        html = """
        <div class="result">
          <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Ftwitter.com%2Fbob%2Fstatus%2F77">Bob (@bob) on Twitter</a>
          <a class="result__snippet">hello world this is long enough</a>
        </div>
        <div class="result">
          <a class="result__a" href="https://example.com/not-a-tweet">Elsewhere</a>
        </div>
        """
        respx.get("https://html.duckduckgo.com/html/").mock(return_value=Response(200, text=html))

        response = await DuckDuckGoService().search("hello world", timeout=5)

        assert response.instance == "DuckDuckGo"
        assert len(response.results) == 1
        result = response.results[0]
        assert result.url == "https://x.com/bob/status/77"
        assert result.author.fullname == "Bob"
        assert result.author.username == "@bob"
        assert result.content == "hello world this is long enough"

    @pytest.mark.asyncio
    @respx.mock
    async def test_duckduckgo_rate_limit(self):
        respx.get("https://html.duckduckgo.com/html/").mock(return_value=Response(429, headers={"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc_info:
            await DuckDuckGoService().search("hello world", timeout=5)
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    @respx.mock
    async def test_bing_rss_parses_items(self):
        rss = """<?xml version="1.0"?><rss><channel>
          <item><title>Bob on X: "hello"</title><link>https://x.com/bob/status/88?lang=en</link>
            <description>hello world this is long enough</description></item>
          <item><title>Blog</title><link>https://example.com/post</link><description>nope</description></item>
        </channel></rss>"""
        respx.get("https://www.bing.com/search").mock(return_value=Response(200, text=rss))

        response = await BingRssService().search("hello world", timeout=5)

        assert [item.tweet_id for item in response.results] == ["88"]
        assert response.results[0].content == "hello world this is long enough"
        assert response.instance == "Bing RSS"

    @pytest.mark.asyncio
    @respx.mock
    async def test_bing_without_status_links_raises(self):
        respx.get("https://www.bing.com/search").mock(
            return_value=Response(200, text="<rss><channel></channel></rss>")
        )
        with pytest.raises(SourceError, match="no parseable"):
            await BingRssService().search("hello world", timeout=5)

    @pytest.mark.asyncio
    @respx.mock
    async def test_jina_scans_status_links(self):
        text = (
            "Search results\n"
            "Carol @carol hello world this is long enough https://x.com/carol/status/99 more text\n"
            "again https://twitter.com/carol/status/99 and https://x.com/dave/status/100"
        )
        respx.get(host="r.jina.ai").mock(return_value=Response(200, text=text))

        response = await JinaMirrorService().search("hello world", timeout=5)

        assert [item.tweet_id for item in response.results] == ["99", "100"]
        assert "hello world this is long enough" in response.results[0].content
        assert response.instance == "Jina Mirror"

    @pytest.mark.asyncio
    @respx.mock
    async def test_jina_without_links_raises(self):
        respx.get(host="r.jina.ai").mock(return_value=Response(200, text="nothing here"))
        with pytest.raises(SourceError):
            await JinaMirrorService().search("hello world", timeout=5)


class TestSyndication:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_details_maps_payload(self):
        payload = {
            "text": "the original   words",
            "created_at": "2024-02-02T09:00:00.000Z",
            "favorite_count": 12,
            "retweet_count": 3,
            "conversation_count": 2,
            "user": {"screen_name": "alice", "name": "Alice", "profile_image_url_https": "https://img/a.jpg"},
        }
        respx.get("https://cdn.syndication.twimg.com/tweet-result").mock(return_value=Response(200, json=payload))

        tweet = await SyndicationService().fetch_details("55", timeout=3)

        assert tweet.content == "the original words"
        assert tweet.author.username == "@alice"
        assert tweet.url == "https://x.com/alice/status/55"
        assert (tweet.stats.likes, tweet.stats.retweets, tweet.stats.replies) == (12, 3, 2)
        assert tweet.date == "2024-02-02T09:00:00.000Z"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_details_404(self):
        respx.get("https://cdn.syndication.twimg.com/tweet-result").mock(return_value=Response(404))
        with pytest.raises(SourceError, match="Syndication returned 404"):
            await SyndicationService().fetch_details("55", timeout=3)

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_details_retries_transient_errors(self):
        route = respx.get("https://cdn.syndication.twimg.com/tweet-result").mock(
            side_effect=[
                httpx.ConnectError("reset"),
                Response(200, json={"text": "ok words", "user": {"screen_name": "bob"}}),
            ]
        )
        tweet = await SyndicationService().fetch_details("56", timeout=3)
        assert tweet.content == "ok words"
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_payload_raises(self):
        respx.get("https://cdn.syndication.twimg.com/tweet-result").mock(return_value=Response(200, json={}))
        with pytest.raises(SourceError, match="missing tweet content"):
            await SyndicationService().fetch_details("57", timeout=3)

    @pytest.mark.asyncio
    @respx.mock
    async def test_oembed_strips_markup(self):
        payload = {
            "author_name": "Alice",
            "author_url": "https://twitter.com/alice",
            "html": '<blockquote><p lang="en">the original <a href="#">words</a></p>&mdash; Alice</blockquote>',
        }
        respx.get("https://publish.twitter.com/oembed").mock(return_value=Response(200, json=payload))

        tweet = await SyndicationService().fetch_oembed("55", timeout=3)

        assert tweet.content.startswith("the original words")
        assert tweet.author.username == "@alice"
        assert tweet.source == "oembed"
