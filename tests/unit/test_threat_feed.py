"""tests for threat feed sources, aggregation, caching and the local denylist"""

import asyncio
import json

import httpx
import pytest

from guardian.models import Category, Severity
from guardian.rate_limiter import RateLimit, RateLimiter
from guardian.threat_feed import (
    DenylistAddress,
    DenylistEntry,
    FortaSource,
    GoPlusSource,
    LocalDenylist,
    LocalDenylistSource,
    SourceError,
    ThreatFeedAggregator,
    ThreatSource,
    ThreatSourceResult,
    aggregate_results,
    cache_key,
    response_to_finding,
)
from guardian.threat_feed.aggregator import TTL_CLEAN, TTL_MALICIOUS, TTL_UNKNOWN
from guardian.utils.caching import TTLCache

from tests.conftest import FakeClock

THALA = "0xfda62e5263fd11e40e7cbce67c780fb07a1cc25aa46ab9d6a3de2d5a3be18c36"
LAZARUS = "0x098B716B8Aaf21512996dC57EB0615e2383E2f96"


class StubSource(ThreatSource):
    """answers from a fixed result and counts calls"""

    def __init__(self, name="stub", is_malicious=False, confidence=80, error=None, delay=0.0, rate_limit=None):
        self.name = name
        self.is_malicious = is_malicious
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.rate_limit = rate_limit
        self.calls = 0

    async def query(self, address, network):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if self.error:
            raise self.error
        return ThreatSourceResult(
            source=self.name,
            is_malicious=self.is_malicious,
            confidence=self.confidence,
            risk_type="Phishing" if self.is_malicious else None,
        )


def _feed(*sources, clock=None, **kwargs):
    clock = clock or FakeClock()
    return ThreatFeedAggregator(
        sources=list(sources),
        rate_limiter=RateLimiter(clock=clock),
        cache=TTLCache(clock=clock),
        source_timeout=kwargs.pop("source_timeout", 1.0),
        **kwargs,
    )


class TestAggregateResults:

    def test_malicious_local_hit(self):
        results = [ThreatSourceResult(source="local_db", is_malicious=True, confidence=95, risk_type="exploiter")]
        response = aggregate_results("0xabc", "mainnet", results, {"local_db": 0.2})
        assert response.is_malicious
        assert response.confidence == 100
        assert response.risk_score == 100
        assert response.risk_level == Severity.CRITICAL
        assert "exploiter" in response.tags
        assert response.flagged_by == ["local_db"]

    def test_clean_answer(self):
        results = [
            ThreatSourceResult(source="goplus", confidence=70),
            ThreatSourceResult(source="local_db", confidence=50),
        ]
        response = aggregate_results("0xabc", "mainnet", results, {"goplus": 0.35, "local_db": 0.2})
        assert not response.is_malicious
        assert response.confidence == 63
        assert response.risk_score == 37
        assert response.description == "No threats detected from queried sources."

    def test_failed_sources_excluded(self):
        results = [
            ThreatSourceResult(source="goplus", error="Timeout"),
            ThreatSourceResult(source="forta", error="Rate limited"),
        ]
        response = aggregate_results("0xabc", "mainnet", results, {})
        assert response.is_unknown
        assert response.sources_queried == 2
        assert response.sources_responded == 0
        assert response.risk_score == 0


class TestAggregatorQuery:

    async def test_second_query_is_cache_hit(self):
        source = StubSource()
        feed = _feed(source)
        first = await feed.query("0xABC", "mainnet")
        second = await feed.query("0xabc", "mainnet")
        assert not first.cache_hit
        assert second.cache_hit
        assert source.calls == 1
        assert feed.source_requests == {"stub": 1}

    async def test_networks_cached_separately(self):
        source = StubSource()
        feed = _feed(source)
        await feed.query("0xabc", "mainnet")
        await feed.query("0xabc", "testnet")
        assert source.calls == 2

    async def test_ttl_by_verdict(self):
        clock = FakeClock(now=0)
        malicious = _feed(StubSource(is_malicious=True), clock=clock)
        await malicious.query("0xbad")
        assert malicious.cache.expires_at(cache_key("0xbad", "mainnet")) == TTL_MALICIOUS

        clean = _feed(StubSource(), clock=clock)
        await clean.query("0xgood")
        assert clean.cache.expires_at(cache_key("0xgood", "mainnet")) == TTL_CLEAN

        unknown = _feed(StubSource(error=RuntimeError("down")), clock=clock)
        response = await unknown.query("0xwho")
        assert response.is_unknown
        assert unknown.cache.expires_at(cache_key("0xwho", "mainnet")) == TTL_UNKNOWN

    async def test_expired_entry_requeried(self):
        clock = FakeClock()
        source = StubSource()
        feed = _feed(source, clock=clock)
        await feed.query("0xabc")
        clock.advance(TTL_CLEAN)
        response = await feed.query("0xabc")
        assert not response.cache_hit
        assert source.calls == 2

    async def test_source_error_contained(self):
        feed = _feed(StubSource("goplus", error=httpx.ConnectError("refused")), StubSource("local_db"))
        response = await feed.query("0xabc")
        by_source = {s.source: s for s in response.sources}
        assert by_source["goplus"].error == "refused"
        assert by_source["local_db"].ok
        assert response.sources_responded == 1

    async def test_slow_source_times_out(self):
        feed = _feed(StubSource("slow", delay=5), StubSource("fast"), source_timeout=0.05)
        response = await feed.query("0xabc")
        by_source = {s.source: s for s in response.sources}
        assert by_source["slow"].error == "Timeout"
        assert by_source["fast"].ok

    async def test_rate_limited_source_not_called(self):
        source = StubSource(rate_limit=RateLimit(max_calls=1))
        feed = _feed(source)
        await feed.query("0x1111")
        response = await feed.query("0x2222")
        assert response.sources[0].error == "Rate limited"
        assert source.calls == 1
        assert feed.source_requests["stub"] == 1
        assert feed.stats()["rate_limits"]["stub"] == {"limit": 1, "used": 1}

    async def test_concurrent_queries_share_one_fill(self):
        source = StubSource(delay=0.01)
        feed = _feed(source)
        first, second = await asyncio.gather(feed.query("0xabc"), feed.query("0xabc"))
        assert source.calls == 1
        assert [first.cache_hit, second.cache_hit].count(True) == 1

    async def test_query_batch_pauses_between_chunks(self):
        pauses = []

        async def fake_sleep(seconds):
            pauses.append(seconds)

        feed = _feed(StubSource(), sleep=fake_sleep)
        addresses = [f"0x{i:04x}" for i in range(11)]
        results = await feed.query_batch(addresses)
        assert set(results) == set(addresses)
        assert pauses == [0.1]

    async def test_denylist_helpers(self):
        feed = _feed(LocalDenylistSource())
        assert feed.denylist is not None
        related = feed.find_related(LAZARUS)
        assert [r["address"] for r in related] == ["0xa0e1c89Ef1a489c9C7dE96311eD5Ce5D32c20E4B"]
        assert _feed(StubSource()).find_related(LAZARUS) == []

    async def test_known_exploiter_flagged(self):
        feed = _feed(LocalDenylistSource())
        response = await feed.query(THALA, "mainnet")
        assert response.is_malicious
        assert "exploiter" in response.tags


class TestResponseToFinding:

    def test_malicious(self):
        results = [ThreatSourceResult(source="local_db", is_malicious=True, confidence=95, risk_type="exploiter")]
        response = aggregate_results(THALA, "mainnet", results, {"local_db": 0.2})
        finding = response_to_finding(response, "Sender")
        assert finding.pattern_id == "threat_feed:malicious_address"
        assert finding.category == Category.RUG_PULL
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == 0.85
        assert finding.title == "Malicious Sender Detected (1 sources)"
        assert finding.evidence["address"] == THALA

    def test_clean_is_none(self):
        response = aggregate_results("0xabc", "mainnet", [ThreatSourceResult(source="goplus", confidence=70)], {})
        assert response_to_finding(response) is None


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGoPlusSource:

    async def test_flags(self):
        def handler(request):
            assert request.url.path == "/api/v1/address_security/0xabc"
            assert request.url.params["chain_id"] == "aptos"
            return httpx.Response(200, json={
                "code": 1,
                "result": {"phishing_activities": "1", "sanctioned": "1", "blacklist_doubt": "0"},
            })

        async with _client(handler) as client:
            source = GoPlusSource("https://api.gopluslabs.io/api/v1/", client=client)
            result = await source.query("0xabc", "mainnet")
        assert result.is_malicious
        assert result.confidence == 70
        assert result.details["phishing"] is True
        assert result.details["blacklist"] is False

    async def test_clean(self):
        async with _client(lambda r: httpx.Response(200, json={"code": 1, "result": {}})) as client:
            result = await GoPlusSource("https://goplus.test", client=client).query("0xabc", "mainnet")
        assert not result.is_malicious
        assert result.confidence == 70

    async def test_invalid_payload(self):
        async with _client(lambda r: httpx.Response(200, json={"code": 2, "message": "bad"})) as client:
            with pytest.raises(SourceError):
                await GoPlusSource("https://goplus.test", client=client).query("0xabc", "mainnet")

    async def test_http_error(self):
        async with _client(lambda r: httpx.Response(503)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await GoPlusSource("https://goplus.test", client=client).query("0xabc", "mainnet")


class TestFortaSource:

    async def test_serious_alerts(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["variables"] == {"address": "0xabc"}
            return httpx.Response(200, json={"data": {"alerts": {"alerts": [
                {"severity": "HIGH", "name": "Phishing Drainer"},
                {"severity": "LOW", "name": "Noise"},
            ]}}})

        async with _client(handler) as client:
            result = await FortaSource("https://forta.test/graphql", client=client).query("0xABC", "mainnet")
        assert result.is_malicious
        assert result.confidence == 70
        assert result.risk_type == "Phishing Drainer"
        assert result.details["alert_count"] == 2

    async def test_no_alerts(self):
        async with _client(lambda r: httpx.Response(200, json={"data": None})) as client:
            result = await FortaSource("https://forta.test/graphql", client=client).query("0xabc", "mainnet")
        assert not result.is_malicious
        assert result.confidence == 60


class TestLocalDenylist:

    def test_lookup_case_insensitive(self):
        denylist = LocalDenylist()
        assert denylist.lookup(THALA).actor_name == "Thala Exploiter"
        assert denylist.lookup(LAZARUS.lower()).actor_type == "sanctioned"
        assert denylist.lookup("0x1") is None

    def test_partial_address(self):
        entry = DenylistEntry(
            id="partial",
            actor_type="scammer",
            actor_name="Prefix Scammer",
            addresses=(DenylistAddress("aptos", "0xdeadbeef", partial=True),),
            incident="test",
            loss="N/A",
            confidence="medium",
        )
        denylist = LocalDenylist([entry])
        assert denylist.lookup("0xDEADBEEF1234") is entry
        assert entry.feed_confidence == 75

    async def test_source_miss_is_weak_clean(self):
        result = await LocalDenylistSource().query("0x1234", "mainnet")
        assert not result.is_malicious
        assert result.confidence == 50

    async def test_source_hit(self):
        result = await LocalDenylistSource().query(THALA, "mainnet")
        assert result.is_malicious
        assert result.confidence == 95
        assert "liquidity-drain" in result.details["tags"]

    def test_stats(self):
        stats = LocalDenylist().stats()
        assert stats["entries"] >= 6
        assert stats["addresses"] > stats["entries"]
