"""multi-source address reputation with caching.

a query fans out to every source concurrently, drops the ones that error,
time out or are rate limited, and folds the rest into one weighted verdict.
results are cached per network and address with a ttl that depends on the
verdict. concurrent queries for the same key share a single fill.
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timedelta, UTC
from typing import Callable, Dict, Iterable, List, Optional

from guardian.config import config
from guardian.models import Category, ConfidenceLevel, Finding, Provenance, Severity
from guardian.rate_limiter import RateLimiter
from guardian.threat_feed.denylist import LocalDenylist
from guardian.threat_feed.models import ThreatFeedResponse, ThreatSourceResult
from guardian.threat_feed.sources import FortaSource, GoPlusSource, LocalDenylistSource, ThreatSource
from guardian.utils.caching import TTLCache

logger = logging.getLogger(__name__)

# seconds
TTL_MALICIOUS = 5 * 60
TTL_CLEAN = 15 * 60
TTL_UNKNOWN = 60

BATCH_SIZE = 10
BATCH_PAUSE_SECONDS = 0.1


def cache_key(address: str, network: str) -> str:
    return f"{network}:{address.lower()}"


def risk_level_for(score: int) -> Severity:
    if score >= 80:
        return Severity.CRITICAL
    if score >= 60:
        return Severity.HIGH
    if score >= 40:
        return Severity.MEDIUM
    return Severity.LOW


def aggregate_results(address: str, network: str, results: List[ThreatSourceResult], weights: Dict[str, float]) -> ThreatFeedResponse:
    valid = [r for r in results if r.ok]
    is_malicious = any(r.is_malicious for r in valid)

    total_weight = 0.0
    weighted = 0.0
    for result in valid:
        weight = weights.get(result.source, 0.1)
        total_weight += weight
        weighted += result.confidence * weight * (1.5 if result.is_malicious else 1.0)
    confidence = min(round(weighted / total_weight), 100) if total_weight > 0 else 0

    if not valid:
        risk_score = 0
    elif is_malicious:
        risk_score = min(confidence + 20, 100)
    else:
        risk_score = max(100 - confidence, 0)

    tags = []
    for result in valid:
        for tag in result.details.get("tags", []) or []:
            tags.append(tag)
        for flag in ("phishing", "honeypot", "sanctioned"):
            if result.details.get(flag):
                tags.append(flag)
        if result.risk_type:
            tags.append("-".join(result.risk_type.lower().split()))
    tags = list(dict.fromkeys(tags))

    flagged = [r for r in valid if r.is_malicious]
    if is_malicious:
        risk_types = ", ".join(r.risk_type for r in flagged if r.risk_type) or "Unknown"
        description = (
            f"Address flagged by {len(flagged)} source(s): {', '.join(r.source for r in flagged)}. "
            f"Risk types: {risk_types}."
        )
    elif not valid:
        description = "No threat source responded, reputation unknown."
    else:
        description = "No threats detected from queried sources."

    return ThreatFeedResponse(
        address=address,
        network=network,
        is_malicious=is_malicious,
        confidence=confidence,
        risk_score=risk_score,
        risk_level=risk_level_for(risk_score) if valid else Severity.LOW,
        sources=list(results),
        tags=tags,
        description=description,
        sources_queried=len(results),
        sources_responded=len(valid),
    )


def ttl_for(response: ThreatFeedResponse) -> int:
    if response.is_unknown:
        return TTL_UNKNOWN
    return TTL_MALICIOUS if response.is_malicious else TTL_CLEAN


class ThreatFeedAggregator:

    def __init__(
        self,
        sources: Optional[Iterable[ThreatSource]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[TTLCache] = None,
        source_timeout: Optional[float] = None,
        sleep: Callable = asyncio.sleep,
    ):
        if sources is None:
            sources = [
                GoPlusSource(config.GOPLUS_API_URL, timeout=config.THREAT_FEED_TIMEOUT),
                FortaSource(config.FORTA_API_URL, timeout=config.THREAT_FEED_TIMEOUT),
                LocalDenylistSource(),
            ]
        self.sources: List[ThreatSource] = list(sources)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache or TTLCache()
        self.source_timeout = source_timeout if source_timeout is not None else config.THREAT_FEED_TIMEOUT
        self._sleep = sleep
        self._fill_locks: Dict[str, asyncio.Lock] = {}
        self.source_requests: Dict[str, int] = {source.name: 0 for source in self.sources}

    @property
    def weights(self) -> Dict[str, float]:
        return {source.name: source.weight for source in self.sources}

    @property
    def denylist(self) -> Optional[LocalDenylist]:
        for source in self.sources:
            if isinstance(source, LocalDenylistSource):
                return source.denylist
        return None

    async def _query_source(self, source: ThreatSource, address: str, network: str) -> ThreatSourceResult:
        start = time.perf_counter()
        if not self.rate_limiter.try_acquire(f"threat_feed:{source.name}", source.rate_limit):
            return ThreatSourceResult(source=source.name, error="Rate limited")
        self.source_requests[source.name] = self.source_requests.get(source.name, 0) + 1
        try:
            result = await asyncio.wait_for(source.query(address, network), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[ThreatFeed] {source.name} timed out after {self.source_timeout}s for {address}")
            error = "Timeout"
        except Exception as e:
            logger.warning(f"[ThreatFeed] {source.name} failed for {address}: {e}")
            error = str(e) or type(e).__name__
        else:
            return replace(result, latency_ms=int((time.perf_counter() - start) * 1000))
        return ThreatSourceResult(
            source=source.name,
            latency_ms=int((time.perf_counter() - start) * 1000),
            error=error,
        )

    async def _fill(self, address: str, network: str) -> ThreatFeedResponse:
        results = await asyncio.gather(*(self._query_source(s, address, network) for s in self.sources))
        response = aggregate_results(address, network, list(results), self.weights)
        ttl = ttl_for(response)
        expires = datetime.now(UTC) + timedelta(seconds=ttl)
        response = replace(response, expires_at=expires)
        self.cache.put(cache_key(address, network), response, ttl)
        if response.is_malicious:
            logger.warning(f"[ThreatFeed] {address} flagged by {', '.join(response.flagged_by)}")
        elif response.is_unknown:
            logger.warning(f"[ThreatFeed] no source responded for {address}")
        return response

    async def query(self, address: str, network: str = "mainnet") -> ThreatFeedResponse:
        key = cache_key(address, network)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.as_cache_hit()

        lock = self._fill_locks.setdefault(key, asyncio.Lock())
        async with lock:
            # another caller may have filled while we waited
            cached = self.cache.get(key)
            if cached is not None:
                return cached.as_cache_hit()
            response = await self._fill(address, network)
        if not lock.locked():
            self._fill_locks.pop(key, None)
        return response

    async def query_batch(self, addresses: List[str], network: str = "mainnet") -> Dict[str, ThreatFeedResponse]:
        results = {}
        for i in range(0, len(addresses), BATCH_SIZE):
            chunk = addresses[i:i + BATCH_SIZE]
            responses = await asyncio.gather(*(self.query(address, network) for address in chunk))
            results.update(zip(chunk, responses))
            if i + BATCH_SIZE < len(addresses):
                await self._sleep(BATCH_PAUSE_SECONDS)
        return results

    def find_related(self, address: str) -> List[Dict[str, str]]:
        denylist = self.denylist
        return denylist.find_related(address) if denylist else []

    def stats(self) -> Dict:
        return {
            "cache": self.cache.stats(),
            "sources": [s.name for s in self.sources],
            "requests": dict(self.source_requests),
            "rate_limits": {
                s.name: {
                    "limit": s.rate_limit.max_calls if s.rate_limit else None,
                    "used": self.rate_limiter.current_count(f"threat_feed:{s.name}"),
                }
                for s in self.sources
            },
        }

    def clear_cache(self):
        self.cache.clear()

    async def aclose(self):
        for source in self.sources:
            await source.aclose()


def response_to_finding(response: ThreatFeedResponse, subject: str = "Address") -> Optional[Finding]:
    """malicious response -> rug pull finding, none otherwise"""
    if not response.is_malicious:
        return None
    if response.confidence >= 80:
        confidence = ConfidenceLevel.HIGH
    elif response.confidence >= 50:
        confidence = ConfidenceLevel.MEDIUM
    else:
        confidence = ConfidenceLevel.LOW
    flagged = response.flagged_by
    return Finding(
        pattern_id="threat_feed:malicious_address",
        category=Category.RUG_PULL,
        severity=response.risk_level,
        title=f"Malicious {subject} Detected ({len(flagged)} sources)",
        description=response.description,
        recommendation="Do not interact with this address. Security intelligence services have flagged it.",
        confidence=confidence,
        source=Provenance.PATTERN,
        evidence={
            "address": response.address,
            "risk_score": response.risk_score,
            "sources": [
                {"name": s.source, "flagged": s.is_malicious, "confidence": s.confidence}
                for s in response.sources if s.ok
            ],
            "tags": list(response.tags),
            "queried_at": response.queried_at.isoformat(),
        },
    )
