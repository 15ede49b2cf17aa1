"""reputation sources queried by the threat feed aggregator.

each source answers one address and raises on transport or protocol
failure; the aggregator times, rate limits and contains those failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from guardian.rate_limiter import RateLimit
from guardian.threat_feed.denylist import LocalDenylist
from guardian.threat_feed.models import ThreatSourceResult

Json = Dict[str, Any]

SOURCE_WEIGHTS = {
    "goplus": 0.35,
    "forta": 0.25,
    "local_db": 0.20,
}
DEFAULT_WEIGHT = 0.1

GOPLUS_FLAGS = (
    "blacklist_doubt",
    "honeypot_related_address",
    "phishing_activities",
    "stealing_attack",
    "malicious_behavior",
    "sanctioned",
)

FORTA_ALERTS_QUERY = """
query GetAlerts($address: String!) {
  alerts(input: { addresses: [$address], first: 10 }) {
    alerts {
      severity
      name
      description
      alertId
      protocol
    }
  }
}
"""


class SourceError(Exception):
    """a source answered but the answer is unusable"""


class ThreatSource:
    name = "unknown"
    rate_limit: Optional[RateLimit] = None

    @property
    def weight(self) -> float:
        return SOURCE_WEIGHTS.get(self.name, DEFAULT_WEIGHT)

    async def query(self, address: str, network: str) -> ThreatSourceResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class HttpThreatSource(ThreatSource):

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers={"Accept": "application/json"})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class GoPlusSource(HttpThreatSource):
    """address security flags from gopluslabs"""
    name = "goplus"
    rate_limit = RateLimit.per_minute(60)
    chain_id = "aptos"

    async def query(self, address: str, network: str) -> ThreatSourceResult:
        resp = await self._client.get(
            f"{self.base_url}/address_security/{address}",
            params={"chain_id": self.chain_id},
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise SourceError("invalid response")
        result = data.get("result")
        if data.get("code") != 1 or not isinstance(result, dict):
            raise SourceError("invalid response")

        raised = [flag for flag in GOPLUS_FLAGS if str(result.get(flag, "0")) == "1"]
        is_malicious = bool(raised)
        return ThreatSourceResult(
            source=self.name,
            is_malicious=is_malicious,
            confidence=min(50 + len(raised) * 10, 95) if is_malicious else 70,
            risk_type="Multiple security flags" if is_malicious else None,
            details={
                "blacklist": "blacklist_doubt" in raised,
                "honeypot": "honeypot_related_address" in raised,
                "phishing": "phishing_activities" in raised,
                "stealing_attack": "stealing_attack" in raised,
                "malicious": "malicious_behavior" in raised,
                "sanctioned": "sanctioned" in raised,
            },
        )


class FortaSource(HttpThreatSource):
    """recent high severity alerts from the forta graphql api"""
    name = "forta"
    rate_limit = RateLimit.per_minute(30)

    async def query(self, address: str, network: str) -> ThreatSourceResult:
        resp = await self._client.post(
            self.base_url,
            json={"query": FORTA_ALERTS_QUERY, "variables": {"address": address.lower()}},
        )
        resp.raise_for_status()
        data = resp.json()
        alerts = ((data.get("data") or {}).get("alerts") or {}).get("alerts") or []
        serious = [a for a in alerts if a.get("severity") in ("CRITICAL", "HIGH")]
        is_malicious = bool(serious)
        return ThreatSourceResult(
            source=self.name,
            is_malicious=is_malicious,
            confidence=min(60 + len(serious) * 10, 90) if is_malicious else 60,
            risk_type=serious[0].get("name") if serious else None,
            details={
                "alert_count": len(alerts),
                "critical_alert_count": len(serious),
                "alerts": [{"name": a.get("name"), "severity": a.get("severity")} for a in serious[:3]],
            },
        )


class LocalDenylistSource(ThreatSource):
    name = "local_db"
    rate_limit = None

    def __init__(self, denylist: Optional[LocalDenylist] = None):
        self.denylist = denylist or LocalDenylist()

    async def query(self, address: str, network: str) -> ThreatSourceResult:
        entry = self.denylist.lookup(address)
        if entry is None:
            # no record is weak evidence of nothing
            return ThreatSourceResult(source=self.name, is_malicious=False, confidence=50)
        return ThreatSourceResult(
            source=self.name,
            is_malicious=True,
            confidence=entry.feed_confidence,
            risk_type=entry.actor_type,
            details={"actor": entry.actor_name, "incident": entry.incident, "tags": list(entry.tags)},
        )
