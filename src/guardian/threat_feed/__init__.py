"""address reputation from external feeds and the local denylist"""

from .aggregator import ThreatFeedAggregator, aggregate_results, cache_key, response_to_finding
from .denylist import DenylistAddress, DenylistEntry, LocalDenylist
from .models import ThreatFeedResponse, ThreatSourceResult
from .sources import FortaSource, GoPlusSource, LocalDenylistSource, SourceError, ThreatSource

__all__ = [
    "ThreatFeedAggregator",
    "aggregate_results",
    "cache_key",
    "response_to_finding",
    "DenylistAddress",
    "DenylistEntry",
    "LocalDenylist",
    "ThreatFeedResponse",
    "ThreatSourceResult",
    "FortaSource",
    "GoPlusSource",
    "LocalDenylistSource",
    "SourceError",
    "ThreatSource",
]
