"""in-process denylist of addresses tied to documented incidents"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

# confidence label -> feed confidence (0 to 100)
CONFIDENCE_SCORES = {"high": 95, "medium": 75, "low": 55}


@dataclass(frozen=True)
class DenylistAddress:
    chain: str
    address: str
    first_seen: Optional[str] = None
    # post-mortems sometimes publish only a prefix
    partial: bool = False

    def matches(self, address: str) -> bool:
        mine, theirs = self.address.lower(), address.lower()
        if self.partial:
            return theirs.startswith(mine)
        return mine == theirs


@dataclass(frozen=True)
class DenylistEntry:
    id: str
    actor_type: str
    actor_name: str
    addresses: Tuple[DenylistAddress, ...]
    incident: str
    loss: str
    references: Tuple[str, ...] = ()
    confidence: str = "high"
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def matches(self, address: str) -> bool:
        return any(a.matches(address) for a in self.addresses)

    @property
    def feed_confidence(self) -> int:
        return CONFIDENCE_SCORES.get(self.confidence, 55)


DEFAULT_ENTRIES: Tuple[DenylistEntry, ...] = (
    DenylistEntry(
        id="thala-exploiter-2024",
        actor_type="exploiter",
        actor_name="Thala Exploiter",
        addresses=(
            DenylistAddress("aptos", "0xfda62e5263fd11e40e7cbce67c780fb07a1cc25aa46ab9d6a3de2d5a3be18c36", "2024-11-15"),
        ),
        incident="Thala Protocol exploit, liquidity pools drained",
        loss="$25,500,000",
        references=("https://twitter.com/ThalaLabs/status/1857141679348121673",),
        tags=("defi", "liquidity-drain", "aptos", "move"),
    ),
    DenylistEntry(
        id="cetus-exploiter-2025",
        actor_type="exploiter",
        actor_name="Cetus Exploiter",
        addresses=(
            DenylistAddress("sui", "0x8e18e8e50d94a6f3e4ebc8c0b3a6e8fdc93b8762f5a3d4c1b0e9f8a7b6c5d4e3", "2025-05-22"),
        ),
        incident="Cetus integer overflow in integer-mate checked_shlw",
        loss="$223,000,000",
        references=("https://x.com/paboricke/status/1925620046653083814",),
        tags=("defi", "integer-overflow", "sui", "move", "amm"),
    ),
    DenylistEntry(
        id="lazarus-group",
        actor_type="sanctioned",
        actor_name="Lazarus Group",
        addresses=(
            DenylistAddress("ethereum", "0x098B716B8Aaf21512996dC57EB0615e2383E2f96", "2022-03-23"),
            DenylistAddress("ethereum", "0xa0e1c89Ef1a489c9C7dE96311eD5Ce5D32c20E4B", "2022-03-28"),
        ),
        incident="Ronin bridge hack, compromised validator keys",
        loss="$625,000,000",
        references=("https://roninblockchain.substack.com/p/community-alert-ronin-validators",),
        tags=("state-actor", "dprk", "sanctioned", "ofac", "bridge-attacks"),
    ),
    DenylistEntry(
        id="tornado-cash",
        actor_type="mixer",
        actor_name="Tornado Cash",
        addresses=(
            DenylistAddress("ethereum", "0x722122dF12D4e14e13Ac3b6895a86e84145b6967", "2019-08-01"),
            DenylistAddress("ethereum", "0xd90e2f925DA726b50C4Ed8D0Fb90Ad053324F31b", "2019-08-01"),
        ),
        incident="OFAC sanctions for laundering",
        loss="N/A",
        references=("https://home.treasury.gov/news/press-releases/jy0916",),
        tags=("mixer", "sanctioned", "ofac", "money-laundering"),
    ),
    DenylistEntry(
        id="wormhole-exploiter",
        actor_type="bridge_attacker",
        actor_name="Wormhole Exploiter",
        addresses=(
            DenylistAddress("ethereum", "0x629e7Da20197a5429d30da36E77d06CdF796b71A", "2022-02-02"),
            DenylistAddress("solana", "CxegPrfn2ge5dNiQberUrQJkHCcimeR4VXkeawcFBBka", "2022-02-02"),
        ),
        incident="Wormhole signature verification bypass",
        loss="$326,000,000",
        references=("https://wormholecrypto.medium.com/wormhole-incident-report-02-02-22",),
        tags=("bridge", "solana", "signature-bypass"),
    ),
    DenylistEntry(
        id="euler-exploiter",
        actor_type="flash_loan_attacker",
        actor_name="Euler Exploiter",
        addresses=(
            DenylistAddress("ethereum", "0xb66cd966670d962C227B3EABA30a872DbFb995db", "2023-03-13"),
        ),
        incident="Euler Finance donation flash loan attack",
        loss="$197,000,000",
        references=("https://www.euler.finance/blog/euler-exploit-post-mortem",),
        tags=("flash-loan", "ethereum"),
    ),
)


class LocalDenylist:

    def __init__(self, entries: Optional[Iterable[DenylistEntry]] = None):
        self.entries: List[DenylistEntry] = list(entries) if entries is not None else list(DEFAULT_ENTRIES)

    def lookup(self, address: str) -> Optional[DenylistEntry]:
        for entry in self.entries:
            if entry.matches(address):
                return entry
        return None

    def add(self, entry: DenylistEntry):
        self.entries.append(entry)

    def find_related(self, address: str) -> List[Dict[str, str]]:
        """other addresses attributed to the same actor"""
        related = []
        for entry in self.entries:
            if not entry.matches(address):
                continue
            for known in entry.addresses:
                if known.matches(address):
                    continue
                related.append({
                    "chain": known.chain,
                    "address": known.address,
                    "actor": entry.actor_name,
                    "relationship": entry.actor_type,
                })
        return related

    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self.entries),
            "addresses": sum(len(e.addresses) for e in self.entries),
        }
