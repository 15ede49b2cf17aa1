"""read-only access to deployed move modules and account history"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from guardian.config import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleFunction:
    name: str
    visibility: str = "public"
    is_entry: bool = False
    is_view: bool = False
    generic_type_params: int = 0
    params: Tuple[str, ...] = ()
    returns: Tuple[str, ...] = ()

    @property
    def is_public_entry(self) -> bool:
        return self.visibility == "public" and self.is_entry

    @property
    def takes_signer(self) -> bool:
        return any("signer" in p for p in self.params)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleFunction":
        return cls(
            name=str(data.get("name", "")),
            visibility=str(data.get("visibility", "public")),
            is_entry=bool(data.get("is_entry", False)),
            is_view=bool(data.get("is_view", False)),
            generic_type_params=len(data.get("generic_type_params") or []),
            params=tuple(str(p) for p in data.get("params") or []),
            returns=tuple(str(r) for r in data.get("return") or []),
        )


@dataclass(frozen=True)
class ModuleStruct:
    name: str
    abilities: Tuple[str, ...] = ()
    fields: Tuple[Tuple[str, str], ...] = ()

    def has(self, ability: str) -> bool:
        return ability in self.abilities

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleStruct":
        return cls(
            name=str(data.get("name", "")),
            abilities=tuple(str(a) for a in data.get("abilities") or []),
            fields=tuple((str(f.get("name", "")), str(f.get("type", ""))) for f in data.get("fields") or []),
        )


@dataclass(frozen=True)
class ModuleABI:
    address: str
    name: str
    friends: Tuple[str, ...] = ()
    functions: Tuple[ModuleFunction, ...] = ()
    structs: Tuple[ModuleStruct, ...] = ()

    def function(self, name: str) -> Optional[ModuleFunction]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    @property
    def entry_functions(self) -> List[ModuleFunction]:
        return [fn for fn in self.functions if fn.is_entry]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleABI":
        return cls(
            address=str(data.get("address", "")),
            name=str(data.get("name", "")),
            friends=tuple(str(f) for f in data.get("friends") or []),
            functions=tuple(ModuleFunction.from_dict(f) for f in data.get("exposed_functions") or []),
            structs=tuple(ModuleStruct.from_dict(s) for s in data.get("structs") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "friends": list(self.friends),
            "functions": [
                {
                    "name": fn.name,
                    "visibility": fn.visibility,
                    "is_entry": fn.is_entry,
                    "is_view": fn.is_view,
                    "params": list(fn.params),
                    "return": list(fn.returns),
                }
                for fn in self.functions
            ],
            "structs": [{"name": s.name, "abilities": list(s.abilities)} for s in self.structs],
        }


class ChainClient(ABC):

    @abstractmethod
    async def get_module(self, network: str, address: str, name: str) -> Optional[ModuleABI]:
        """abi of a deployed module, None when it does not exist"""

    @abstractmethod
    async def get_account_transactions(self, network: str, address: str, limit: int = 25) -> List[Dict[str, Any]]:
        """most recent transactions sent by an account"""

    async def aclose(self) -> None:
        return None


class FullnodeClient(ChainClient):
    """fullnode rest api over httpx"""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        urls: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
    ):
        self.urls = dict(urls or config.FULLNODE_URLS)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers={"Accept": "application/json"})

    def base_url(self, network: str) -> str:
        url = self.urls.get(network) or config.fullnode_url(network)
        url = url.rstrip("/")
        return url if url.endswith("/v1") else f"{url}/v1"

    async def get_module(self, network: str, address: str, name: str) -> Optional[ModuleABI]:
        resp = await self._client.get(f"{self.base_url(network)}/accounts/{address}/module/{name}")
        if resp.status_code == 404:
            logger.info(f"[Fullnode] module not found: {address}::{name} on {network}")
            return None
        resp.raise_for_status()
        data = resp.json()
        abi = data.get("abi") if isinstance(data, dict) else None
        if not isinstance(abi, dict):
            return None
        return ModuleABI.from_dict(abi)

    async def get_account_transactions(self, network: str, address: str, limit: int = 25) -> List[Dict[str, Any]]:
        resp = await self._client.get(
            f"{self.base_url(network)}/accounts/{address}/transactions",
            params={"limit": limit},
        )
        if resp.status_code == 404:
            return []
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, list) else []

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class StaticChainClient(ChainClient):
    """in-memory modules and histories, keyed by (address, name) and address"""
    modules: Dict[Tuple[str, str], ModuleABI] = field(default_factory=dict)
    transactions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    async def get_module(self, network: str, address: str, name: str) -> Optional[ModuleABI]:
        return self.modules.get((address, name))

    async def get_account_transactions(self, network: str, address: str, limit: int = 25) -> List[Dict[str, Any]]:
        return list(self.transactions.get(address, []))[:limit]
