"""investigator tools - definitions handed to the model and the executor that runs them."""

import logging
from typing import Any, Callable, Dict, List, Optional

from guardian.analyzers.bytecode import BytecodeAnalyzer, analyze_abi
from guardian.analyzers.chain_client import ChainClient
from guardian.analyzers.overflow import OverflowAnalyzer
from guardian.analyzers.privilege import PrivilegeAnalyzer
from guardian.threat_feed import LocalDenylist, ThreatFeedAggregator

logger = logging.getLogger(__name__)

CONCLUDE_TOOL = "conclude_analysis"

RISK_LEVELS = ["SAFE", "LOW", "MEDIUM", "HIGH", "CRITICAL"]


def _module_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "module_address": {
                "type": "string",
                "description": "Address of the module (e.g. \"0x1\" or a full address)"
            },
            "module_name": {
                "type": "string",
                "description": "Name of the module (e.g. \"coin\", \"aptos_coin\")"
            }
        },
        "required": ["module_address", "module_name"]
    }


def get_agent_tools() -> List[Dict[str, Any]]:
    """tool definitions for the investigator, in anthropic tool format."""
    return [
        {
            "name": "fetch_module_abi",
            "description": """fetch the abi of a move module: exposed functions with visibility and params, structs with abilities. use it to see what a module can do.""",
            "input_schema": _module_schema()
        },
        {
            "name": "analyze_bytecode",
            "description": """analyze a deployed module for dangerous functions, parameterless entry points, capability returns, copy-without-drop structs and friend declarations.""",
            "input_schema": _module_schema()
        },
        {
            "name": "check_address_threats",
            "description": """check an address against the local denylist of known exploiters and the live threat feeds.""",
            "input_schema": {
                "type": "object",
                "properties": {
                    "address": {
                        "type": "string",
                        "description": "The blockchain address to check"
                    }
                },
                "required": ["address"]
            }
        },
        {
            "name": "find_related_addresses",
            "description": """find other addresses attributed to the same actor as this one. useful for tracking attacker wallets reused across exploits.""",
            "input_schema": {
                "type": "object",
                "properties": {
                    "address": {
                        "type": "string",
                        "description": "The address to find relations for"
                    }
                },
                "required": ["address"]
            }
        },
        {
            "name": "analyze_overflow_risk",
            "description": """analyze a module for integer overflow exposure, including the unchecked shift class of bug behind the $223M Cetus hack.""",
            "input_schema": _module_schema()
        },
        {
            "name": "analyze_privilege_escalation",
            "description": """analyze a module for paths where an unprivileged caller could reach admin operations.""",
            "input_schema": _module_schema()
        },
        {
            "name": "get_transaction_history",
            "description": """recent transactions sent by an address, to spot repeated interactions with suspicious contracts.""",
            "input_schema": {
                "type": "object",
                "properties": {
                    "address": {
                        "type": "string",
                        "description": "The address to get history for"
                    },
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": 100,
                        "description": "Maximum number of transactions to retrieve (default 10)"
                    }
                },
                "required": ["address"]
            }
        },
        {
            "name": CONCLUDE_TOOL,
            "description": """call when you have enough information for a final assessment. ends the investigation.""",
            "input_schema": {
                "type": "object",
                "properties": {
                    "summary": {
                        "type": "string",
                        "description": "Summary of the security analysis"
                    },
                    "risk_level": {
                        "type": "string",
                        "enum": RISK_LEVELS,
                        "description": "Overall risk level"
                    },
                    "issues": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "category": {
                                    "type": "string",
                                    "enum": ["EXPLOIT", "RUG_PULL", "EXCESSIVE_COST", "PERMISSION"]
                                },
                                "severity": {
                                    "type": "string",
                                    "enum": ["LOW", "MEDIUM", "HIGH", "CRITICAL"]
                                },
                                "title": {"type": "string"},
                                "description": {"type": "string"},
                                "recommendation": {"type": "string"},
                                "evidence": {"type": "string"}
                            },
                            "required": ["category", "severity", "title", "description"]
                        },
                        "description": "Security issues found"
                    }
                },
                "required": ["summary", "risk_level", "issues"]
            }
        }
    ]


class ToolInputError(ValueError):
    pass


def _required(tool_input: Dict[str, Any], key: str) -> str:
    value = tool_input.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolInputError(f"missing required argument '{key}'")
    return value.strip()


class AgentToolExecutor:
    """runs investigator tool calls against the chain client and threat feeds.

    every tool returns a json-compatible dict. unknown tools and bad input
    come back as {"error": ...} so the model can correct itself.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        threat_feed: Optional[ThreatFeedAggregator] = None,
        denylist: Optional[LocalDenylist] = None,
        network: str = "testnet",
    ):
        self.chain_client = chain_client
        self.threat_feed = threat_feed
        self.denylist = denylist or (threat_feed.denylist if threat_feed else None) or LocalDenylist()
        self.network = network
        self.bytecode = BytecodeAnalyzer(chain_client)
        self.overflow = OverflowAnalyzer(chain_client)
        self.privilege = PrivilegeAnalyzer(chain_client)
        self._handlers: Dict[str, Callable] = {
            "fetch_module_abi": self.fetch_module_abi,
            "analyze_bytecode": self.analyze_bytecode,
            "check_address_threats": self.check_address_threats,
            "find_related_addresses": self.find_related_addresses,
            "analyze_overflow_risk": self.analyze_overflow_risk,
            "analyze_privilege_escalation": self.analyze_privilege_escalation,
            "get_transaction_history": self.get_transaction_history,
            CONCLUDE_TOOL: self.conclude_analysis,
        }

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    def with_network(self, network: str) -> "AgentToolExecutor":
        if network == self.network:
            return self
        return AgentToolExecutor(self.chain_client, self.threat_feed, self.denylist, network)

    async def execute(self, name: str, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"[Agent] model requested unknown tool {name}")
            return {"error": f"Unknown tool: {name}"}
        try:
            return await handler(tool_input or {})
        except ToolInputError as e:
            return {"error": str(e)}

    async def fetch_module_abi(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "module_address")
        module = _required(tool_input, "module_name")
        abi = await self.chain_client.get_module(self.network, address, module)
        if abi is None:
            return {"error": "Module not found or ABI unavailable"}
        return {
            "functions": [
                {"name": fn.name, "visibility": fn.visibility, "is_entry": fn.is_entry, "params": list(fn.params)}
                for fn in abi.functions
            ],
            "structs": [
                {"name": s.name, "abilities": list(s.abilities), "fields": [name for name, _ in s.fields]}
                for s in abi.structs
            ],
            "friends": list(abi.friends),
        }

    async def analyze_bytecode(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "module_address")
        module = _required(tool_input, "module_name")
        abi = await self.bytecode.fetch(self.network, address, module)
        if abi is None:
            return {"error": "Module not found or ABI unavailable"}
        findings = analyze_abi(abi)
        return {
            "functions": len(abi.functions),
            "entry_functions": len(abi.entry_functions),
            "findings": [
                {"severity": f.severity.value, "title": f.title, "pattern_id": f.pattern_id}
                for f in findings
            ],
            "summary": f"Analyzed {len(abi.functions)} functions, {len(findings)} findings",
        }

    async def check_address_threats(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "address")
        entry = self.denylist.lookup(address)
        results: Dict[str, Any] = {
            "local_database": {
                "actor": entry.actor_name,
                "actor_type": entry.actor_type,
                "incident": entry.incident,
                "loss": entry.loss,
                "confidence": entry.confidence,
            } if entry else None,
        }
        if self.threat_feed is None:
            results["live_feeds"] = {"error": "No threat feed configured"}
            return results
        response = await self.threat_feed.query(address, self.network)
        results["live_feeds"] = {
            "is_malicious": response.is_malicious,
            "is_unknown": response.is_unknown,
            "risk_score": response.risk_score,
            "risk_level": response.risk_level.value,
            "flagged_by": response.flagged_by,
            "sources": [s.source for s in response.sources if s.ok],
        }
        return results

    async def find_related_addresses(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "address")
        related = self.denylist.find_related(address)
        return {"found": len(related), "addresses": related[:5]}

    async def analyze_overflow_risk(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "module_address")
        module = _required(tool_input, "module_name")
        report = await self.overflow.analyze(self.network, address, module)
        return {
            "has_overflow_risk": report.has_overflow_risk,
            "risk_level": report.risk_level,
            "risky_functions": [fn["function"] for fn in report.risky_functions],
            "vulnerable_libraries": sorted({u.library for u in report.library_usage}),
        }

    async def analyze_privilege_escalation(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "module_address")
        module = _required(tool_input, "module_name")
        report = await self.privilege.analyze(self.network, address, module)
        return {
            "has_escalation_risk": report.has_escalation,
            "admin_functions": [a.name for a in report.admin_functions],
            "escalation_paths": len(report.escalation_paths),
            "path_kinds": sorted({p.kind for p in report.escalation_paths}),
        }

    async def get_transaction_history(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        address = _required(tool_input, "address")
        try:
            limit = int(tool_input.get("limit") or 10)
        except (TypeError, ValueError):
            limit = 10
        limit = max(1, min(100, limit))
        transactions = await self.chain_client.get_account_transactions(self.network, address, limit)
        return {
            "count": len(transactions),
            "recent": [
                {
                    "type": tx.get("type"),
                    "success": tx.get("success"),
                    "function": (tx.get("payload") or {}).get("function"),
                }
                for tx in transactions[:5]
            ],
        }

    async def conclude_analysis(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        return {"concluded": True, **tool_input}
