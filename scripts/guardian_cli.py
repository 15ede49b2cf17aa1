#!/usr/bin/env python3
"""analyze a proposed call from the command line

usage:
    python scripts/guardian_cli.py --function 0x1::coin::transfer --arg '"0xbob"' --arg 100
    python scripts/guardian_cli.py --request call.json --output-format json
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from guardian.analyzer import analyze
from guardian.config import config
from guardian.errors import InvalidCallError
from guardian.models import AnalysisResult, CallDescriptor, SimulatedEffects

logger = logging.getLogger(__name__)


def _parse_arg(raw: str) -> Any:
    """json when it parses, the plain string otherwise"""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def load_request(args: argparse.Namespace) -> Dict[str, Any]:
    if args.request:
        data = json.loads(Path(args.request).read_text())
        if not isinstance(data, dict):
            raise InvalidCallError("request file must hold a json object")
        return data
    return {
        "function": args.function,
        "arguments": [_parse_arg(a) for a in args.arg or []],
        "type_arguments": list(args.type_arg or []),
        "network": args.network,
        "sender": args.sender,
        "estimated_value_usd": args.value_usd,
    }


def format_text(result: AnalysisResult) -> str:
    lines = [
        "=" * 70,
        f"GUARDIAN: {result.function} ({result.network})",
        "=" * 70,
        f"Rating: {result.rating.value}   Score: {result.score:.0f}/100",
        f"Share id: {result.share_id}   Analysis id: {result.analysis_id}",
        f"Stages: {' -> '.join(result.stages_completed) or 'none'}   Simulation: {result.simulation_status}",
    ]
    if result.whitelisted:
        lines.append("Whitelisted framework call")
    if result.summary:
        lines += ["", result.summary]
    if result.findings:
        lines += ["", f"Findings ({len(result.findings)}):"]
        for finding in result.findings:
            lines.append(
                f"  [{finding.severity.value}] {finding.title} "
                f"({finding.category.value}, {finding.confidence:.0%}, {finding.source.value})"
            )
            lines.append(f"      {finding.description}")
            if finding.recommendation:
                lines.append(f"      -> {finding.recommendation}")
    if result.warnings:
        lines += ["", "Warnings:"]
        lines.extend(f"  {w}" for w in result.warnings)
    lines += ["", f"Timings (ms): {json.dumps(result.timings_ms)}", "=" * 70]
    return "\n".join(lines)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Guardian - transaction risk analysis for Move calls")

    input_group = parser.add_mutually_exclusive_group()
    input_group.add_argument("--function", type=str, help="address::module::function to analyze")
    input_group.add_argument(
        "--request",
        type=Path,
        help="json file with the call (function, arguments, type_arguments, sender, network) and optional effects"
    )
    parser.add_argument("--arg", action="append", help="call argument, parsed as json when possible (repeatable)")
    parser.add_argument("--type-arg", action="append", help="type argument (repeatable)")
    parser.add_argument("--sender", type=str, help="sender address")
    parser.add_argument("--network", choices=["mainnet", "testnet", "devnet"], default="testnet", help="network")
    parser.add_argument("--value-usd", type=float, help="estimated value moved, in usd")
    parser.add_argument(
        "--agent",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="enable the agentic investigator (default: ENABLE_AGENTIC_ANALYSIS)"
    )
    parser.add_argument("--timeout", type=float, help="analysis time budget in seconds")
    parser.add_argument("--cost-limit", type=float, help="max llm spend per analysis in usd")
    parser.add_argument("--output-format", "-f", choices=["text", "json"], default="text", help="output format")
    parser.add_argument("--show-config", action="store_true", help="print the configuration and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    args = parser.parse_args(argv)
    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")
    if args.cost_limit is not None and args.cost_limit <= 0:
        parser.error("--cost-limit must be positive")
    if not args.show_config and not (args.function or args.request):
        parser.error("one of --function or --request is required")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.show_config:
        print(config.summary())
        return 0

    if args.cost_limit is not None:
        os.environ["GUARDIAN_COST_LIMIT_PER_ANALYSIS"] = str(args.cost_limit)
        config.COST_LIMIT_PER_ANALYSIS = args.cost_limit

    config.validate()

    try:
        data = load_request(args)
        call = CallDescriptor.from_dict(data.get("call", data))
        effects = SimulatedEffects.from_dict(data["effects"]) if isinstance(data.get("effects"), dict) else None
    except (InvalidCallError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    overrides: Dict[str, Any] = {}
    if args.agent is not None:
        overrides["enable_agentic"] = args.agent
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    result = analyze(call, effects, **overrides)

    if args.output_format == "json":
        print(result.to_json())
    else:
        print(format_text(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
