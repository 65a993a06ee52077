#!/usr/bin/env python3
"""
Escrow Scenario Replayer

Runs a YAML scenario (genesis config, balances, ordered calls and block
advances) through the engine and reports every step's outcome.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from escrow_spec.config import EngineConfig  # noqa: E402
from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.state_transition import advance_blocks, apply_call, genesis_state  # noqa: E402
from escrow_spec.test_accounts import resolve  # noqa: E402
from escrow_spec.types import Call, EngineState, Operation  # noqa: E402
from tools.yaml_dump import write_yaml  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

_IDENTITY_KEYS = ("buyer", "seller", "arbiter", "collector")


def build_genesis(scenario: Dict[str, Any]) -> EngineState:
    cfg = scenario.get("config", {}) or {}
    config = EngineConfig.from_env(
        owner=resolve(cfg.get("owner", "owner")),
        engine=resolve(cfg.get("engine", "engine")),
    )
    if "fee_collector" in cfg:
        config.fee_collector = resolve(cfg["fee_collector"])
    if "protocol_fee_rate" in cfg:
        config.protocol_fee_rate = int(cfg["protocol_fee_rate"])
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    state = genesis_state(config)
    for name, amount in (scenario.get("balances", {}) or {}).items():
        state.ledger.credit(resolve(name), int(amount))
    return state


def build_call(step: Dict[str, Any]) -> Call:
    payload = dict(step.get("payload", {}) or {})
    for key in _IDENTITY_KEYS:
        if isinstance(payload.get(key), str):
            payload[key] = resolve(payload[key])
    return Call(sender=resolve(step["sender"]), op=Operation(step["op"]), payload=payload)


def run_scenario(scenario: Dict[str, Any]) -> Dict[str, Any]:
    """Replay every step; returns a report with per-step results."""
    state = build_genesis(scenario)
    steps: List[Dict[str, Any]] = []
    mismatches = 0

    for index, step in enumerate(scenario.get("steps", []) or []):
        if "advance" in step:
            state = advance_blocks(state, int(step["advance"]))
            steps.append({"step": index, "advance": int(step["advance"])})
            continue

        state, result = apply_call(state, build_call(step))
        outcome = "ok" if result.ok else result.error.code.name
        entry: Dict[str, Any] = {
            "step": index,
            "op": step["op"],
            "sender": step["sender"],
            "outcome": outcome,
        }
        if result.value is not None:
            entry["value"] = result.value

        expected = step.get("expect")
        if expected is not None and expected != outcome:
            entry["expected"] = expected
            mismatches += 1
            logger.error(f"step {index} ({step['op']}): expected {expected}, got {outcome}")
        else:
            logger.info(f"  [{outcome}] step {index} {step['op']} by {step['sender']}")
        steps.append(entry)

    names = set(scenario.get("balances", {}) or {})
    return {
        "steps": steps,
        "mismatches": mismatches,
        "block_height": state.system.block_height,
        "state_digest": compute_state_digest(state),
        "balances": {name: state.ledger.balance_of(resolve(name)) for name in sorted(names)},
        "custody": state.ledger.balance_of(state.system.engine),
    }


@click.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--report",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the report to this path (.yaml/.yml for YAML, JSON otherwise)",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
def main(scenario: Path, report: Optional[Path], verbose: bool) -> None:
    """Replay an escrow SCENARIO file."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    data = yaml.safe_load(scenario.read_text()) or {}
    logger.info(f"Replaying {scenario}")
    result = run_scenario(data)

    if report is not None:
        if report.suffix in (".yaml", ".yml"):
            write_yaml(report, result)
        else:
            report.write_text(json.dumps(result, indent=2))
        logger.info(f"Report written to {report}")

    click.echo(f"{len(result['steps'])} steps, {result['mismatches']} mismatches, digest {result['state_digest']}")
    sys.exit(1 if result["mismatches"] else 0)


if __name__ == "__main__":
    main()
