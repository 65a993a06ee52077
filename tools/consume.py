"""Consume fixtures and validate them against the Python engine."""

from __future__ import annotations

import json
from pathlib import Path
import sys

import yaml

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.state_transition import apply_call  # noqa: E402
from tools.fixtures_io import call_from_json, state_from_json  # noqa: E402

FIXTURE_SUFFIXES = (".json", ".yaml", ".yml")


def load_fixture(path: Path) -> dict:
    text = path.read_text()
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text) or {}
    return json.loads(text)


def check_state_cases(path: Path) -> list[str]:
    failures: list[str] = []
    data = load_fixture(path)

    for case in data.get("cases", []):
        pre_state = state_from_json(case["pre_state"])
        call = call_from_json(case["call"])
        post_state, result = apply_call(pre_state, call)

        expected = case["expected"]
        if result.ok != expected["ok"]:
            failures.append(f"{case['name']}: ok_mismatch")
            continue

        actual_err = result.error.code.name if result.error else None
        if actual_err != expected["error"]:
            failures.append(f"{case['name']}: error_mismatch")
            continue

        if "value" in expected and result.value != expected["value"]:
            failures.append(f"{case['name']}: value_mismatch")
            continue

        if compute_state_digest(post_state) != expected["state_digest"]:
            failures.append(f"{case['name']}: state_digest_mismatch")

    return failures


def fixture_paths(fixtures: Path) -> list[Path]:
    return sorted(
        p for p in fixtures.glob("transitions/**/*") if p.is_file() and p.suffix in FIXTURE_SUFFIXES
    )


def main() -> None:
    fixtures = ROOT / "fixtures"

    paths = fixture_paths(fixtures)
    if not paths:
        print(f"No transition fixtures under {fixtures}")
        raise SystemExit(1)

    failures: list[str] = []
    for path in paths:
        failures.extend(check_state_cases(path))

    if failures:
        for f in failures:
            print("FAIL", f)
        raise SystemExit(1)

    print(f"All fixtures passed ({len(paths)} files)")


if __name__ == "__main__":
    main()
