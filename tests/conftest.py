"""Pytest hooks that collect transition fixtures while the specs run."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from escrow_spec.state_digest import compute_state_digest
from escrow_spec.state_transition import TransitionResult, apply_call
from escrow_spec.types import Call, EngineState
from tools.fixtures_io import call_to_json, state_to_json
from tools.yaml_dump import write_yaml

_STATE_CASES: dict[str, list[dict[str, Any]]] = {}
_VECTOR_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )
    parser.addoption(
        "--fixture-format",
        action="store",
        default="json",
        choices=("json", "yaml"),
        help="Serialization format for generated fixtures",
    )


@pytest.fixture
def state_test_group() -> Callable[[str, str, EngineState, Call], tuple[EngineState, TransitionResult]]:
    """Apply a call, record it under a fixture path and hand back the outcome."""

    def _state_test_group(
        rel_path: str, name: str, pre_state: EngineState, call: Call
    ) -> tuple[EngineState, TransitionResult]:
        post_state, result = apply_call(pre_state, call)
        _STATE_CASES.setdefault(rel_path, []).append(
            {
                "name": name,
                "pre_state": state_to_json(pre_state),
                "call": call_to_json(call),
                "expected": {
                    "ok": result.ok,
                    "error": result.error.code.name if result.error else None,
                    "value": result.value,
                    "state_digest": compute_state_digest(post_state),
                    "post_state": state_to_json(post_state),
                },
            }
        )
        return post_state, result

    return _state_test_group


@pytest.fixture
def vector_test_group() -> Callable[[str, dict[str, Any]], None]:
    """Collect pre-built test_vectors under a specific fixture path."""

    def _vector_test_group(rel_path: str, vector: dict[str, Any]) -> None:
        _VECTOR_CASES.setdefault(rel_path, []).append(vector)

    return _vector_test_group


def _write(target: Path, data: dict[str, Any], fmt: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "yaml":
        write_yaml(target.with_suffix(".yaml"), data)
    else:
        target.write_text(json.dumps(data, indent=2))


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    fmt = session.config.getoption("--fixture-format")
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _STATE_CASES.items():
        if cases:
            _write(out / rel_path, {"cases": cases}, fmt)

    for rel_path, vectors in _VECTOR_CASES.items():
        if vectors:
            _write(out / rel_path, {"test_vectors": vectors}, fmt)
