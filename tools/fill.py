"""Run the specs and write transition fixtures.

Usage: python tools/fill.py [json|yaml]
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
OUT = ROOT / "fixtures"


def build_command(fmt: str = "json") -> list[str]:
    if fmt not in ("json", "yaml"):
        raise SystemExit(f"unknown fixture format: {fmt}")
    return [
        sys.executable,
        "-m",
        "pytest",
        str(ROOT / "tests"),
        "-q",
        "--output",
        str(OUT),
        "--fixture-format",
        fmt,
    ]


def main(argv: list[str]) -> int:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT / "src"), str(ROOT)])

    cmd = build_command(argv[0] if argv else "json")
    print("Running:", " ".join(cmd))
    return subprocess.call(cmd, env=env, cwd=str(ROOT))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
