"""Escrow engine configuration constants.

Fee rates and percentages are fixed point basis points: PRECISION_SCALE
(10000) is 100.00%.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# Units
PRECISION_SCALE = 10_000
U128_MAX = (1 << 128) - 1

# Fees
MAX_FEE_PERCENTAGE = 1_000  # 10.00%, ceiling for any single fee rate
MAX_SYSTEM_FEE = 500  # 5.00%, protocol fee ceiling
DEFAULT_SYSTEM_FEE = 250  # 2.50%

# Escrow limits
MIN_ESCROW_AMOUNT = 1_000
MAX_ESCROW_DURATION = 52_560  # ~1 year of 10 minute blocks
MAX_METADATA_LEN = 256

# Disputes
MIN_REASON_LEN = 10
MAX_REASON_LEN = 500
BUYER_WIN_THRESHOLD = 5_000  # strictly above counts as a buyer win

# Arbiters
MAX_NAME_LEN = 50
MAX_REPUTATION = 10_000
INITIAL_REPUTATION = MAX_REPUTATION // 2
REPUTATION_STEP = 100

# Identities
IDENTITY_SIZE = 32


def _identity_from_env(name: str) -> Optional[bytes]:
    value = os.environ.get(name, "").strip()
    if not value:
        return None
    v = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(v)


@dataclass
class EngineConfig:
    """Genesis configuration for an engine instance."""
    owner: bytes
    engine: bytes
    fee_collector: Optional[bytes] = None
    protocol_fee_rate: int = DEFAULT_SYSTEM_FEE
    verbose: bool = False

    @classmethod
    def from_env(cls, owner: bytes, engine: bytes) -> "EngineConfig":
        """Load configuration from environment variables.

        `owner` and `engine` are the fallbacks used when ESCROW_OWNER or
        ESCROW_ENGINE is unset. Identities are hex encoded.
        """
        config = cls(
            owner=_identity_from_env("ESCROW_OWNER") or owner,
            engine=_identity_from_env("ESCROW_ENGINE") or engine,
        )
        config.fee_collector = _identity_from_env("ESCROW_FEE_COLLECTOR")

        fee = os.environ.get("ESCROW_SYSTEM_FEE", "").strip()
        if fee:
            config.protocol_fee_rate = int(fee)

        config.verbose = os.environ.get("ESCROW_VERBOSE", "").lower() in ("true", "1", "yes")
        return config
