"""Read-only projections over the engine registries.

Queries are public: no caller, no authorization, no mutation. Records are
returned as copies so callers cannot write through to committed state.
"""

from __future__ import annotations

from copy import copy
from dataclasses import dataclass
from typing import Optional

from .types import (
    ArbiterProfile,
    DepositRecord,
    EngineState,
    Escrow,
    HistoryEvent,
    RoleRecord,
)


@dataclass(frozen=True)
class EngineInfo:
    owner: bytes
    engine: bytes
    fee_collector: bytes
    next_escrow_id: int
    block_height: int
    custody_balance: int


@dataclass(frozen=True)
class EngineStats:
    total_escrows: int
    total_volume: int
    total_disputes: int
    total_fees_collected: int
    protocol_fee_rate: int
    paused: bool
    emergency: bool


def fetch_escrow(state: EngineState, escrow_id: int) -> Optional[Escrow]:
    escrow = state.escrows.get(escrow_id)
    return copy(escrow) if escrow is not None else None


def fetch_arbiter(state: EngineState, arbiter: bytes) -> Optional[ArbiterProfile]:
    profile = state.arbiters.get(arbiter)
    return copy(profile) if profile is not None else None


def fetch_deposit(state: EngineState, escrow_id: int) -> Optional[DepositRecord]:
    deposit = state.deposits.get(escrow_id)
    return copy(deposit) if deposit is not None else None


def fetch_role(state: EngineState, escrow_id: int, who: bytes) -> Optional[RoleRecord]:
    role = state.roles.get((escrow_id, who))
    return copy(role) if role is not None else None


def fetch_history(state: EngineState, escrow_id: int, sequence: int) -> Optional[HistoryEvent]:
    event = state.history.get((escrow_id, sequence))
    return copy(event) if event is not None else None


def fetch_history_range(state: EngineState, escrow_id: int) -> list[HistoryEvent]:
    """All events of one escrow in sequence order."""
    count = state.history_counters.get(escrow_id, 0)
    return [copy(state.history[(escrow_id, seq)]) for seq in range(1, count + 1)]


def fetch_counter(state: EngineState, escrow_id: int) -> int:
    """Sequence number of the latest history event (0 when none)."""
    return state.history_counters.get(escrow_id, 0)


def fetch_system_fee(state: EngineState) -> int:
    return state.system.protocol_fee_rate


def fetch_info(state: EngineState) -> EngineInfo:
    system = state.system
    return EngineInfo(
        owner=system.owner,
        engine=system.engine,
        fee_collector=system.fee_collector,
        next_escrow_id=system.next_escrow_id,
        block_height=system.block_height,
        custody_balance=state.ledger.balance_of(system.engine),
    )


def fetch_stats(state: EngineState) -> EngineStats:
    system = state.system
    return EngineStats(
        total_escrows=system.total_escrows,
        total_volume=system.total_volume,
        total_disputes=system.total_disputes,
        total_fees_collected=system.total_fees_collected,
        protocol_fee_rate=system.protocol_fee_rate,
        paused=system.paused,
        emergency=system.emergency,
    )
