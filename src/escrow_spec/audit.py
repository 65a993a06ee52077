"""Per-escrow audit log.

Each escrow owns a gapless sequence of history events starting at 1. Every
event is linked to its predecessor with a BLAKE3 digest so that any edit to a
recorded event breaks the chain.
"""

from __future__ import annotations

from typing import Optional

from blake3 import blake3

from .encoding import Writer
from .errors import ErrorCode, EscrowError
from .types import EngineState, HistoryAction, HistoryEvent

GENESIS_DIGEST = bytes(32)


def event_digest(prev: bytes, escrow_id: int, sequence: int, event: HistoryEvent) -> bytes:
    w = Writer()
    w.write_bytes(prev)
    w.write_u64(escrow_id)
    w.write_u64(sequence)
    w.write_str(event.action.value)
    w.write_bytes(event.actor)
    w.write_u64(event.timestamp)
    w.write_opt_str(event.detail)
    return blake3(w.getvalue()).digest()


def head_digest(state: EngineState, escrow_id: int) -> bytes:
    seq = state.history_counters.get(escrow_id, 0)
    if seq == 0:
        return GENESIS_DIGEST
    return state.history[(escrow_id, seq)].digest


def append_event(
    state: EngineState,
    escrow_id: int,
    action: HistoryAction,
    actor: bytes,
    detail: Optional[str] = None,
) -> int:
    """Record an action and return its sequence number."""
    prev = head_digest(state, escrow_id)
    seq = state.history_counters.get(escrow_id, 0) + 1
    if (escrow_id, seq) in state.history:
        raise EscrowError(ErrorCode.INTERNAL_ERROR, "history sequence collision")

    event = HistoryEvent(
        action=action,
        actor=actor,
        timestamp=state.system.block_height,
        detail=detail,
    )
    event.digest = event_digest(prev, escrow_id, seq, event)
    state.history[(escrow_id, seq)] = event
    state.history_counters[escrow_id] = seq
    return seq


def verify_history(state: EngineState, escrow_id: int) -> None:
    """Recompute the chain for one escrow; raise on the first broken link."""
    prev = GENESIS_DIGEST
    count = state.history_counters.get(escrow_id, 0)
    for seq in range(1, count + 1):
        event = state.history.get((escrow_id, seq))
        if event is None:
            raise EscrowError(ErrorCode.NOT_FOUND, f"history gap at sequence {seq}")
        if event_digest(prev, escrow_id, seq, event) != event.digest:
            raise EscrowError(ErrorCode.INVALID_STATE, f"history digest mismatch at sequence {seq}")
        prev = event.digest
    if (escrow_id, count + 1) in state.history:
        raise EscrowError(ErrorCode.INVALID_STATE, "history beyond recorded counter")
