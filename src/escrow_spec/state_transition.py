"""State transition entrypoints for the escrow engine."""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Optional

from .arithmetic import validate_fee_rate
from .config import MAX_SYSTEM_FEE, EngineConfig
from .errors import ErrorCode, EscrowError
from .ops import admin as op_admin
from .ops import arbiter as op_arbiter
from .ops import escrow as op_escrow
from .types import Call, EngineState, Operation, SystemState

logger = logging.getLogger(__name__)


class TransitionResult:
    """Thin wrapper for verify/apply results."""

    def __init__(self, ok: bool, error: Optional[EscrowError] = None, value: Any = None):
        self.ok = ok
        self.error = error
        self.value = value

    @classmethod
    def success(cls, value: Any = None) -> "TransitionResult":
        return cls(True, None, value)

    @classmethod
    def failure(cls, error: EscrowError) -> "TransitionResult":
        return cls(False, error)


def genesis_state(config: EngineConfig) -> EngineState:
    validate_fee_rate(config.protocol_fee_rate, ceiling=MAX_SYSTEM_FEE)
    return EngineState(
        system=SystemState(
            owner=config.owner,
            engine=config.engine,
            fee_collector=config.fee_collector or config.owner,
            protocol_fee_rate=config.protocol_fee_rate,
        )
    )


def _dispatch_verify(state: EngineState, call: Call) -> None:
    op = call.op
    if op in op_escrow.ESCROW_OPS:
        return op_escrow.verify(state, call)
    if op in op_arbiter.ARBITER_OPS:
        return op_arbiter.verify(state, call)
    if op in op_admin.ADMIN_OPS:
        return op_admin.verify(state, call)

    raise EscrowError(ErrorCode.INVALID_OPERATION, f"verify not implemented for {op}")


def _dispatch_apply(state: EngineState, call: Call) -> Any:
    op = call.op
    if op in op_escrow.ESCROW_OPS:
        return op_escrow.apply(state, call)
    if op in op_arbiter.ARBITER_OPS:
        return op_arbiter.apply(state, call)
    if op in op_admin.ADMIN_OPS:
        return op_admin.apply(state, call)

    raise EscrowError(ErrorCode.INVALID_OPERATION, f"apply not implemented for {op}")


def _verify_common(state: EngineState, call: Call) -> None:
    if not isinstance(call.op, Operation):
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unknown operation: {call.op!r}")

    # Admin switches stay reachable so the owner can lift a halt.
    if call.op in op_admin.ADMIN_OPS:
        return
    if state.system.emergency:
        raise EscrowError(ErrorCode.CONTRACT_PAUSED, "emergency mode active")
    if state.system.paused:
        raise EscrowError(ErrorCode.CONTRACT_PAUSED, "contract paused")


def verify_call(state: EngineState, call: Call) -> TransitionResult:
    """Guard checks only; the state is never touched."""
    try:
        _verify_common(state, call)
        _dispatch_verify(state, call)
        return TransitionResult.success()
    except EscrowError as exc:
        return TransitionResult.failure(exc)


def apply_call(state: EngineState, call: Call) -> tuple[EngineState, TransitionResult]:
    """Apply one call atomically.

    On any failure the original state object is returned unchanged; the
    working copy with its partial writes is discarded.
    """
    try:
        _verify_common(state, call)
        _dispatch_verify(state, call)
    except EscrowError as exc:
        logger.info(f"rejected {_op_name(call)} from {call.sender.hex()[:12]}: {exc}")
        return state, TransitionResult.failure(exc)

    working = deepcopy(state)
    try:
        value = _dispatch_apply(working, call)
    except EscrowError as exc:
        logger.info(f"aborted {_op_name(call)} from {call.sender.hex()[:12]}: {exc}")
        return state, TransitionResult.failure(exc)

    logger.debug(f"applied {_op_name(call)} at height {working.system.block_height}")
    return working, TransitionResult.success(value)


def apply_block(state: EngineState, calls: list[Call]) -> tuple[EngineState, TransitionResult]:
    """Apply a block worth of calls in order (block-atomic semantics).

    If any call fails, the entire block is rejected and the state is
    unchanged. On success the logical clock advances by one.
    """
    working = state
    values = []
    for call in calls:
        working, result = apply_call(working, call)
        if not result.ok:
            return state, result
        values.append(result.value)

    if working is state:
        working = deepcopy(state)
    working.system.block_height += 1
    return working, TransitionResult.success(values)


def advance_blocks(state: EngineState, count: int) -> EngineState:
    """Advance the logical clock by `count` empty blocks."""
    if count < 0:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "block count must be non-negative")
    working = deepcopy(state)
    working.system.block_height += count
    return working


def _op_name(call: Call) -> str:
    op = call.op
    return op.value if isinstance(op, Operation) else repr(op)
