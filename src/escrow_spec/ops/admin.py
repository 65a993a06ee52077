"""Owner-gated administrative switches.

These operations are exempt from the pause guard so the owner can always
recover a halted engine.
"""

from __future__ import annotations

from ..arithmetic import validate_fee_rate, validate_identity
from ..config import MAX_SYSTEM_FEE
from ..errors import ErrorCode, EscrowError
from ..types import Call, EngineState, Operation

ADMIN_OPS = frozenset({
    Operation.TRIGGER_EMERGENCY,
    Operation.CLEAR_EMERGENCY,
    Operation.SET_PAUSED,
    Operation.CLEAR_PAUSED,
    Operation.SET_SYSTEM_FEE,
    Operation.SET_FEE_COLLECTOR,
})


def verify(state: EngineState, call: Call) -> None:
    if call.sender != state.system.owner:
        raise EscrowError(ErrorCode.ACCESS_DENIED, "caller is not the owner")

    p = call.payload
    if not isinstance(p, dict):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "admin payload must be dict")

    op = call.op
    if op == Operation.CLEAR_PAUSED:
        if state.system.emergency:
            raise EscrowError(ErrorCode.INVALID_STATE, "clear emergency mode first")
    elif op == Operation.SET_SYSTEM_FEE:
        validate_fee_rate(p.get("fee_rate"), ceiling=MAX_SYSTEM_FEE)
    elif op == Operation.SET_FEE_COLLECTOR:
        collector = validate_identity("collector", p.get("collector"))
        if collector == state.system.engine:
            raise EscrowError(ErrorCode.INVALID_PARAMS, "engine cannot collect fees")
    elif op not in ADMIN_OPS:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported admin op: {op}")


def apply(state: EngineState, call: Call) -> None:
    system = state.system
    op = call.op
    if op == Operation.TRIGGER_EMERGENCY:
        system.emergency = True
        system.paused = True
    elif op == Operation.CLEAR_EMERGENCY:
        system.emergency = False
        system.paused = False
    elif op == Operation.SET_PAUSED:
        system.paused = True
    elif op == Operation.CLEAR_PAUSED:
        system.paused = False
    elif op == Operation.SET_SYSTEM_FEE:
        system.protocol_fee_rate = call.payload["fee_rate"]
    elif op == Operation.SET_FEE_COLLECTOR:
        system.fee_collector = call.payload["collector"]
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported admin op: {op}")
