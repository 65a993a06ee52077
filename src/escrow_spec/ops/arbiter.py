"""Arbiter directory operations."""

from __future__ import annotations

from ..arithmetic import validate_arbiter_name, validate_fee_rate
from ..config import INITIAL_REPUTATION
from ..errors import ErrorCode, EscrowError
from ..types import ArbiterProfile, Call, EngineState, Operation

ARBITER_OPS = frozenset({
    Operation.JOIN_ARBITERS,
    Operation.UPDATE_PROFILE,
    Operation.TOGGLE_STATUS,
})


def verify(state: EngineState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "arbiter payload must be dict")

    op = call.op
    if op == Operation.JOIN_ARBITERS:
        _verify_join(state, call, p)
    elif op == Operation.UPDATE_PROFILE:
        _verify_update(state, call, p)
    elif op == Operation.TOGGLE_STATUS:
        _require_profile(state, call.sender)
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported arbiter op: {op}")


def apply(state: EngineState, call: Call) -> None:
    p = call.payload
    op = call.op
    if op == Operation.JOIN_ARBITERS:
        _apply_join(state, call, p)
    elif op == Operation.UPDATE_PROFILE:
        _apply_update(state, call, p)
    elif op == Operation.TOGGLE_STATUS:
        _apply_toggle(state, call)
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported arbiter op: {op}")


def _require_profile(state: EngineState, who: bytes) -> ArbiterProfile:
    profile = state.arbiters.get(who)
    if profile is None:
        raise EscrowError(ErrorCode.NOT_FOUND, "arbiter not found")
    return profile


# --- JOIN_ARBITERS ---


def _verify_join(state: EngineState, call: Call, p: dict) -> None:
    validate_fee_rate(p.get("fee_rate"))
    validate_arbiter_name(p.get("name"))
    if call.sender in state.arbiters:
        raise EscrowError(ErrorCode.ALREADY_EXISTS, "arbiter already registered")


def _apply_join(state: EngineState, call: Call, p: dict) -> None:
    now = state.system.block_height
    state.arbiters[call.sender] = ArbiterProfile(
        name=p["name"],
        fee_rate=p["fee_rate"],
        registered_at=now,
        last_active=now,
        reputation=INITIAL_REPUTATION,
    )


# --- UPDATE_PROFILE ---


def _verify_update(state: EngineState, call: Call, p: dict) -> None:
    _require_profile(state, call.sender)

    name = p.get("name")
    if name is not None:
        validate_arbiter_name(name)

    fee_rate = p.get("fee_rate")
    if fee_rate is not None:
        validate_fee_rate(fee_rate)


def _apply_update(state: EngineState, call: Call, p: dict) -> None:
    profile = state.arbiters[call.sender]

    name = p.get("name")
    if name is not None:
        profile.name = name

    fee_rate = p.get("fee_rate")
    if fee_rate is not None:
        profile.fee_rate = fee_rate

    profile.last_active = state.system.block_height


# --- TOGGLE_STATUS ---


def _apply_toggle(state: EngineState, call: Call) -> None:
    profile = state.arbiters[call.sender]
    profile.active = not profile.active
    profile.last_active = state.system.block_height
