"""Escrow lifecycle operations.

`verify` checks every guard against the committed state; `apply` performs the
transition on the working copy owned by `state_transition.apply_call` and
returns the operation's value (the new escrow id for NEW_ESCROW, else None).
"""

from __future__ import annotations

from typing import Optional

from ..arithmetic import (
    compute_payout,
    compute_settlement,
    expiry_for,
    is_expired,
    next_reputation,
    validate_amount,
    validate_duration,
    validate_identity,
    validate_metadata,
    validate_percentage,
    validate_reason,
)
from ..audit import append_event
from ..config import BUYER_WIN_THRESHOLD
from ..errors import ErrorCode, EscrowError
from ..types import (
    Call,
    DepositRecord,
    EngineState,
    Escrow,
    EscrowStatus,
    HistoryAction,
    Operation,
    ParticipantRole,
    RoleRecord,
)

ESCROW_OPS = frozenset({
    Operation.NEW_ESCROW,
    Operation.DEPOSIT_FUNDS,
    Operation.MARK_COMPLETE,
    Operation.RAISE_DISPUTE,
    Operation.SETTLE_DISPUTE,
    Operation.PROCESS_REFUND,
})


def verify(state: EngineState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "escrow payload must be dict")

    op = call.op
    if op == Operation.NEW_ESCROW:
        _verify_new(state, call, p)
    elif op == Operation.DEPOSIT_FUNDS:
        _verify_deposit(state, call, p)
    elif op == Operation.MARK_COMPLETE:
        _verify_complete(state, call, p)
    elif op == Operation.RAISE_DISPUTE:
        _verify_dispute(state, call, p)
    elif op == Operation.SETTLE_DISPUTE:
        _verify_settle(state, call, p)
    elif op == Operation.PROCESS_REFUND:
        _verify_refund(state, call, p)
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported escrow op: {op}")


def apply(state: EngineState, call: Call) -> Optional[int]:
    p = call.payload
    op = call.op
    if op == Operation.NEW_ESCROW:
        return _apply_new(state, call, p)
    elif op == Operation.DEPOSIT_FUNDS:
        return _apply_deposit(state, call, p)
    elif op == Operation.MARK_COMPLETE:
        return _apply_complete(state, call, p)
    elif op == Operation.RAISE_DISPUTE:
        return _apply_dispute(state, call, p)
    elif op == Operation.SETTLE_DISPUTE:
        return _apply_settle(state, call, p)
    elif op == Operation.PROCESS_REFUND:
        return _apply_refund(state, call, p)
    raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported escrow op: {op}")


# --- shared guards ---


def _get_escrow(state: EngineState, p: dict) -> Escrow:
    eid = p.get("escrow_id")
    if not isinstance(eid, int) or isinstance(eid, bool):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "escrow_id must be an integer")
    escrow = state.escrows.get(eid)
    if escrow is None:
        raise EscrowError(ErrorCode.NOT_FOUND, "escrow not found")
    if escrow.status.is_terminal:
        raise EscrowError(ErrorCode.INVALID_STATE, f"escrow is {escrow.status.value}")
    return escrow


def _require_status(escrow: Escrow, status: EscrowStatus) -> None:
    if escrow.status != status:
        raise EscrowError(
            ErrorCode.INVALID_STATE,
            f"escrow is {escrow.status.value}, expected {status.value}",
        )


def _require_party(escrow: Escrow, who: bytes) -> None:
    if who not in (escrow.buyer, escrow.seller):
        raise EscrowError(ErrorCode.ACCESS_DENIED, "caller is not buyer or seller")


def _require_live(state: EngineState, escrow: Escrow) -> None:
    if is_expired(escrow.expires_at, state.system.block_height):
        raise EscrowError(ErrorCode.EXPIRED, "escrow expired")


# --- custody ---


def _collect(state: EngineState, amount: int, sender: bytes) -> None:
    if not state.ledger.transfer(amount, sender, state.system.engine):
        raise EscrowError(ErrorCode.INSUFFICIENT_BALANCE, "deposit transfer failed")


def _pay(state: EngineState, amount: int, recipient: bytes) -> None:
    """Debit custody. Zero amounts are skipped."""
    if amount == 0:
        return
    if not state.ledger.transfer(amount, state.system.engine, recipient):
        raise EscrowError(ErrorCode.INSUFFICIENT_BALANCE, "payout transfer failed")


def _arbiter_rate(state: EngineState, escrow: Escrow) -> int:
    profile = state.arbiters.get(escrow.arbiter)
    if profile is None:
        raise EscrowError(ErrorCode.NOT_FOUND, "arbiter profile not found")
    return profile.fee_rate


def _distribute(state: EngineState, escrow: Escrow, actor: bytes, action: HistoryAction) -> None:
    payout = compute_payout(
        escrow.funded_amount, state.system.protocol_fee_rate, _arbiter_rate(state, escrow)
    )
    _pay(state, payout.protocol_fee, state.system.fee_collector)
    _pay(state, payout.arbiter_fee, escrow.arbiter)
    _pay(state, payout.remainder, escrow.seller)
    state.system.total_fees_collected += payout.protocol_fee
    append_event(state, escrow.id, action, actor)


# --- NEW_ESCROW ---


def _verify_new(state: EngineState, call: Call, p: dict) -> None:
    validate_amount(p.get("amount"))

    buyer = validate_identity("buyer", p.get("buyer"))
    seller = validate_identity("seller", p.get("seller"))
    arbiter = validate_identity("arbiter", p.get("arbiter"))
    if len({buyer, seller, arbiter}) != 3:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "buyer, seller and arbiter must be distinct")
    if state.system.engine in (buyer, seller, arbiter):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "engine cannot be a participant")

    profile = state.arbiters.get(arbiter)
    if profile is None:
        raise EscrowError(ErrorCode.NOT_FOUND, "arbiter not registered")
    if not profile.active:
        raise EscrowError(ErrorCode.NOT_ACTIVE, "arbiter not active")

    validate_duration(p.get("duration"))
    validate_metadata(p.get("metadata"))


def _apply_new(state: EngineState, call: Call, p: dict) -> int:
    system = state.system
    now = system.block_height
    eid = system.next_escrow_id

    escrow = Escrow(
        id=eid,
        creator=call.sender,
        buyer=p["buyer"],
        seller=p["seller"],
        arbiter=p["arbiter"],
        amount=p["amount"],
        created_at=now,
        expires_at=expiry_for(now, p.get("duration")),
        last_activity=now,
        metadata=p.get("metadata"),
    )
    state.escrows[eid] = escrow
    state.roles[(eid, escrow.buyer)] = RoleRecord(ParticipantRole.BUYER, joined_at=now)
    state.roles[(eid, escrow.seller)] = RoleRecord(ParticipantRole.SELLER, joined_at=now)
    state.roles[(eid, escrow.arbiter)] = RoleRecord(ParticipantRole.ARBITER, joined_at=now)

    append_event(state, eid, HistoryAction.CREATED, call.sender)
    system.next_escrow_id += 1
    system.total_escrows += 1
    return eid


# --- DEPOSIT_FUNDS ---


def _verify_deposit(state: EngineState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    if escrow.id in state.deposits:
        raise EscrowError(ErrorCode.ALREADY_EXISTS, "escrow already funded")
    _require_status(escrow, EscrowStatus.CREATED)
    _require_live(state, escrow)
    _require_party(escrow, call.sender)


def _apply_deposit(state: EngineState, call: Call, p: dict) -> None:
    escrow = state.escrows[p["escrow_id"]]
    now = state.system.block_height

    _collect(state, escrow.amount, call.sender)

    state.deposits[escrow.id] = DepositRecord(
        depositor=call.sender, amount=escrow.amount, deposited_at=now
    )
    escrow.status = EscrowStatus.FUNDED
    escrow.funded_amount = escrow.amount
    escrow.last_activity = now
    append_event(state, escrow.id, HistoryAction.FUNDED, call.sender)
    state.system.total_volume += escrow.amount
    return None


# --- MARK_COMPLETE ---


def _verify_complete(state: EngineState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    _require_status(escrow, EscrowStatus.FUNDED)
    _require_party(escrow, call.sender)
    _require_live(state, escrow)

    confirmed = escrow.buyer_confirmed if call.sender == escrow.buyer else escrow.seller_confirmed
    if confirmed:
        raise EscrowError(ErrorCode.ALREADY_EXISTS, "caller already confirmed")


def _apply_complete(state: EngineState, call: Call, p: dict) -> None:
    escrow = state.escrows[p["escrow_id"]]
    if call.sender == escrow.buyer:
        escrow.buyer_confirmed = True
    else:
        escrow.seller_confirmed = True
    escrow.last_activity = state.system.block_height
    append_event(state, escrow.id, HistoryAction.CONFIRMED, call.sender)

    if escrow.buyer_confirmed and escrow.seller_confirmed:
        escrow.status = EscrowStatus.COMPLETED
        _distribute(state, escrow, call.sender, HistoryAction.COMPLETED)
    return None


# --- RAISE_DISPUTE ---


def _verify_dispute(state: EngineState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    _require_status(escrow, EscrowStatus.FUNDED)
    _require_party(escrow, call.sender)
    _require_live(state, escrow)
    validate_reason(p.get("reason"))


def _apply_dispute(state: EngineState, call: Call, p: dict) -> None:
    escrow = state.escrows[p["escrow_id"]]
    escrow.status = EscrowStatus.DISPUTED
    escrow.dispute_reason = p["reason"]
    escrow.last_activity = state.system.block_height
    append_event(state, escrow.id, HistoryAction.DISPUTED, call.sender, detail=p["reason"])
    state.system.total_disputes += 1
    return None


# --- SETTLE_DISPUTE ---


def _verify_settle(state: EngineState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    if call.sender != escrow.arbiter:
        raise EscrowError(ErrorCode.ACCESS_DENIED, "caller is not the escrow arbiter")
    _require_status(escrow, EscrowStatus.DISPUTED)
    validate_percentage(p.get("buyer_percentage"))


def _apply_settle(state: EngineState, call: Call, p: dict) -> None:
    escrow = state.escrows[p["escrow_id"]]
    pct = p["buyer_percentage"]
    now = state.system.block_height

    split = compute_settlement(
        escrow.funded_amount,
        state.system.protocol_fee_rate,
        _arbiter_rate(state, escrow),
        pct,
    )
    _pay(state, split.protocol_fee, state.system.fee_collector)
    _pay(state, split.arbiter_fee, escrow.arbiter)
    _pay(state, split.buyer_share, escrow.buyer)
    _pay(state, split.seller_share, escrow.seller)
    state.system.total_fees_collected += split.protocol_fee

    escrow.status = EscrowStatus.RESOLVED
    escrow.last_activity = now

    profile = state.arbiters[escrow.arbiter]
    profile.disputes_resolved += 1
    # The exact midpoint counts as a seller win.
    if pct > BUYER_WIN_THRESHOLD:
        profile.buyer_wins += 1
    else:
        profile.seller_wins += 1
    profile.reputation = next_reputation(profile.reputation)
    profile.last_active = now

    append_event(state, escrow.id, HistoryAction.RESOLVED, call.sender, detail=f"buyer_percentage={pct}")
    return None


# --- PROCESS_REFUND ---


def _verify_refund(state: EngineState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    if escrow.status not in (EscrowStatus.CREATED, EscrowStatus.FUNDED):
        raise EscrowError(ErrorCode.INVALID_STATE, f"escrow is {escrow.status.value}")

    if is_expired(escrow.expires_at, state.system.block_height):
        return
    if escrow.status != EscrowStatus.CREATED:
        raise EscrowError(ErrorCode.INVALID_STATE, "funded escrow refundable only after expiry")
    if call.sender != escrow.creator:
        raise EscrowError(ErrorCode.ACCESS_DENIED, "only the creator can cancel an unfunded escrow")


def _apply_refund(state: EngineState, call: Call, p: dict) -> None:
    escrow = state.escrows[p["escrow_id"]]
    deposit = state.deposits.get(escrow.id)
    if deposit is not None:
        _pay(state, deposit.amount, deposit.depositor)

    escrow.status = EscrowStatus.REFUNDED
    escrow.last_activity = state.system.block_height
    append_event(state, escrow.id, HistoryAction.REFUNDED, call.sender)
    return None
