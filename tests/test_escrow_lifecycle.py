"""Escrow lifecycle specs: creation, funding and two-party completion."""

from __future__ import annotations

from escrow_spec.config import MAX_ESCROW_DURATION, MAX_METADATA_LEN, MIN_ESCROW_AMOUNT, EngineConfig
from escrow_spec.queries import fetch_deposit, fetch_escrow, fetch_role, fetch_stats
from escrow_spec.state_digest import compute_state_digest
from escrow_spec.state_transition import advance_blocks, apply_call, genesis_state
from escrow_spec.test_accounts import ALICE, BOB, CAROL, COLLECTOR, DAVE, ENGINE, OWNER
from escrow_spec.types import (
    Call,
    EngineState,
    EscrowStatus,
    Operation,
    ParticipantRole,
)

AMOUNT = 10_000
PROTOCOL_RATE = 250
ARBITER_RATE = 100


def _base_state() -> EngineState:
    state = genesis_state(
        EngineConfig(owner=OWNER, engine=ENGINE, fee_collector=COLLECTOR, protocol_fee_rate=PROTOCOL_RATE)
    )
    state.ledger.credit(ALICE, 10 * AMOUNT)
    state.ledger.credit(BOB, 10 * AMOUNT)
    state, result = apply_call(
        state, Call(CAROL, Operation.JOIN_ARBITERS, {"name": "Carol", "fee_rate": ARBITER_RATE})
    )
    assert result.ok
    return state


def _new_escrow_call(sender: bytes = ALICE, **overrides) -> Call:
    payload = {"buyer": ALICE, "seller": BOB, "arbiter": CAROL, "amount": AMOUNT}
    payload.update(overrides)
    return Call(sender, Operation.NEW_ESCROW, payload)


def _created_state(**overrides) -> EngineState:
    state, result = apply_call(_base_state(), _new_escrow_call(**overrides))
    assert result.ok and result.value == 1
    return state


def _funded_state(**overrides) -> EngineState:
    state, result = apply_call(_created_state(**overrides), Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}))
    assert result.ok
    return state


# --- new-escrow specs ---


def test_new_escrow_success(state_test_group) -> None:
    state, result = state_test_group(
        "transitions/escrow/new_escrow.json",
        "new_escrow_success",
        _base_state(),
        _new_escrow_call(duration=100, metadata="order #42"),
    )
    assert result.ok
    assert result.value == 1

    escrow = fetch_escrow(state, 1)
    assert escrow.status == EscrowStatus.CREATED
    assert escrow.funded_amount == 0
    assert escrow.creator == ALICE
    assert escrow.expires_at == 100
    assert escrow.metadata == "order #42"
    assert fetch_role(state, 1, ALICE).role == ParticipantRole.BUYER
    assert fetch_role(state, 1, BOB).role == ParticipantRole.SELLER
    assert fetch_role(state, 1, CAROL).role == ParticipantRole.ARBITER
    assert fetch_role(state, 1, DAVE) is None
    assert state.system.next_escrow_id == 2
    assert fetch_stats(state).total_escrows == 1


def test_new_escrow_without_duration_never_expires() -> None:
    state = _created_state()
    assert fetch_escrow(state, 1).expires_at is None


def test_new_escrow_ids_are_monotonic() -> None:
    state = _created_state()
    state, result = apply_call(state, _new_escrow_call(sender=DAVE))
    assert result.ok and result.value == 2
    assert fetch_escrow(state, 2).creator == DAVE


def test_new_escrow_amount_below_minimum(state_test_group) -> None:
    pre = _base_state()
    post, result = state_test_group(
        "transitions/escrow/new_escrow.json",
        "new_escrow_amount_below_minimum",
        pre,
        _new_escrow_call(amount=MIN_ESCROW_AMOUNT - 1),
    )
    assert result.error.code.name == "INVALID_PARAMS"
    assert post is pre


def test_new_escrow_participants_not_distinct(state_test_group) -> None:
    _, result = state_test_group(
        "transitions/escrow/new_escrow.json",
        "new_escrow_buyer_is_seller",
        _base_state(),
        _new_escrow_call(seller=ALICE),
    )
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_engine_as_participant() -> None:
    _, result = apply_call(_base_state(), _new_escrow_call(seller=ENGINE))
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_unknown_arbiter(state_test_group) -> None:
    _, result = state_test_group(
        "transitions/escrow/new_escrow.json",
        "new_escrow_unknown_arbiter",
        _base_state(),
        _new_escrow_call(arbiter=DAVE),
    )
    assert result.error.code.name == "NOT_FOUND"


def test_new_escrow_inactive_arbiter() -> None:
    state, result = apply_call(_base_state(), Call(CAROL, Operation.TOGGLE_STATUS))
    assert result.ok
    _, result = apply_call(state, _new_escrow_call())
    assert result.error.code.name == "NOT_ACTIVE"


def test_new_escrow_zero_duration() -> None:
    _, result = apply_call(_base_state(), _new_escrow_call(duration=0))
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_duration_too_long() -> None:
    _, result = apply_call(_base_state(), _new_escrow_call(duration=MAX_ESCROW_DURATION + 1))
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_duration_must_be_int() -> None:
    _, result = apply_call(_base_state(), _new_escrow_call(duration=True))
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_metadata_at_limit() -> None:
    post, result = apply_call(_base_state(), _new_escrow_call(metadata="m" * MAX_METADATA_LEN))
    assert result.ok
    assert len(fetch_escrow(post, 1).metadata) == MAX_METADATA_LEN


def test_new_escrow_metadata_too_long(state_test_group) -> None:
    _, result = state_test_group(
        "transitions/escrow/new_escrow.json",
        "new_escrow_metadata_too_long",
        _base_state(),
        _new_escrow_call(metadata="m" * (MAX_METADATA_LEN + 1)),
    )
    assert result.error.code.name == "INVALID_PARAMS"


def test_new_escrow_metadata_must_be_str() -> None:
    pre = _base_state()
    for metadata in (42, ["x"], b"bytes"):
        post, result = apply_call(pre, _new_escrow_call(metadata=metadata))
        assert result.error.code.name == "INVALID_PARAMS"
        assert post is pre
    compute_state_digest(pre)


# --- deposit-funds specs ---


def test_deposit_funds_success(state_test_group) -> None:
    pre = _created_state()
    post, result = state_test_group(
        "transitions/escrow/deposit_funds.json",
        "deposit_funds_success",
        pre,
        Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}),
    )
    assert result.ok
    escrow = fetch_escrow(post, 1)
    assert escrow.status == EscrowStatus.FUNDED
    assert escrow.funded_amount == AMOUNT
    assert fetch_deposit(post, 1).depositor == ALICE
    assert post.ledger.balance_of(ALICE) == 9 * AMOUNT
    assert post.ledger.balance_of(ENGINE) == AMOUNT
    assert fetch_stats(post).total_volume == AMOUNT


def test_deposit_funds_by_seller() -> None:
    state, result = apply_call(_created_state(), Call(BOB, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}))
    assert result.ok
    assert fetch_deposit(state, 1).depositor == BOB


def test_deposit_funds_twice(state_test_group) -> None:
    _, result = state_test_group(
        "transitions/escrow/deposit_funds.json",
        "deposit_funds_twice",
        _funded_state(),
        Call(BOB, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}),
    )
    assert result.error.code.name == "ALREADY_EXISTS"


def test_deposit_funds_outsider() -> None:
    state = _created_state()
    state.ledger.credit(DAVE, AMOUNT)
    _, result = apply_call(state, Call(DAVE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}))
    assert result.error.code.name == "ACCESS_DENIED"


def test_deposit_funds_unknown_escrow() -> None:
    _, result = apply_call(_base_state(), Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 7}))
    assert result.error.code.name == "NOT_FOUND"


def test_deposit_funds_escrow_id_must_be_int() -> None:
    pre = _created_state()
    for escrow_id in (True, "1", [1], None):
        post, result = apply_call(pre, Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": escrow_id}))
        assert result.error.code.name == "INVALID_PARAMS"
        assert post is pre
    assert fetch_escrow(pre, 1).status == EscrowStatus.CREATED


def test_deposit_funds_after_expiry() -> None:
    state = advance_blocks(_created_state(duration=10), 11)
    _, result = apply_call(state, Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}))
    assert result.error.code.name == "EXPIRED"


def test_deposit_funds_at_expiry_height() -> None:
    state = advance_blocks(_created_state(duration=10), 10)
    _, result = apply_call(state, Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}))
    assert result.ok


def test_deposit_funds_transfer_failure_leaves_state(state_test_group) -> None:
    pre = _created_state()
    pre.ledger.balances[ALICE] = AMOUNT - 1
    post, result = state_test_group(
        "transitions/escrow/deposit_funds.json",
        "deposit_funds_insufficient_balance",
        pre,
        Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}),
    )
    assert result.error.code.name == "INSUFFICIENT_BALANCE"
    assert post is pre
    assert fetch_escrow(post, 1).status == EscrowStatus.CREATED
    assert fetch_deposit(post, 1) is None
    assert post.ledger.balance_of(ENGINE) == 0


# --- mark-complete specs ---


def test_mark_complete_single_party_stays_funded(state_test_group) -> None:
    post, result = state_test_group(
        "transitions/escrow/mark_complete.json",
        "mark_complete_buyer_only",
        _funded_state(),
        Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}),
    )
    assert result.ok
    escrow = fetch_escrow(post, 1)
    assert escrow.status == EscrowStatus.FUNDED
    assert escrow.buyer_confirmed and not escrow.seller_confirmed
    assert post.ledger.balance_of(ENGINE) == AMOUNT


def _complete(first: bytes, second: bytes) -> EngineState:
    state, result = apply_call(_funded_state(), Call(first, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.ok
    state, result = apply_call(state, Call(second, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.ok
    return state


def test_mark_complete_both_parties_pays_out() -> None:
    state = _complete(ALICE, BOB)
    assert fetch_escrow(state, 1).status == EscrowStatus.COMPLETED

    protocol_fee = AMOUNT * PROTOCOL_RATE // 10_000
    arbiter_fee = AMOUNT * ARBITER_RATE // 10_000
    seller_gain = state.ledger.balance_of(BOB) - 10 * AMOUNT
    assert state.ledger.balance_of(COLLECTOR) == protocol_fee
    assert state.ledger.balance_of(CAROL) == arbiter_fee
    assert seller_gain == AMOUNT - protocol_fee - arbiter_fee
    assert protocol_fee + arbiter_fee + seller_gain == AMOUNT
    assert state.ledger.balance_of(ENGINE) == 0
    assert fetch_stats(state).total_fees_collected == protocol_fee


def test_mark_complete_order_independent() -> None:
    a = _complete(ALICE, BOB)
    b = _complete(BOB, ALICE)
    assert a.ledger.balances == b.ledger.balances
    assert fetch_escrow(b, 1).status == EscrowStatus.COMPLETED


def test_mark_complete_zero_fees_skip_transfers() -> None:
    state = _funded_state()
    state.system.protocol_fee_rate = 0
    state.arbiters[CAROL].fee_rate = 0
    state, _ = apply_call(state, Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    state, result = apply_call(state, Call(BOB, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.ok
    assert COLLECTOR not in state.ledger.balances
    assert CAROL not in state.ledger.balances
    assert state.ledger.balance_of(BOB) == 11 * AMOUNT


def test_mark_complete_repeat_confirmation() -> None:
    state, _ = apply_call(_funded_state(), Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    _, result = apply_call(state, Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.error.code.name == "ALREADY_EXISTS"


def test_mark_complete_unfunded() -> None:
    _, result = apply_call(_created_state(), Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.error.code.name == "INVALID_STATE"


def test_mark_complete_arbiter_denied() -> None:
    _, result = apply_call(_funded_state(), Call(CAROL, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.error.code.name == "ACCESS_DENIED"


def test_mark_complete_after_expiry() -> None:
    state = advance_blocks(_funded_state(duration=5), 6)
    _, result = apply_call(state, Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}))
    assert result.error.code.name == "EXPIRED"


# --- terminal states ---


def test_completed_escrow_rejects_everything() -> None:
    state = _complete(ALICE, BOB)
    calls = [
        Call(ALICE, Operation.DEPOSIT_FUNDS, {"escrow_id": 1}),
        Call(ALICE, Operation.MARK_COMPLETE, {"escrow_id": 1}),
        Call(BOB, Operation.RAISE_DISPUTE, {"escrow_id": 1, "reason": "late delivery of goods"}),
        Call(CAROL, Operation.SETTLE_DISPUTE, {"escrow_id": 1, "buyer_percentage": 5_000}),
        Call(ALICE, Operation.PROCESS_REFUND, {"escrow_id": 1}),
    ]
    for call in calls:
        post, result = apply_call(state, call)
        assert result.error.code.name == "INVALID_STATE", call.op
        assert post is state
