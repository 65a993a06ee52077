"""Fee arithmetic and validation fixtures."""

from __future__ import annotations

import pytest

from escrow_spec.arithmetic import (
    compute_payout,
    compute_settlement,
    expiry_for,
    fee_for,
    is_expired,
    next_reputation,
    validate_duration,
    validate_identity,
)
from escrow_spec.config import (
    MAX_ESCROW_DURATION,
    MAX_FEE_PERCENTAGE,
    MAX_REPUTATION,
    MAX_SYSTEM_FEE,
    PRECISION_SCALE,
    REPUTATION_STEP,
)
from escrow_spec.errors import ErrorCode, EscrowError


# --- fee specs ---


@pytest.mark.parametrize(
    "amount,protocol_rate,arbiter_rate",
    [
        (10_000, 250, 100),
        (1_000, MAX_SYSTEM_FEE, MAX_FEE_PERCENTAGE),
        (12_345_678, 333, 77),
        (1_001, 1, 1),
        (9_999, 0, 0),
    ],
)
def test_payout_split(vector_test_group, amount: int, protocol_rate: int, arbiter_rate: int) -> None:
    payout = compute_payout(amount, protocol_rate, arbiter_rate)
    assert payout.protocol_fee == amount * protocol_rate // PRECISION_SCALE
    assert payout.arbiter_fee == amount * arbiter_rate // PRECISION_SCALE
    assert payout.protocol_fee + payout.arbiter_fee + payout.remainder == amount
    vector_test_group(
        "arithmetic/payout.json",
        {
            "name": f"payout_{amount}_{protocol_rate}_{arbiter_rate}",
            "input": {"amount": amount, "protocol_rate": protocol_rate, "arbiter_rate": arbiter_rate},
            "expected": {
                "protocol_fee": payout.protocol_fee,
                "arbiter_fee": payout.arbiter_fee,
                "remainder": payout.remainder,
            },
        },
    )


def test_fee_truncates() -> None:
    assert fee_for(1_999, 5) == 0
    assert fee_for(2_000, 5) == 1
    assert fee_for(0, MAX_FEE_PERCENTAGE) == 0


def test_fees_exceeding_amount_fail() -> None:
    with pytest.raises(EscrowError) as exc:
        compute_payout(1_000, 6_000, 5_000)
    assert exc.value.code == ErrorCode.INSUFFICIENT_BALANCE


def test_negative_inputs_rejected() -> None:
    with pytest.raises(EscrowError) as exc:
        fee_for(-1, 10)
    assert exc.value.code == ErrorCode.INVALID_PARAMS


# --- settlement specs ---


@pytest.mark.parametrize("pct", [0, 1, 3_333, 5_000, 9_999, PRECISION_SCALE])
def test_settlement_split_sums(vector_test_group, pct: int) -> None:
    split = compute_settlement(10_007, 250, 100, pct)
    remaining = 10_007 - split.protocol_fee - split.arbiter_fee
    assert split.buyer_share == remaining * pct // PRECISION_SCALE
    assert split.buyer_share + split.seller_share == remaining
    vector_test_group(
        "arithmetic/settlement.json",
        {
            "name": f"settlement_{pct}",
            "input": {"amount": 10_007, "protocol_rate": 250, "arbiter_rate": 100, "buyer_percentage": pct},
            "expected": {
                "buyer_share": split.buyer_share,
                "seller_share": split.seller_share,
            },
        },
    )


def test_settlement_extremes() -> None:
    full_buyer = compute_settlement(10_000, 250, 100, PRECISION_SCALE)
    assert (full_buyer.buyer_share, full_buyer.seller_share) == (9_650, 0)
    full_seller = compute_settlement(10_000, 250, 100, 0)
    assert (full_seller.buyer_share, full_seller.seller_share) == (0, 9_650)


def test_settlement_percentage_out_of_range() -> None:
    with pytest.raises(EscrowError) as exc:
        compute_settlement(10_000, 0, 0, PRECISION_SCALE + 1)
    assert exc.value.code == ErrorCode.INVALID_PERCENTAGE


# --- expiry specs ---


def test_expiry() -> None:
    assert expiry_for(100, None) is None
    assert expiry_for(100, 20) == 120
    assert not is_expired(None, 10**9)
    assert not is_expired(120, 120)
    assert is_expired(120, 121)


def test_duration_bounds() -> None:
    validate_duration(None)
    validate_duration(1)
    validate_duration(MAX_ESCROW_DURATION)
    for bad in (0, -5, MAX_ESCROW_DURATION + 1):
        with pytest.raises(EscrowError):
            validate_duration(bad)


def test_identity_size() -> None:
    assert validate_identity("buyer", bytes(32)) == bytes(32)
    with pytest.raises(EscrowError):
        validate_identity("buyer", bytes(31))
    with pytest.raises(EscrowError):
        validate_identity("buyer", "alice")


def test_reputation_capped() -> None:
    assert next_reputation(0) == REPUTATION_STEP
    assert next_reputation(MAX_REPUTATION - 1) == MAX_REPUTATION
    assert next_reputation(MAX_REPUTATION) == MAX_REPUTATION
