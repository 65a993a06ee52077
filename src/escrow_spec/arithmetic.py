"""Fee arithmetic, expiry checks and input validation.

Everything here is pure: no state is mutated and results depend only on the
arguments. Amounts are unsigned integers and every division truncates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import (
    IDENTITY_SIZE,
    MAX_ESCROW_DURATION,
    MAX_FEE_PERCENTAGE,
    MAX_METADATA_LEN,
    MAX_NAME_LEN,
    MAX_REASON_LEN,
    MAX_REPUTATION,
    MIN_ESCROW_AMOUNT,
    MIN_REASON_LEN,
    PRECISION_SCALE,
    REPUTATION_STEP,
)
from .errors import ErrorCode, EscrowError


@dataclass(frozen=True)
class Payout:
    protocol_fee: int
    arbiter_fee: int
    remainder: int


@dataclass(frozen=True)
class SettlementSplit:
    protocol_fee: int
    arbiter_fee: int
    buyer_share: int
    seller_share: int


def fee_for(amount: int, rate: int) -> int:
    """floor(amount * rate / PRECISION_SCALE)."""
    if amount < 0 or rate < 0:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "amount and rate must be non-negative")
    return amount * rate // PRECISION_SCALE


def compute_payout(amount: int, protocol_rate: int, arbiter_rate: int) -> Payout:
    protocol_fee = fee_for(amount, protocol_rate)
    arbiter_fee = fee_for(amount, arbiter_rate)
    if protocol_fee + arbiter_fee > amount:
        raise EscrowError(ErrorCode.INSUFFICIENT_BALANCE, "fees exceed escrow amount")
    return Payout(
        protocol_fee=protocol_fee,
        arbiter_fee=arbiter_fee,
        remainder=amount - protocol_fee - arbiter_fee,
    )


def compute_settlement(
    amount: int, protocol_rate: int, arbiter_rate: int, buyer_percentage: int
) -> SettlementSplit:
    """Split a disputed escrow after fees.

    The seller share absorbs the rounding remainder so the four parts always
    sum to `amount`.
    """
    validate_percentage(buyer_percentage)
    payout = compute_payout(amount, protocol_rate, arbiter_rate)
    buyer_share = payout.remainder * buyer_percentage // PRECISION_SCALE
    return SettlementSplit(
        protocol_fee=payout.protocol_fee,
        arbiter_fee=payout.arbiter_fee,
        buyer_share=buyer_share,
        seller_share=payout.remainder - buyer_share,
    )


def expiry_for(now: int, duration: Optional[int]) -> Optional[int]:
    if duration is None:
        return None
    return now + duration


def is_expired(expires_at: Optional[int], now: int) -> bool:
    """An escrow is usable through its expiry height and expired after it."""
    return expires_at is not None and now > expires_at


def next_reputation(reputation: int) -> int:
    return min(reputation + REPUTATION_STEP, MAX_REPUTATION)


# --- Validation ---


def validate_identity(name: str, value: object) -> bytes:
    if not isinstance(value, bytes) or len(value) != IDENTITY_SIZE:
        raise EscrowError(ErrorCode.INVALID_PARAMS, f"{name} must be {IDENTITY_SIZE} bytes")
    return value


def validate_amount(amount: object) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "amount must be an integer")
    if amount < MIN_ESCROW_AMOUNT:
        raise EscrowError(ErrorCode.INVALID_PARAMS, f"amount below minimum ({MIN_ESCROW_AMOUNT})")
    return amount


def validate_duration(duration: Optional[int]) -> None:
    if duration is None:
        return
    if not isinstance(duration, int) or isinstance(duration, bool):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "duration must be an integer")
    if duration <= 0 or duration > MAX_ESCROW_DURATION:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "duration out of range")


def validate_metadata(metadata: object) -> None:
    if metadata is None:
        return
    if not isinstance(metadata, str):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "metadata must be a string")
    if len(metadata) > MAX_METADATA_LEN:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "metadata too long")


def validate_reason(reason: object) -> str:
    if not isinstance(reason, str) or not MIN_REASON_LEN <= len(reason) <= MAX_REASON_LEN:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "invalid dispute reason length")
    return reason


def validate_arbiter_name(name: object) -> str:
    if not isinstance(name, str) or not name or len(name) > MAX_NAME_LEN:
        raise EscrowError(ErrorCode.INVALID_PARAMS, "invalid arbiter name length")
    return name


def validate_fee_rate(fee_rate: object, ceiling: int = MAX_FEE_PERCENTAGE) -> int:
    if not isinstance(fee_rate, int) or isinstance(fee_rate, bool):
        raise EscrowError(ErrorCode.INVALID_PARAMS, "fee rate must be an integer")
    if fee_rate < 0 or fee_rate > ceiling:
        raise EscrowError(ErrorCode.INVALID_PARAMS, f"fee rate out of range (max {ceiling})")
    return fee_rate


def validate_percentage(percentage: object) -> int:
    if not isinstance(percentage, int) or isinstance(percentage, bool):
        raise EscrowError(ErrorCode.INVALID_PERCENTAGE, "percentage must be an integer")
    if percentage < 0 or percentage > PRECISION_SCALE:
        raise EscrowError(ErrorCode.INVALID_PERCENTAGE, "percentage out of range")
    return percentage
