"""Core types for the escrow engine.

Every registry the engine owns lives on `EngineState`; operations receive the
state handle explicitly and never reach for module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .ledger import BalanceLedger


class EscrowStatus(Enum):
    CREATED = "created"
    FUNDED = "funded"
    DISPUTED = "disputed"
    COMPLETED = "completed"
    RESOLVED = "resolved"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    EscrowStatus.COMPLETED,
    EscrowStatus.RESOLVED,
    EscrowStatus.REFUNDED,
})


class ParticipantRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ARBITER = "arbiter"


class HistoryAction(Enum):
    CREATED = "created"
    FUNDED = "funded"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    REFUNDED = "refunded"


class Operation(Enum):
    NEW_ESCROW = "new-escrow"
    DEPOSIT_FUNDS = "deposit-funds"
    MARK_COMPLETE = "mark-complete"
    RAISE_DISPUTE = "raise-dispute"
    SETTLE_DISPUTE = "settle-dispute"
    PROCESS_REFUND = "process-refund"
    JOIN_ARBITERS = "join-arbiters"
    UPDATE_PROFILE = "update-profile"
    TOGGLE_STATUS = "toggle-status"
    TRIGGER_EMERGENCY = "trigger-emergency"
    CLEAR_EMERGENCY = "clear-emergency"
    SET_PAUSED = "set-paused"
    CLEAR_PAUSED = "clear-paused"
    SET_SYSTEM_FEE = "set-system-fee"
    SET_FEE_COLLECTOR = "set-fee-collector"


@dataclass
class Call:
    """A single operation submitted by an authenticated principal."""
    sender: bytes
    op: Operation
    payload: dict[str, Any] = field(default_factory=dict)


# --- Registries ---


@dataclass
class Escrow:
    id: int
    creator: bytes
    buyer: bytes
    seller: bytes
    arbiter: bytes
    amount: int
    status: EscrowStatus = EscrowStatus.CREATED
    created_at: int = 0
    expires_at: Optional[int] = None
    buyer_confirmed: bool = False
    seller_confirmed: bool = False
    funded_amount: int = 0
    dispute_reason: Optional[str] = None
    last_activity: int = 0
    metadata: Optional[str] = None


@dataclass
class DepositRecord:
    depositor: bytes
    amount: int
    deposited_at: int = 0


@dataclass
class ArbiterProfile:
    name: str
    fee_rate: int
    disputes_resolved: int = 0
    buyer_wins: int = 0
    seller_wins: int = 0
    active: bool = True
    registered_at: int = 0
    last_active: int = 0
    reputation: int = 0


@dataclass
class RoleRecord:
    role: ParticipantRole
    joined_at: int = 0


@dataclass
class HistoryEvent:
    action: HistoryAction
    actor: bytes
    timestamp: int
    detail: Optional[str] = None
    digest: bytes = b""


@dataclass
class SystemState:
    owner: bytes
    engine: bytes
    fee_collector: bytes
    protocol_fee_rate: int = 0
    paused: bool = False
    emergency: bool = False
    next_escrow_id: int = 1
    total_escrows: int = 0
    total_volume: int = 0
    total_disputes: int = 0
    total_fees_collected: int = 0
    block_height: int = 0


@dataclass
class EngineState:
    system: SystemState
    ledger: BalanceLedger = field(default_factory=BalanceLedger)
    escrows: dict[int, Escrow] = field(default_factory=dict)
    deposits: dict[int, DepositRecord] = field(default_factory=dict)
    arbiters: dict[bytes, ArbiterProfile] = field(default_factory=dict)
    roles: dict[tuple[int, bytes], RoleRecord] = field(default_factory=dict)
    history: dict[tuple[int, int], HistoryEvent] = field(default_factory=dict)
    history_counters: dict[int, int] = field(default_factory=dict)
