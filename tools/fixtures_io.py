"""Helpers to serialize/deserialize fixtures for the escrow engine."""

from __future__ import annotations

from typing import Any, Optional

from escrow_spec.ledger import BalanceLedger
from escrow_spec.types import (
    ArbiterProfile,
    Call,
    DepositRecord,
    EngineState,
    Escrow,
    EscrowStatus,
    HistoryAction,
    HistoryEvent,
    Operation,
    ParticipantRole,
    RoleRecord,
    SystemState,
)

# Payload keys holding 32-byte identities.
_IDENTITY_KEYS = frozenset({"buyer", "seller", "arbiter", "collector"})


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def _opt_hex(v: Optional[bytes]) -> Optional[str]:
    return _bytes_to_hex(v) if v is not None else None


def state_to_json(state: EngineState) -> dict[str, Any]:
    s = state.system
    return {
        "system": {
            "owner": _bytes_to_hex(s.owner),
            "engine": _bytes_to_hex(s.engine),
            "fee_collector": _bytes_to_hex(s.fee_collector),
            "protocol_fee_rate": s.protocol_fee_rate,
            "paused": s.paused,
            "emergency": s.emergency,
            "next_escrow_id": s.next_escrow_id,
            "total_escrows": s.total_escrows,
            "total_volume": s.total_volume,
            "total_disputes": s.total_disputes,
            "total_fees_collected": s.total_fees_collected,
            "block_height": s.block_height,
        },
        "balances": [
            {"address": _bytes_to_hex(who), "balance": bal}
            for who, bal in sorted(state.ledger.balances.items())
        ],
        "escrows": [
            {
                "id": e.id,
                "creator": _bytes_to_hex(e.creator),
                "buyer": _bytes_to_hex(e.buyer),
                "seller": _bytes_to_hex(e.seller),
                "arbiter": _bytes_to_hex(e.arbiter),
                "amount": e.amount,
                "status": e.status.value,
                "created_at": e.created_at,
                "expires_at": e.expires_at,
                "buyer_confirmed": e.buyer_confirmed,
                "seller_confirmed": e.seller_confirmed,
                "funded_amount": e.funded_amount,
                "dispute_reason": e.dispute_reason,
                "last_activity": e.last_activity,
                "metadata": e.metadata,
            }
            for _, e in sorted(state.escrows.items())
        ],
        "deposits": [
            {
                "escrow_id": eid,
                "depositor": _bytes_to_hex(d.depositor),
                "amount": d.amount,
                "deposited_at": d.deposited_at,
            }
            for eid, d in sorted(state.deposits.items())
        ],
        "arbiters": [
            {
                "address": _bytes_to_hex(who),
                "name": a.name,
                "fee_rate": a.fee_rate,
                "disputes_resolved": a.disputes_resolved,
                "buyer_wins": a.buyer_wins,
                "seller_wins": a.seller_wins,
                "active": a.active,
                "registered_at": a.registered_at,
                "last_active": a.last_active,
                "reputation": a.reputation,
            }
            for who, a in sorted(state.arbiters.items())
        ],
        "roles": [
            {
                "escrow_id": eid,
                "address": _bytes_to_hex(who),
                "role": r.role.value,
                "joined_at": r.joined_at,
            }
            for (eid, who), r in sorted(state.roles.items())
        ],
        "history": [
            {
                "escrow_id": eid,
                "sequence": seq,
                "action": h.action.value,
                "actor": _bytes_to_hex(h.actor),
                "timestamp": h.timestamp,
                "detail": h.detail,
                "digest": _bytes_to_hex(h.digest),
            }
            for (eid, seq), h in sorted(state.history.items())
        ],
    }


def state_from_json(data: dict[str, Any]) -> EngineState:
    s = data["system"]
    state = EngineState(
        system=SystemState(
            owner=_hex_to_bytes(s["owner"]),
            engine=_hex_to_bytes(s["engine"]),
            fee_collector=_hex_to_bytes(s["fee_collector"]),
            protocol_fee_rate=s.get("protocol_fee_rate", 0),
            paused=s.get("paused", False),
            emergency=s.get("emergency", False),
            next_escrow_id=s.get("next_escrow_id", 1),
            total_escrows=s.get("total_escrows", 0),
            total_volume=s.get("total_volume", 0),
            total_disputes=s.get("total_disputes", 0),
            total_fees_collected=s.get("total_fees_collected", 0),
            block_height=s.get("block_height", 0),
        ),
        ledger=BalanceLedger(
            balances={_hex_to_bytes(b["address"]): b["balance"] for b in data.get("balances", [])}
        ),
    )

    for e in data.get("escrows", []):
        state.escrows[e["id"]] = Escrow(
            id=e["id"],
            creator=_hex_to_bytes(e["creator"]),
            buyer=_hex_to_bytes(e["buyer"]),
            seller=_hex_to_bytes(e["seller"]),
            arbiter=_hex_to_bytes(e["arbiter"]),
            amount=e["amount"],
            status=EscrowStatus(e["status"]),
            created_at=e.get("created_at", 0),
            expires_at=e.get("expires_at"),
            buyer_confirmed=e.get("buyer_confirmed", False),
            seller_confirmed=e.get("seller_confirmed", False),
            funded_amount=e.get("funded_amount", 0),
            dispute_reason=e.get("dispute_reason"),
            last_activity=e.get("last_activity", 0),
            metadata=e.get("metadata"),
        )

    for d in data.get("deposits", []):
        state.deposits[d["escrow_id"]] = DepositRecord(
            depositor=_hex_to_bytes(d["depositor"]),
            amount=d["amount"],
            deposited_at=d.get("deposited_at", 0),
        )

    for a in data.get("arbiters", []):
        state.arbiters[_hex_to_bytes(a["address"])] = ArbiterProfile(
            name=a["name"],
            fee_rate=a["fee_rate"],
            disputes_resolved=a.get("disputes_resolved", 0),
            buyer_wins=a.get("buyer_wins", 0),
            seller_wins=a.get("seller_wins", 0),
            active=a.get("active", True),
            registered_at=a.get("registered_at", 0),
            last_active=a.get("last_active", 0),
            reputation=a.get("reputation", 0),
        )

    for r in data.get("roles", []):
        state.roles[(r["escrow_id"], _hex_to_bytes(r["address"]))] = RoleRecord(
            role=ParticipantRole(r["role"]),
            joined_at=r.get("joined_at", 0),
        )

    for h in data.get("history", []):
        eid, seq = h["escrow_id"], h["sequence"]
        state.history[(eid, seq)] = HistoryEvent(
            action=HistoryAction(h["action"]),
            actor=_hex_to_bytes(h["actor"]),
            timestamp=h["timestamp"],
            detail=h.get("detail"),
            digest=_hex_to_bytes(h["digest"]),
        )
        state.history_counters[eid] = max(state.history_counters.get(eid, 0), seq)

    return state


def _payload_to_json(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        out[k] = _bytes_to_hex(v) if isinstance(v, bytes) else v
    return out


def call_to_json(call: Call) -> dict[str, Any]:
    return {
        "sender": _bytes_to_hex(call.sender),
        "op": call.op.value,
        "payload": _payload_to_json(call.payload),
    }


def call_from_json(data: dict[str, Any]) -> Call:
    payload: dict[str, Any] = {}
    for k, v in data.get("payload", {}).items():
        payload[k] = _hex_to_bytes(v) if k in _IDENTITY_KEYS and isinstance(v, str) else v
    return Call(
        sender=_hex_to_bytes(data["sender"]),
        op=Operation(data["op"]),
        payload=payload,
    )
