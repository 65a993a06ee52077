"""Canonical engine state digest (v1)."""
from __future__ import annotations

from blake3 import blake3

from .audit import head_digest
from .encoding import Writer
from .types import EngineState, Escrow


def _write_escrow(w: Writer, e: Escrow) -> None:
    w.write_u64(e.id)
    for who in (e.creator, e.buyer, e.seller, e.arbiter):
        w.write_bytes(who)
    w.write_u128(e.amount)
    w.write_str(e.status.value)
    w.write_u64(e.created_at)
    w.write_opt_u64(e.expires_at)
    w.write_bool(e.buyer_confirmed)
    w.write_bool(e.seller_confirmed)
    w.write_u128(e.funded_amount)
    w.write_opt_str(e.dispute_reason)
    w.write_u64(e.last_activity)
    w.write_opt_str(e.metadata)


def compute_state_digest(state: EngineState) -> str:
    """Compute state digest v1.

    Registries are encoded in canonical (sorted key) order and hashed with
    BLAKE3-256. History enters through each escrow's chain head.
    """
    w = Writer()
    s = state.system
    w.write_bytes(s.owner)
    w.write_bytes(s.engine)
    w.write_bytes(s.fee_collector)
    w.write_u64(s.protocol_fee_rate)
    w.write_bool(s.paused)
    w.write_bool(s.emergency)
    for value in (s.next_escrow_id, s.total_escrows, s.block_height):
        w.write_u64(value)
    for value in (s.total_volume, s.total_disputes, s.total_fees_collected):
        w.write_u128(value)

    balances = sorted(state.ledger.balances.items())
    w.write_u64(len(balances))
    for who, balance in balances:
        w.write_bytes(who)
        w.write_u128(balance)

    w.write_u64(len(state.escrows))
    for eid in sorted(state.escrows):
        _write_escrow(w, state.escrows[eid])
        w.write_u64(state.history_counters.get(eid, 0))
        w.write_bytes(head_digest(state, eid))

    w.write_u64(len(state.deposits))
    for eid in sorted(state.deposits):
        d = state.deposits[eid]
        w.write_u64(eid)
        w.write_bytes(d.depositor)
        w.write_u128(d.amount)
        w.write_u64(d.deposited_at)

    w.write_u64(len(state.arbiters))
    for who in sorted(state.arbiters):
        a = state.arbiters[who]
        w.write_bytes(who)
        w.write_str(a.name)
        w.write_u64(a.fee_rate)
        for value in (a.disputes_resolved, a.buyer_wins, a.seller_wins):
            w.write_u64(value)
        w.write_bool(a.active)
        for value in (a.registered_at, a.last_active, a.reputation):
            w.write_u64(value)

    w.write_u64(len(state.roles))
    for eid, who in sorted(state.roles):
        r = state.roles[(eid, who)]
        w.write_u64(eid)
        w.write_bytes(who)
        w.write_str(r.role.value)
        w.write_u64(r.joined_at)

    return blake3(w.getvalue()).hexdigest()
