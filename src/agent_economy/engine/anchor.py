from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from agent_economy.utils.errors import AnchorError, EpochNotFoundError
from agent_economy.utils.types import EpochRecord, SnapshotRow, Transaction

logger = logging.getLogger("agent_economy.anchor")


class AnchorSource(Protocol):
    def get_epoch(self, number: int) -> EpochRecord | None: ...

    def transactions_for_epoch(self, number: int) -> list[Transaction]: ...

    def snapshot_for_epoch(self, number: int) -> list[SnapshotRow]: ...


def _timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def canonical_state(
    epoch: EpochRecord,
    transactions: list[Transaction],
    snapshot: list[SnapshotRow],
) -> dict[str, Any]:
    """Build the hashed structure. Key order is part of the format."""
    return {
        "epoch": epoch.number,
        "timestamp": _timestamp(epoch.created_at),
        "event_type": epoch.event_type,
        "transactions": [
            {
                "buyer": t.buyer_id,
                "seller": t.seller_id,
                "amount": float(t.amount),
                "skill": t.skill_type,
            }
            for t in transactions
        ],
        "agents": [
            {"id": row.agent_id, "balance": float(row.balance), "status": row.status}
            for row in sorted(snapshot, key=lambda r: r.agent_id)
        ],
    }


def canonical_bytes(state: dict[str, Any]) -> bytes:
    return json.dumps(state, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def digest(state: dict[str, Any]) -> str:
    return hashlib.sha256(canonical_bytes(state)).hexdigest()


class EpochAnchor:
    """Computes the tamper-evidence digest of a persisted epoch. Read only."""

    def __init__(self, source: AnchorSource) -> None:
        self.source = source

    def anchor(self, number: int) -> str:
        epoch = self.source.get_epoch(number)
        if epoch is None:
            raise EpochNotFoundError(number)
        transactions = self.source.transactions_for_epoch(number)
        snapshot = self.source.snapshot_for_epoch(number)
        if not snapshot:
            raise AnchorError(f"epoch {number} has no agent snapshot")
        hash_hex = digest(canonical_state(epoch, transactions, snapshot))
        logger.info(
            "ANCHOR epoch=%d transactions=%d agents=%d hash=%s",
            number,
            len(transactions),
            len(snapshot),
            hash_hex[:16],
        )
        return hash_hex
