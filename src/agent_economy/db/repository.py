from __future__ import annotations

from datetime import datetime
from typing import Iterable

import psycopg2
from psycopg2.extras import execute_batch

from agent_economy.db.connection import DBClient
from agent_economy.utils.errors import PersistenceError
from agent_economy.utils.types import (
    Agent,
    AgentStatus,
    EpochRecord,
    SnapshotRow,
    Transaction,
)

_AGENT_COLUMNS = (
    "id, name, strategy, balance, total_earned, total_spent, status, created_at, updated_at"
)
_TX_COLUMNS = "buyer_id, seller_id, skill_type, amount, fee, epoch, narrative, created_at"
_EPOCH_COLUMNS = (
    "epoch_number, total_volume, active_agents, bankruptcies, top_earner, "
    "event_type, event_description, anchor_hash, created_at"
)


def _agent(row: tuple) -> Agent:
    return Agent(
        id=str(row[0]),
        name=str(row[1]),
        strategy=str(row[2] or ""),
        balance=float(row[3]),
        total_earned=float(row[4]),
        total_spent=float(row[5]),
        status=AgentStatus(row[6]),
        created_at=row[7],
        updated_at=row[8],
    )


def _transaction(row: tuple) -> Transaction:
    return Transaction(
        buyer_id=str(row[0]),
        seller_id=str(row[1]),
        skill_type=str(row[2]),
        amount=float(row[3]),
        fee=float(row[4]),
        epoch=int(row[5]),
        narrative=str(row[6] or ""),
        created_at=row[7],
    )


def _epoch(row: tuple) -> EpochRecord:
    return EpochRecord(
        number=int(row[0]),
        total_volume=float(row[1]),
        active_agents=int(row[2]),
        bankruptcies=int(row[3]),
        top_earner=str(row[4]) if row[4] is not None else None,
        event_type=str(row[5]),
        event_description=str(row[6] or ""),
        anchor_hash=str(row[7]) if row[7] is not None else None,
        created_at=row[8],
    )


class EconomyRepository:
    """PostgreSQL store for agents, transactions, epochs and epoch snapshots."""

    def __init__(self, db: DBClient) -> None:
        self.db = db

    def _fetch(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            with self.db.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()
        except psycopg2.Error as exc:
            raise PersistenceError(f"query failed: {exc.__class__.__name__}") from exc

    def _execute(self, sql: str, params: tuple = ()) -> int:
        try:
            with self.db.cursor() as cur:
                cur.execute(sql, params)
                return cur.rowcount
        except psycopg2.Error as exc:
            raise PersistenceError(f"write failed: {exc.__class__.__name__}") from exc

    # ---- Agents ----

    def register_agent(self, agent: Agent) -> None:
        self._execute(
            """
            INSERT INTO economy_agents (id, name, strategy, balance, total_earned, total_spent, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                agent.id,
                agent.name,
                agent.strategy,
                agent.balance,
                agent.total_earned,
                agent.total_spent,
                agent.status.value,
            ),
        )

    def get_agent(self, agent_id: str) -> Agent | None:
        rows = self._fetch(
            f"SELECT {_AGENT_COLUMNS} FROM economy_agents WHERE id = %s", (agent_id,)
        )
        return _agent(rows[0]) if rows else None

    def list_agents(self) -> list[Agent]:
        rows = self._fetch(
            f"SELECT {_AGENT_COLUMNS} FROM economy_agents ORDER BY balance DESC, id"
        )
        return [_agent(r) for r in rows]

    def list_active_agents(self) -> list[Agent]:
        rows = self._fetch(
            f"""
            SELECT {_AGENT_COLUMNS} FROM economy_agents
            WHERE status = 'active'
            ORDER BY balance DESC, id
            """
        )
        return [_agent(r) for r in rows]

    def set_agent_status(
        self, agent_id: str, status: AgentStatus, balance: float | None = None
    ) -> None:
        count = self._execute(
            """
            UPDATE economy_agents
            SET status = %s, balance = COALESCE(%s, balance), updated_at = now()
            WHERE id = %s
            """,
            (status.value, balance, agent_id),
        )
        if count == 0:
            raise PersistenceError(f"agent {agent_id} not found")

    # ---- Epoch commit ----

    def last_epoch_number(self) -> int:
        rows = self._fetch("SELECT COALESCE(MAX(epoch_number), 0) FROM economy_epochs")
        return int(rows[0][0])

    def commit_epoch(
        self,
        record: EpochRecord,
        agents: Iterable[Agent],
        transactions: list[Transaction],
    ) -> EpochRecord:
        """Write every effect of one epoch in a single database transaction."""
        agents = list(agents)
        try:
            with self.db.cursor() as cur:
                execute_batch(
                    cur,
                    """
                    UPDATE economy_agents
                    SET balance = %s, total_earned = %s, total_spent = %s,
                        status = %s, updated_at = COALESCE(%s, now())
                    WHERE id = %s
                    """,
                    [
                        (
                            a.balance,
                            a.total_earned,
                            a.total_spent,
                            a.status.value,
                            a.updated_at or record.created_at,
                            a.id,
                        )
                        for a in agents
                    ],
                )
                execute_batch(
                    cur,
                    f"INSERT INTO economy_transactions ({_TX_COLUMNS}) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s, COALESCE(%s, now()))",
                    [
                        (
                            t.buyer_id,
                            t.seller_id,
                            t.skill_type,
                            t.amount,
                            t.fee,
                            t.epoch,
                            t.narrative,
                            t.created_at or record.created_at,
                        )
                        for t in transactions
                    ],
                )
                cur.execute(
                    f"""
                    INSERT INTO economy_epochs ({_EPOCH_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, now()))
                    RETURNING created_at
                    """,
                    (
                        record.number,
                        record.total_volume,
                        record.active_agents,
                        record.bankruptcies,
                        record.top_earner,
                        record.event_type,
                        record.event_description,
                        record.anchor_hash,
                        record.created_at,
                    ),
                )
                created_at: datetime = cur.fetchone()[0]
                cur.execute(
                    """
                    INSERT INTO economy_epoch_snapshots (epoch_number, agent_id, balance, status)
                    SELECT %s, id, balance, status FROM economy_agents
                    """,
                    (record.number,),
                )
        except psycopg2.Error as exc:
            raise PersistenceError(
                f"epoch {record.number} not recorded: {exc.__class__.__name__}"
            ) from exc
        record.created_at = created_at
        return record

    # ---- Epochs ----

    def get_epoch(self, number: int) -> EpochRecord | None:
        rows = self._fetch(
            f"SELECT {_EPOCH_COLUMNS} FROM economy_epochs WHERE epoch_number = %s",
            (number,),
        )
        return _epoch(rows[0]) if rows else None

    def list_epochs(self) -> list[EpochRecord]:
        rows = self._fetch(
            f"SELECT {_EPOCH_COLUMNS} FROM economy_epochs ORDER BY epoch_number"
        )
        return [_epoch(r) for r in rows]

    def attach_anchor_hash(self, number: int, anchor_hash: str) -> None:
        count = self._execute(
            "UPDATE economy_epochs SET anchor_hash = %s WHERE epoch_number = %s",
            (anchor_hash, number),
        )
        if count == 0:
            raise PersistenceError(f"epoch {number} not found")

    def unanchored_epochs(self) -> list[int]:
        rows = self._fetch(
            """
            SELECT epoch_number FROM economy_epochs
            WHERE anchor_hash IS NULL
            ORDER BY epoch_number
            """
        )
        return [int(r[0]) for r in rows]

    def snapshot_for_epoch(self, number: int) -> list[SnapshotRow]:
        rows = self._fetch(
            """
            SELECT agent_id, balance, status FROM economy_epoch_snapshots
            WHERE epoch_number = %s
            ORDER BY agent_id
            """,
            (number,),
        )
        return [SnapshotRow(str(r[0]), float(r[1]), str(r[2])) for r in rows]

    # ---- Transactions ----

    def transactions_for_epoch(self, number: int) -> list[Transaction]:
        rows = self._fetch(
            f"SELECT {_TX_COLUMNS} FROM economy_transactions WHERE epoch = %s ORDER BY id",
            (number,),
        )
        return [_transaction(r) for r in rows]

    def transactions_for_agent(self, agent_id: str, limit: int = 100) -> list[Transaction]:
        rows = self._fetch(
            f"""
            SELECT {_TX_COLUMNS} FROM economy_transactions
            WHERE buyer_id = %s OR seller_id = %s
            ORDER BY id DESC
            LIMIT %s
            """,
            (agent_id, agent_id, limit),
        )
        return [_transaction(r) for r in rows]

    def count_transactions(self) -> int:
        rows = self._fetch("SELECT COUNT(*) FROM economy_transactions")
        return int(rows[0][0])

