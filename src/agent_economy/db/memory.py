from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable

from agent_economy.utils.errors import PersistenceError
from agent_economy.utils.money import round_money
from agent_economy.utils.types import (
    PERSISTED_STATUSES,
    Agent,
    AgentStatus,
    EpochRecord,
    SnapshotRow,
    Transaction,
)


class InMemoryRepository:
    """Process-local store with the same interface as ``EconomyRepository``.

    Reads hand out copies, and ``commit_epoch`` swaps the new state in only
    after every part of it has been built.
    """

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: dict[str, Agent] = {}
        self._transactions: list[Transaction] = []
        self._epochs: dict[int, EpochRecord] = {}
        self._snapshots: dict[int, list[SnapshotRow]] = {}
        for agent in agents:
            self.register_agent(agent)

    # ---- Agents ----

    def register_agent(self, agent: Agent) -> None:
        if agent.id in self._agents:
            raise PersistenceError(f"agent {agent.id} already registered")
        if agent.balance < 0:
            raise PersistenceError(f"agent {agent.id} cannot start with a negative balance")
        now = datetime.now(timezone.utc)
        self._agents[agent.id] = replace(
            agent,
            created_at=agent.created_at or now,
            updated_at=agent.updated_at or now,
        )

    def get_agent(self, agent_id: str) -> Agent | None:
        agent = self._agents.get(agent_id)
        return replace(agent) if agent else None

    def list_agents(self) -> list[Agent]:
        return [
            replace(a)
            for a in sorted(self._agents.values(), key=lambda a: (-a.balance, a.id))
        ]

    def list_active_agents(self) -> list[Agent]:
        return [a for a in self.list_agents() if a.is_active]

    def set_agent_status(
        self, agent_id: str, status: AgentStatus, balance: float | None = None
    ) -> None:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise PersistenceError(f"agent {agent_id} not found")
        agent.status = status
        if balance is not None:
            agent.balance = round_money(balance)
        agent.updated_at = datetime.now(timezone.utc)

    # ---- Epoch commit ----

    def last_epoch_number(self) -> int:
        return max(self._epochs, default=0)

    def commit_epoch(
        self,
        record: EpochRecord,
        agents: Iterable[Agent],
        transactions: list[Transaction],
    ) -> EpochRecord:
        if record.number in self._epochs:
            raise PersistenceError(f"epoch {record.number} already recorded")
        created_at = record.created_at or datetime.now(timezone.utc)

        staged = dict(self._agents)
        for agent in agents:
            if agent.id not in staged:
                raise PersistenceError(f"agent {agent.id} not found")
            if agent.balance < 0:
                raise PersistenceError(f"agent {agent.id} would go negative")
            if agent.status not in PERSISTED_STATUSES:
                raise PersistenceError(
                    f"agent {agent.id} has non-storable status {agent.status.value}"
                )
            staged[agent.id] = replace(agent, updated_at=agent.updated_at or created_at)
        stored = replace(record, created_at=created_at)
        snapshot = [
            SnapshotRow(a.id, a.balance, a.status.value)
            for a in sorted(staged.values(), key=lambda a: a.id)
        ]
        committed = [replace(t, created_at=t.created_at or created_at) for t in transactions]

        self._agents = staged
        self._transactions.extend(committed)
        self._epochs[stored.number] = stored
        self._snapshots[stored.number] = snapshot
        record.created_at = created_at
        return record

    # ---- Epochs ----

    def get_epoch(self, number: int) -> EpochRecord | None:
        record = self._epochs.get(number)
        return replace(record) if record else None

    def list_epochs(self) -> list[EpochRecord]:
        return [replace(self._epochs[n]) for n in sorted(self._epochs)]

    def attach_anchor_hash(self, number: int, anchor_hash: str) -> None:
        record = self._epochs.get(number)
        if record is None:
            raise PersistenceError(f"epoch {number} not found")
        record.anchor_hash = anchor_hash

    def unanchored_epochs(self) -> list[int]:
        return [n for n in sorted(self._epochs) if self._epochs[n].anchor_hash is None]

    def snapshot_for_epoch(self, number: int) -> list[SnapshotRow]:
        return list(self._snapshots.get(number, []))

    # ---- Transactions ----

    def transactions_for_epoch(self, number: int) -> list[Transaction]:
        return [t for t in self._transactions if t.epoch == number]

    def transactions_for_agent(self, agent_id: str, limit: int = 100) -> list[Transaction]:
        matching = [
            t for t in self._transactions
            if t.buyer_id == agent_id or t.seller_id == agent_id
        ]
        return list(reversed(matching))[:limit]

    def count_transactions(self) -> int:
        return len(self._transactions)
