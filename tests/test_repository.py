"""
Tests for the in-memory store

Tests cover:
- Atomic epoch commits and per-epoch snapshots
- Read isolation
- Agent status updates
"""

import pytest

from agent_economy.db.memory import InMemoryRepository
from agent_economy.utils.errors import PersistenceError
from agent_economy.utils.types import AgentStatus, EpochRecord


def record(number):
    return EpochRecord(number, 0.0, 2, 0, "a", "normal")


class TestInMemoryRepository:
    """InMemoryRepository"""

    def test_reads_are_copies(self, repo):
        """Mutating a returned agent does not touch the store"""
        agent = repo.get_agent("a")
        agent.balance = 0.0
        assert repo.get_agent("a").balance == 100.0

    def test_commit_is_all_or_nothing(self, repo, make_agent):
        """A bad agent row rejects the whole epoch"""
        good = repo.get_agent("a")
        good.balance = 50.0
        with pytest.raises(PersistenceError):
            repo.commit_epoch(record(1), [good, make_agent("ghost")], [])
        assert repo.last_epoch_number() == 0
        assert repo.get_agent("a").balance == 100.0

    def test_duplicate_epoch_rejected(self, repo):
        """Epoch numbers are unique"""
        repo.commit_epoch(record(1), repo.list_agents(), [])
        with pytest.raises(PersistenceError):
            repo.commit_epoch(record(1), repo.list_agents(), [])

    def test_snapshot_frozen_at_commit(self, repo):
        """Later balance changes do not rewrite an earlier snapshot"""
        repo.commit_epoch(record(1), repo.list_agents(), [])
        changed = repo.get_agent("a")
        changed.balance = 42.0
        repo.commit_epoch(record(2), [changed], [])

        first = {row.agent_id: row.balance for row in repo.snapshot_for_epoch(1)}
        second = {row.agent_id: row.balance for row in repo.snapshot_for_epoch(2)}
        assert first["a"] == 100.0
        assert second["a"] == 42.0
        assert repo.get_epoch(1).created_at is not None

    def test_set_agent_status(self, repo):
        """Status and balance can be set together"""
        repo.set_agent_status("a", AgentStatus.BANKRUPT, 0.3)
        agent = repo.get_agent("a")
        assert agent.status == AgentStatus.BANKRUPT
        assert agent.balance == 0.3
        assert [a.id for a in repo.list_active_agents()] == ["b", "c"]

    def test_set_status_unknown_agent(self, repo):
        """Updating a missing agent fails"""
        with pytest.raises(PersistenceError):
            repo.set_agent_status("nobody", AgentStatus.ACTIVE)

    def test_register_duplicate(self, repo, make_agent):
        """Agent ids are unique"""
        with pytest.raises(PersistenceError):
            repo.register_agent(make_agent("a"))

    def test_unanchored_epochs(self, repo):
        """Epochs without a hash are listed in order"""
        repo.commit_epoch(record(1), [], [])
        repo.commit_epoch(record(2), [], [])
        repo.attach_anchor_hash(1, "f" * 64)
        assert repo.unanchored_epochs() == [2]
        with pytest.raises(PersistenceError):
            repo.attach_anchor_hash(9, "0" * 64)


class TestEmptyStore:
    """Fresh store"""

    def test_defaults(self):
        """No agents, no epochs"""
        store = InMemoryRepository()
        assert store.list_agents() == []
        assert store.last_epoch_number() == 0
        assert store.snapshot_for_epoch(1) == []
