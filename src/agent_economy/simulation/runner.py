from __future__ import annotations

import logging
import random
import time
from typing import Any

from agent_economy.agents.personality import Personality
from agent_economy.config.settings import AppSettings
from agent_economy.db.connection import DBClient
from agent_economy.db.memory import InMemoryRepository
from agent_economy.db.repository import EconomyRepository
from agent_economy.engine.anchor import EpochAnchor
from agent_economy.engine.decision_collector import DecisionCollector, DecisionOracle
from agent_economy.engine.scheduler import EpochScheduler
from agent_economy.llm.ollama_adapter import OllamaAdapter
from agent_economy.metrics.engine import MetricsEngine
from agent_economy.utils.errors import EpochNotFoundError, PersistenceError
from agent_economy.utils.types import Agent, AgentStatus, EpochSummary


def default_roster(seed_balance: float) -> list[Agent]:
    return [
        Agent(
            id=p.key,
            name=p.key.replace("_", " ").title(),
            strategy=p.profile.style,
            balance=seed_balance,
        )
        for p in Personality
        if p is not Personality.DEFAULT
    ]


class EconomyRunner:
    """Wires settings, store, oracle and engine together for one process."""

    def __init__(
        self,
        settings: AppSettings,
        in_memory: bool = False,
        oracle: DecisionOracle | None = None,
        repo: Any = None,
    ) -> None:
        self.logger = logging.getLogger("agent_economy.runner")
        self.settings = settings
        self.db: DBClient | None = None
        if repo is not None:
            self.repo = repo
        elif in_memory:
            self.repo = InMemoryRepository(default_roster(settings.economy.seed_balance))
        else:
            self.db = DBClient(settings.db)
            self.db.connect()
            self.repo = EconomyRepository(self.db)
        self.oracle = oracle or OllamaAdapter(settings.ollama)
        self.rng = random.Random(settings.scheduler.seed)
        self.metrics_engine = MetricsEngine(self.repo, settings.economy.seed_balance)
        self.collector = DecisionCollector(settings.engine, settings.economy, self.oracle)
        self.scheduler = EpochScheduler(
            economy=settings.economy,
            store=self.repo,
            collector=self.collector,
            rng=self.rng,
            on_epoch=self._on_epoch,
        )

    # ---- Epochs ----

    def run(self, count: int, delay: float) -> list[EpochSummary]:
        if isinstance(self.oracle, OllamaAdapter):
            self.oracle.health_check()
        self.logger.info("Starting run: epochs=%d delay=%.1fs", count, delay)
        run_start = time.perf_counter()
        summaries = self.scheduler.run_n(count, delay)
        self.logger.info(
            "Run completed: epochs=%d in %.2fs", len(summaries), time.perf_counter() - run_start
        )
        if self.settings.output_dir is not None:
            path = self.metrics_engine.write_epochs_csv(self.settings.output_dir)
            self.logger.info("Epoch table written to %s", path)
        return summaries

    def _on_epoch(self, summary: EpochSummary) -> None:
        for advisory in summary.advisories:
            self.logger.warning(
                "Agent %s is in %s (balance=%.2f)",
                advisory.agent_id,
                advisory.status.value,
                advisory.balance,
            )
        for surge in summary.surges:
            self.logger.info(
                "Agent %s is surging: +%.1f%% (balance=%.2f)",
                surge.agent_id,
                surge.gain_pct,
                surge.balance,
            )
        if self.settings.output_dir is not None:
            path = self.metrics_engine.write_epoch_artifact(self.settings.output_dir, summary)
            self.logger.debug("Epoch artifact written to %s", path)

    # ---- Anchors ----

    def anchor(self, number: int) -> str:
        anchor_hash = EpochAnchor(self.repo).anchor(number)
        self.repo.attach_anchor_hash(number, anchor_hash)
        return anchor_hash

    def anchor_pending(self) -> dict[int, str | None]:
        return self.scheduler.reanchor_pending()

    def verify(self, number: int) -> dict[str, Any]:
        epoch = self.repo.get_epoch(number)
        if epoch is None:
            raise EpochNotFoundError(number)
        recomputed = EpochAnchor(self.repo).anchor(number)
        return {
            "epoch": epoch.number,
            "anchored": epoch.anchored,
            "anchor_hash": epoch.anchor_hash,
            "recomputed_hash": recomputed,
            "matches": epoch.anchor_hash == recomputed if epoch.anchored else None,
            "event": epoch.event_type,
            "total_volume": epoch.total_volume,
            "active_agents": epoch.active_agents,
            "bankruptcies": epoch.bankruptcies,
        }

    # ---- Reports ----

    def stats(self) -> dict[str, Any]:
        stats = self.metrics_engine.economy_stats()
        stats["leaderboard"] = [
            {"rank": e.rank, "id": e.agent_id, "name": e.name, "balance": e.balance, "status": e.status}
            for e in self.scheduler.leaderboard()
        ]
        return stats

    def agent_report(self, agent_id: str) -> dict[str, Any] | None:
        return self.metrics_engine.agent_report(agent_id)

    # ---- Administration ----

    def init_db(self) -> None:
        if self.db is None:
            self.logger.info("In-memory store needs no schema")
            return
        self.db.apply_schema()

    def seed_agents(self) -> int:
        if self.repo.list_agents():
            self.logger.info("Store already has agents; seed skipped")
            return 0
        roster = default_roster(self.settings.economy.seed_balance)
        for agent in roster:
            self.repo.register_agent(agent)
        self.logger.info("Seeded %d agents with balance %.2f", len(roster), self.settings.economy.seed_balance)
        return len(roster)

    def revive(self, agent_id: str, balance: float) -> Agent:
        """Administrative override: bankrupt -> active. Not part of epoch rules."""
        agent = self.repo.get_agent(agent_id)
        if agent is None:
            raise PersistenceError(f"agent {agent_id} not found")
        if agent.status != AgentStatus.BANKRUPT:
            self.logger.info("Agent %s is %s; nothing to revive", agent_id, agent.status.value)
            return agent
        if balance < self.settings.economy.bankruptcy_floor:
            raise ValueError(
                f"revive balance {balance} is below the bankruptcy floor "
                f"{self.settings.economy.bankruptcy_floor}"
            )
        self.repo.set_agent_status(agent_id, AgentStatus.ACTIVE, balance)
        self.logger.warning(
            "ADMIN-OVERRIDE agent=%s bankrupt -> active balance=%.2f", agent_id, balance
        )
        revived = self.repo.get_agent(agent_id)
        assert revived is not None
        return revived

    def close(self) -> None:
        self.collector.close()
        if self.db is not None:
            self.db.close()
