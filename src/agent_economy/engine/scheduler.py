"""Epoch scheduler: runs one epoch end to end, or N of them in sequence.

Phases, strictly in order:
  1. read the last persisted epoch number and the active roster
  2. select the market event
  3. collect decisions (the only concurrent phase)
  4. match trades
  5. apply transfers on the ledger
  6. reclassify solvency
  7. commit agents, transactions, epoch record and snapshot atomically
  8. anchor the committed epoch and attach the hash

A store failure in step 7 aborts the epoch with nothing written, so the
next attempt reuses the same epoch number. A failure in step 8 leaves the
epoch recorded but unanchored; ``reanchor_pending`` retries it later.
"""
from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from agent_economy.agents.decision import Decision
from agent_economy.config.settings import EconomySettings
from agent_economy.engine.anchor import EpochAnchor
from agent_economy.engine.ledger import Ledger
from agent_economy.engine.matcher import TradeMatcher, roster_order
from agent_economy.engine.solvency import SolvencyMachine
from agent_economy.market.catalog import MarketEventSelector
from agent_economy.utils.errors import EconomyError, PersistenceError, RosterTooSmallError
from agent_economy.utils.money import round_money
from agent_economy.utils.types import (
    Agent,
    EpochRecord,
    EpochSummary,
    LeaderboardEntry,
    MarketEvent,
    SnapshotRow,
    Surge,
    Transaction,
)

logger = logging.getLogger("agent_economy.scheduler")


class EventSelector(Protocol):
    def select(self) -> MarketEvent: ...


class Collector(Protocol):
    fallback_count: int

    def collect(self, roster: list[Agent], event: MarketEvent) -> dict[str, Decision]: ...


class EpochStore(Protocol):
    def last_epoch_number(self) -> int: ...

    def list_active_agents(self) -> list[Agent]: ...

    def list_agents(self) -> list[Agent]: ...

    def commit_epoch(
        self, record: EpochRecord, agents: Iterable[Agent], transactions: list[Transaction]
    ) -> EpochRecord: ...

    def get_epoch(self, number: int) -> EpochRecord | None: ...

    def transactions_for_epoch(self, number: int) -> list[Transaction]: ...

    def snapshot_for_epoch(self, number: int) -> list[SnapshotRow]: ...

    def attach_anchor_hash(self, number: int, anchor_hash: str) -> None: ...

    def unanchored_epochs(self) -> list[int]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EpochScheduler:
    def __init__(
        self,
        economy: EconomySettings,
        store: EpochStore,
        collector: Collector,
        rng: random.Random,
        event_selector: EventSelector | None = None,
        on_epoch: Callable[[EpochSummary], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.economy = economy
        self.store = store
        self.collector = collector
        self.rng = rng
        self.event_selector = event_selector or MarketEventSelector(rng)
        self.matcher = TradeMatcher(economy, rng)
        self.ledger = Ledger(economy)
        self.solvency = SolvencyMachine(economy)
        self.anchor = EpochAnchor(store)
        self.on_epoch = on_epoch
        self.clock = clock
        self.sleep = sleep

    # ===================================================================
    # One epoch
    # ===================================================================

    def run_epoch(self) -> EpochSummary:
        t0 = time.perf_counter()
        number = self.store.last_epoch_number() + 1
        roster = self.store.list_active_agents()
        logger.info("EPOCH-START epoch=%d active=%d", number, len(roster))
        if len(roster) < 2:
            raise RosterTooSmallError(len(roster))

        def _phase(label: str) -> None:
            logger.info(
                "EPOCH-PHASE epoch=%d step=%s elapsed=%.1fs",
                number, label, time.perf_counter() - t0,
            )

        _phase("event")
        event = self.event_selector.select()

        _phase("decide")
        decisions = self.collector.collect(roster, event)

        _phase("match")
        transfers = self.matcher.match(roster, decisions, event)

        now = self.clock()
        _phase("ledger")
        ledger_result = self.ledger.apply(roster, transfers, epoch=number, now=now)

        _phase("solvency")
        solvency = self.solvency.reclassify(ledger_result.roster, epoch=number, now=now)

        final_roster = roster_order(list(solvency.roster.values()))
        trades = ledger_result.transactions
        record = EpochRecord(
            number=number,
            total_volume=round_money(
                sum(t.amount for t in trades), self.economy.money_decimals
            ),
            active_agents=sum(1 for a in final_roster if a.is_active),
            bankruptcies=len(solvency.bankruptcies),
            top_earner=final_roster[0].id if final_roster else None,
            event_type=event.type,
            event_description=event.description,
            created_at=now,
        )

        _phase("persist")
        try:
            record = self.store.commit_epoch(
                record, final_roster, trades + solvency.tombstones
            )
        except PersistenceError:
            logger.error("EPOCH-ABORT epoch=%d: store failed, nothing recorded", number)
            raise

        _phase("anchor")
        anchor_hash = self._anchor(number)

        summary = EpochSummary(
            epoch=number,
            event=event,
            trade_count=len(trades),
            total_volume=record.total_volume,
            bankruptcies=record.bankruptcies,
            active_agents=record.active_agents,
            top_earner=record.top_earner,
            anchor_hash=anchor_hash,
            advisories=solvency.advisories,
            surges=self.surges(final_roster),
            leaderboard=self.leaderboard(),
            oracle_fallbacks=getattr(self.collector, "fallback_count", 0),
        )
        logger.info(
            "EPOCH-END epoch=%d elapsed=%.1fs trades=%d volume=%.2f bankruptcies=%d "
            "active=%d top=%s anchored=%s",
            number,
            time.perf_counter() - t0,
            summary.trade_count,
            summary.total_volume,
            summary.bankruptcies,
            summary.active_agents,
            summary.top_earner,
            anchor_hash is not None,
        )
        if self.on_epoch is not None:
            self.on_epoch(summary)
        return summary

    def run_n(self, n: int, delay: float) -> list[EpochSummary]:
        """Run ``n`` epochs back to back. Stops at the first failing epoch."""
        summaries: list[EpochSummary] = []
        for i in range(n):
            summaries.append(self.run_epoch())
            if i < n - 1 and delay > 0:
                logger.info("Next epoch in %.1fs (%d/%d done)", delay, i + 1, n)
                self.sleep(delay)
        return summaries

    def surges(self, roster: list[Agent]) -> list[Surge]:
        """Active agents whose balance is well above the seed balance."""
        seed = self.economy.seed_balance
        if seed <= 0:
            return []
        found: list[Surge] = []
        for agent in roster:
            gain_pct = (agent.balance - seed) * 100.0 / seed
            if agent.is_active and gain_pct > self.economy.surge_gain_pct:
                found.append(Surge(agent.id, agent.balance, round(gain_pct, 1)))
        return found

    # ===================================================================
    # Anchoring
    # ===================================================================

    def _anchor(self, number: int) -> str | None:
        try:
            anchor_hash = self.anchor.anchor(number)
            self.store.attach_anchor_hash(number, anchor_hash)
        except EconomyError as exc:
            logger.warning(
                "ANCHOR failed epoch=%d error=%s; epoch left unanchored", number, exc
            )
            return None
        return anchor_hash

    def reanchor_pending(self) -> dict[int, str | None]:
        results: dict[int, str | None] = {}
        for number in self.store.unanchored_epochs():
            results[number] = self._anchor(number)
        return results

    def leaderboard(self) -> list[LeaderboardEntry]:
        try:
            agents = self.store.list_agents()
        except PersistenceError as exc:
            logger.warning("Leaderboard unavailable: %s", exc)
            return []
        agents = roster_order(agents)[: self.economy.leaderboard_size]
        return [
            LeaderboardEntry(
                rank=i,
                agent_id=a.id,
                name=a.name,
                balance=a.balance,
                status=a.status.value,
            )
            for i, a in enumerate(agents, start=1)
        ]
