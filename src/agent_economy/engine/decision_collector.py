"""Concurrent decision collection for one epoch.

Every active agent gets exactly one oracle request. Requests run
concurrently on a persistent event loop, bounded by a semaphore, each with
its own timeout and the whole phase under an epoch deadline. Any failure
(timeout, bad status, transport error, unparsable payload) resolves that
agent to WAIT; the phase itself never fails.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import aiohttp

from agent_economy.agents.decision import (
    ORACLE_ERROR_REASON,
    WAIT,
    Decision,
    build_prompt,
    parse_decision,
    wait,
)
from agent_economy.config.settings import EconomySettings, EngineSettings
from agent_economy.utils.types import Agent, MarketEvent

logger = logging.getLogger("agent_economy.collector")


class DecisionOracle(Protocol):
    async def async_generate(
        self,
        prompt: str,
        timeout_s: float | None = None,
        semaphore: asyncio.Semaphore | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> tuple[str, float]: ...


@dataclass
class DecisionResult:
    agent_id: str
    decision: Decision
    latency_ms: float = 0.0
    used_fallback: bool = False
    fallback_reason: str = ""


class DecisionCollector:
    """Fans out one oracle request per active agent."""

    def __init__(
        self,
        cfg: EngineSettings,
        economy: EconomySettings,
        oracle: DecisionOracle,
    ) -> None:
        self.cfg = cfg
        self.economy = economy
        self.oracle = oracle
        # Persistent event loop, reused across epochs
        self._loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
        self._oracle_semaphore: asyncio.Semaphore | None = None
        self.last_results: list[DecisionResult] = []

    def close(self) -> None:
        if not self._loop.is_closed():
            self._loop.close()

    # ===================================================================
    # Public interface
    # ===================================================================

    def collect(self, roster: list[Agent], event: MarketEvent) -> dict[str, Decision]:
        active = [a for a in roster if a.is_active]
        if not active:
            self.last_results = []
            return {}

        t0 = time.perf_counter()
        logger.info("DECIDE start agents=%d event=%s", len(active), event.type)
        results = self._loop.run_until_complete(self._collect_all(active, event))

        by_agent = {r.agent_id: r for r in results}
        # Every active agent must come back with a decision
        for agent in active:
            if agent.id not in by_agent:
                logger.warning("DECIDE agent=%s missing result; WAIT fallback", agent.id)
                by_agent[agent.id] = DecisionResult(
                    agent_id=agent.id,
                    decision=wait(),
                    used_fallback=True,
                    fallback_reason="missing",
                )

        self.last_results = sorted(by_agent.values(), key=lambda r: r.agent_id)
        fallbacks = sum(1 for r in self.last_results if r.used_fallback)
        logger.info(
            "DECIDE done  elapsed=%.1fs oracle=%d fallback=%d",
            time.perf_counter() - t0,
            len(self.last_results) - fallbacks,
            fallbacks,
        )
        return {r.agent_id: r.decision for r in self.last_results}

    @property
    def fallback_count(self) -> int:
        return sum(1 for r in self.last_results if r.used_fallback)

    # ===================================================================
    # Concurrent phase
    # ===================================================================

    async def _collect_all(
        self, active: list[Agent], event: MarketEvent
    ) -> list[DecisionResult]:
        if self._oracle_semaphore is None:
            self._oracle_semaphore = asyncio.Semaphore(self.cfg.max_concurrent_oracle)

        tasks: dict[asyncio.Task, str] = {}
        connector = aiohttp.TCPConnector(limit=self.cfg.max_concurrent_oracle)
        async with aiohttp.ClientSession(connector=connector) as session:
            for agent in active:
                peers = [p for p in active if p.id != agent.id]
                task = asyncio.create_task(
                    self._collect_decision(agent, peers, event, session),
                    name=f"decide_{agent.id}",
                )
                tasks[task] = agent.id

            done, pending = await asyncio.wait(
                tasks.keys(),
                timeout=self.cfg.per_epoch_deadline_s,
                return_when=asyncio.ALL_COMPLETED,
            )

            results: list[DecisionResult] = []
            for task in pending:
                agent_id = tasks[task]
                logger.warning("DECIDE deadline reached agent=%s; WAIT fallback", agent_id)
                task.cancel()
                results.append(
                    DecisionResult(
                        agent_id=agent_id,
                        decision=wait(),
                        used_fallback=True,
                        fallback_reason="deadline",
                    )
                )
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            agent_id = tasks[task]
            exc = task.exception()
            if exc is not None:
                logger.error("DECIDE task error agent=%s: %s", agent_id, exc)
                results.append(
                    DecisionResult(
                        agent_id=agent_id,
                        decision=wait(),
                        used_fallback=True,
                        fallback_reason=f"task_error:{exc.__class__.__name__}",
                    )
                )
                continue
            results.append(task.result())
        return results

    async def _collect_decision(
        self,
        agent: Agent,
        peers: list[Agent],
        event: MarketEvent,
        session: aiohttp.ClientSession,
    ) -> DecisionResult:
        prompt = build_prompt(
            agent,
            peers,
            event,
            warning_floor=self.economy.warning_floor,
            bankruptcy_floor=self.economy.bankruptcy_floor,
        )
        logger.debug("DECIDE agent=%s PROMPT:\n%s", agent.id, prompt)
        assert self._oracle_semaphore is not None
        # Per-request timeout starts once the slot is held; queueing is
        # bounded by the epoch deadline only.
        async with self._oracle_semaphore:
            t0 = time.perf_counter()
            try:
                raw, latency_ms = await asyncio.wait_for(
                    self.oracle.async_generate(
                        prompt,
                        timeout_s=self.cfg.per_request_timeout_s,
                        semaphore=None,
                        session=session,
                    ),
                    timeout=self.cfg.per_request_timeout_s,
                )
            except Exception as exc:
                latency_ms = (time.perf_counter() - t0) * 1000.0
                logger.warning(
                    "DECIDE agent=%-12s ORACLE-FAIL latency=%.0fms error=%s; WAIT fallback",
                    agent.id,
                    latency_ms,
                    exc.__class__.__name__,
                )
                return DecisionResult(
                    agent_id=agent.id,
                    decision=wait(ORACLE_ERROR_REASON),
                    latency_ms=latency_ms,
                    used_fallback=True,
                    fallback_reason=f"oracle_error:{exc.__class__.__name__}",
                )

        decision = parse_decision(raw, agent.balance)
        used_fallback = decision.action == WAIT and decision.reason == ORACLE_ERROR_REASON
        logger.info(
            "DECIDE agent=%-12s latency=%.0fms action=%s skill=%s price=%s",
            agent.id,
            latency_ms,
            decision.action,
            decision.skill or "-",
            f"{decision.price:.2f}" if decision.price is not None else "-",
        )
        return DecisionResult(
            agent_id=agent.id,
            decision=decision,
            latency_ms=latency_ms,
            used_fallback=used_fallback,
            fallback_reason="unparsable" if used_fallback else "",
        )
