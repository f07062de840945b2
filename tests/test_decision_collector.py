"""
Tests for concurrent decision collection

Tests cover:
- Every active agent gets exactly one decision
- Timeouts, oracle errors and garbage resolve to WAIT
- The epoch deadline cancels stragglers
"""

import asyncio

import pytest

from agent_economy.agents.decision import BUY, ORACLE_ERROR_REASON, SELL, WAIT
from agent_economy.config.settings import EngineSettings
from agent_economy.engine.decision_collector import DecisionCollector
from agent_economy.llm.ollama_adapter import OracleError
from agent_economy.utils.types import AgentStatus

from conftest import ScriptedOracle


@pytest.fixture
def roster(make_agent):
    return [make_agent("a"), make_agent("b"), make_agent("c")]


def _collector(settings, economy, oracle):
    return DecisionCollector(settings, economy, oracle)


class TestDecisionCollector:
    """DecisionCollector.collect"""

    def test_valid_decisions_pass_through(self, engine_settings, economy, roster, quiet_event):
        """Well-formed responses become the agents' decisions"""
        oracle = ScriptedOracle(
            {
                "A": '{"action":"BUY","skill":"coding","price":20}',
                "B": '{"action":"SELL","skill":"coding","price":15}',
            }
        )
        collector = _collector(engine_settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert set(decisions) == {"a", "b", "c"}
        assert decisions["a"].action == BUY
        assert decisions["b"].action == SELL
        assert decisions["c"].action == WAIT
        assert collector.fallback_count == 0
        assert len(oracle.prompts) == 3

    def test_failures_resolve_to_wait(self, engine_settings, economy, roster, quiet_event):
        """Oracle errors and unparsable text never fail the phase"""
        oracle = ScriptedOracle(
            {
                "A": OracleError("boom"),
                "B": "the market looks great today",
                "C": '{"action":"SELL","skill":"design","price":8}',
            }
        )
        collector = _collector(engine_settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert decisions["a"].action == WAIT
        assert decisions["a"].reason == ORACLE_ERROR_REASON
        assert decisions["b"].action == WAIT
        assert decisions["b"].reason == ORACLE_ERROR_REASON
        assert decisions["c"].action == SELL
        assert collector.fallback_count == 2

    def test_per_request_timeout(self, economy, roster, quiet_event):
        """A slow oracle call is abandoned and the agent WAITs"""
        settings = EngineSettings(
            per_request_timeout_s=0.05, per_epoch_deadline_s=5.0, max_concurrent_oracle=4
        )
        oracle = ScriptedOracle({"A": (1.0, '{"action":"SELL","skill":"coding","price":9}')})
        collector = _collector(settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert decisions["a"].action == WAIT
        result = next(r for r in collector.last_results if r.agent_id == "a")
        assert result.used_fallback
        assert result.fallback_reason.startswith("oracle_error")

    def test_epoch_deadline(self, economy, roster, quiet_event):
        """Calls still running at the deadline are cancelled"""
        settings = EngineSettings(
            per_request_timeout_s=5.0, per_epoch_deadline_s=0.1, max_concurrent_oracle=4
        )
        oracle = ScriptedOracle({"B": (2.0, '{"action":"SELL","skill":"coding","price":9}')})
        collector = _collector(settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert set(decisions) == {"a", "b", "c"}
        assert decisions["b"].action == WAIT
        result = next(r for r in collector.last_results if r.agent_id == "b")
        assert result.fallback_reason == "deadline"

    def test_inactive_agents_skipped(self, engine_settings, economy, make_agent, quiet_event):
        """Bankrupt agents are never asked"""
        roster = [make_agent("a"), make_agent("b", balance=0.2, status=AgentStatus.BANKRUPT)]
        oracle = ScriptedOracle()
        collector = _collector(engine_settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert set(decisions) == {"a"}
        assert len(oracle.prompts) == 1

    def test_loop_reused_across_epochs(self, engine_settings, economy, roster, quiet_event):
        """The collector can run several epochs on its persistent loop"""
        collector = _collector(engine_settings, economy, ScriptedOracle())
        try:
            first = collector.collect(roster, quiet_event)
            second = collector.collect(roster, quiet_event)
        finally:
            collector.close()
        assert set(first) == set(second) == {"a", "b", "c"}


class CountingOracle:
    """Slow oracle that records how many calls overlap."""

    def __init__(self, delay, text):
        self.delay = delay
        self.text = text
        self.in_flight = 0
        self.peak = 0

    async def async_generate(self, prompt, timeout_s=None, semaphore=None, session=None):
        if semaphore is not None:
            async with semaphore:
                return await self._answer()
        return await self._answer()

    async def _answer(self):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return self.text, self.delay * 1000.0


class TestConcurrencyLimit:
    """Queueing behind the concurrency limit"""

    def test_waiting_for_a_slot_does_not_count_as_timeout(self, economy, roster, quiet_event):
        """Each call gets its full timeout once it holds a slot"""
        settings = EngineSettings(
            per_request_timeout_s=0.3, per_epoch_deadline_s=5.0, max_concurrent_oracle=1
        )
        oracle = CountingOracle(0.2, '{"action":"SELL","skill":"coding","price":9}')
        collector = _collector(settings, economy, oracle)
        try:
            decisions = collector.collect(roster, quiet_event)
        finally:
            collector.close()

        assert all(d.action == SELL for d in decisions.values())
        assert collector.fallback_count == 0
        assert oracle.peak == 1
