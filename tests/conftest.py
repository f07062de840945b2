"""Shared fixtures: settings, seeded randomness, stores and scripted oracles."""

import asyncio
import random
import re
from pathlib import Path

import pytest

from agent_economy.agents.decision import Decision, wait
from agent_economy.config.settings import (
    AppSettings,
    DBSettings,
    EconomySettings,
    EngineSettings,
    OllamaSettings,
    SchedulerSettings,
)
from agent_economy.db.memory import InMemoryRepository
from agent_economy.utils.types import Agent, MarketEvent

WAIT_JSON = '{"action": "WAIT", "reason": "watching the market"}'


class ScriptedOracle:
    """Async stand-in for the decision oracle, scripted per agent name.

    A script entry is either raw response text, an exception instance to
    raise, or a ``(delay_seconds, text)`` tuple.
    """

    def __init__(self, responses=None, default=WAIT_JSON):
        self.responses = dict(responses or {})
        self.default = default
        self.prompts = []

    async def async_generate(self, prompt, timeout_s=None, semaphore=None, session=None):
        self.prompts.append(prompt)
        match = re.search(r'You are "([^"]+)"', prompt)
        script = self.responses.get(match.group(1) if match else "", self.default)
        if isinstance(script, Exception):
            raise script
        if isinstance(script, tuple):
            delay, text = script
            await asyncio.sleep(delay)
            return text, delay * 1000.0
        return script, 1.0


class ScriptedCollector:
    """Synchronous collector returning fixed decisions; everyone else WAITs."""

    def __init__(self, decisions=None):
        self.decisions = dict(decisions or {})
        self.fallback_count = 0
        self.calls = []

    def collect(self, roster, event):
        self.calls.append([a.id for a in roster])
        return {a.id: self.decisions.get(a.id, wait("idle")) for a in roster}


@pytest.fixture
def economy():
    return EconomySettings()


@pytest.fixture
def engine_settings():
    return EngineSettings(
        per_request_timeout_s=1.0,
        per_epoch_deadline_s=5.0,
        max_concurrent_oracle=4,
    )


@pytest.fixture
def rng():
    return random.Random(7)


@pytest.fixture
def quiet_event():
    """Neutral prices and no supplementary liquidity."""
    return MarketEvent("normal", "An ordinary market day", 1.0, 0.0)


@pytest.fixture
def make_agent():
    def _make(agent_id, balance=100.0, **kwargs):
        return Agent(id=agent_id, name=agent_id.upper(), balance=balance, **kwargs)

    return _make


@pytest.fixture
def repo(make_agent):
    return InMemoryRepository([make_agent("a"), make_agent("b"), make_agent("c")])


@pytest.fixture
def trade_decisions():
    """A bids 20 for coding, B asks 15."""
    return {
        "a": Decision(action="BUY", skill="coding", price=20.0, reason="need code"),
        "b": Decision(action="SELL", skill="coding", price=15.0, reason="have code"),
    }


@pytest.fixture
def app_settings(tmp_path: Path, engine_settings):
    return AppSettings(
        db=DBSettings("localhost", 5432, "economy", "economy_user", "economy_pass"),
        ollama=OllamaSettings(host="http://localhost:11434", llm_model="test-model"),
        economy=EconomySettings(),
        engine=engine_settings,
        scheduler=SchedulerSettings(epoch_count=2, epoch_delay_s=0.0, seed=11),
        output_dir=tmp_path / "out",
    )
