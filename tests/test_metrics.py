"""
Tests for economy reports and run artifacts

Tests cover:
- Economy-wide statistics
- Per-agent report with partners, skills and balance history
- JSON and CSV artifacts
"""

import csv
import json

from agent_economy.engine.scheduler import EpochScheduler
from agent_economy.market.catalog import FixedEventSelector
from agent_economy.metrics.engine import MetricsEngine

from conftest import ScriptedCollector


def run_epochs(economy, rng, repo, event, decisions, n=1):
    scheduler = EpochScheduler(
        economy=economy,
        store=repo,
        collector=ScriptedCollector(decisions),
        rng=rng,
        event_selector=FixedEventSelector(event),
    )
    return [scheduler.run_epoch() for _ in range(n)]


class TestEconomyStats:
    """MetricsEngine.economy_stats"""

    def test_empty_store(self, repo):
        """Before any epoch everyone is alive and nothing traded"""
        stats = MetricsEngine(repo).economy_stats()
        assert stats["total_agents"] == 3
        assert stats["survival_rate"] == 100.0
        assert stats["total_epochs"] == 0
        assert stats["total_transactions"] == 0

    def test_after_trading(self, economy, rng, repo, quiet_event, trade_decisions):
        """Totals reflect committed epochs"""
        run_epochs(economy, rng, repo, quiet_event, trade_decisions, n=2)
        stats = MetricsEngine(repo).economy_stats()

        assert stats["total_epochs"] == 2
        assert stats["anchored_epochs"] == 2
        assert stats["total_transactions"] == 2
        assert stats["total_volume"] == 30.0
        assert stats["total_balance"] == 298.5


class TestAgentReport:
    """MetricsEngine.agent_report"""

    def test_seller_report(self, economy, rng, repo, quiet_event, trade_decisions):
        """The seller sees its net proceeds and its buyer as partner"""
        run_epochs(economy, rng, repo, quiet_event, trade_decisions)
        report = MetricsEngine(repo).agent_report("b")

        assert report["agent"]["balance"] == 114.25
        assert report["sells"] == 1
        assert report["buys"] == 0
        assert report["total_sold"] == 14.25
        assert report["top_partners"] == [{"id": "a", "count": 1}]
        assert report["skills"] == {"coding": {"bought": 0.0, "sold": 14.25}}
        assert report["balance_history"] == [{"epoch": 1, "balance": 114.25}]

    def test_unknown_agent(self, repo):
        """Unknown ids yield no report"""
        assert MetricsEngine(repo).agent_report("nobody") is None


class TestArtifacts:
    """Files written for a run"""

    def test_epoch_json_and_csv(self, tmp_path, economy, rng, repo, quiet_event, trade_decisions):
        """One JSON file per epoch plus a CSV table of all epochs"""
        summaries = run_epochs(economy, rng, repo, quiet_event, trade_decisions, n=2)
        engine = MetricsEngine(repo)

        path = engine.write_epoch_artifact(tmp_path, summaries[0])
        assert path.name == "epoch_00001.json"
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["epoch"] == 1
        assert payload["event_type"] == "normal"
        assert payload["anchor_hash"] == summaries[0].anchor_hash

        table = engine.write_epochs_csv(tmp_path)
        with table.open(encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["epoch"] for r in rows] == ["1", "2"]
        assert rows[0]["anchor_hash"] == summaries[0].anchor_hash
