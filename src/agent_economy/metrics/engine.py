from __future__ import annotations

import csv
import json
from collections import Counter, defaultdict
from pathlib import Path
from typing import Any, Protocol

from agent_economy.utils.money import round_money
from agent_economy.utils.types import (
    BANKRUPTCY_SKILL,
    Agent,
    AgentStatus,
    EpochRecord,
    EpochSummary,
    Transaction,
)


class ReportSource(Protocol):
    def list_agents(self) -> list[Agent]: ...

    def get_agent(self, agent_id: str) -> Agent | None: ...

    def list_epochs(self) -> list[EpochRecord]: ...

    def count_transactions(self) -> int: ...

    def transactions_for_agent(self, agent_id: str, limit: int = 100) -> list[Transaction]: ...


class MetricsEngine:
    def __init__(self, repo: ReportSource, seed_balance: float = 100.0) -> None:
        self.repo = repo
        self.seed_balance = seed_balance

    def economy_stats(self) -> dict[str, Any]:
        agents = self.repo.list_agents()
        epochs = self.repo.list_epochs()

        total = len(agents)
        active = sum(1 for a in agents if a.status == AgentStatus.ACTIVE)
        bankrupt = sum(1 for a in agents if a.status == AgentStatus.BANKRUPT)
        total_balance = round_money(sum(a.balance for a in agents))
        survival_rate = round(active / total * 100, 1) if total else 0.0

        return {
            "total_agents": total,
            "active_agents": active,
            "bankrupt_agents": bankrupt,
            "total_balance": total_balance,
            "survival_rate": survival_rate,
            "total_epochs": epochs[-1].number if epochs else 0,
            "anchored_epochs": sum(1 for e in epochs if e.anchored),
            "total_transactions": self.repo.count_transactions(),
            "total_volume": round_money(sum(e.total_volume for e in epochs)),
        }

    def agent_report(self, agent_id: str, limit: int = 100) -> dict[str, Any] | None:
        agent = self.repo.get_agent(agent_id)
        if agent is None:
            return None
        txs = [
            t for t in self.repo.transactions_for_agent(agent_id, limit=limit)
            if t.skill_type != BANKRUPTCY_SKILL
        ]
        buys = [t for t in txs if t.buyer_id == agent_id]
        sells = [t for t in txs if t.seller_id == agent_id]

        partners: Counter[str] = Counter(
            t.seller_id if t.buyer_id == agent_id else t.buyer_id for t in txs
        )
        skills: dict[str, dict[str, float]] = defaultdict(lambda: {"bought": 0.0, "sold": 0.0})
        for t in txs:
            if t.buyer_id == agent_id:
                skills[t.skill_type]["bought"] = round_money(skills[t.skill_type]["bought"] + t.amount)
            else:
                skills[t.skill_type]["sold"] = round_money(
                    skills[t.skill_type]["sold"] + t.amount - t.fee
                )

        return {
            "agent": {
                "id": agent.id,
                "name": agent.name,
                "strategy": agent.strategy,
                "balance": agent.balance,
                "status": agent.status.value,
                "total_earned": agent.total_earned,
                "total_spent": agent.total_spent,
            },
            "buys": len(buys),
            "sells": len(sells),
            "total_bought": round_money(sum(t.amount for t in buys)),
            "total_sold": round_money(sum(t.amount - t.fee for t in sells)),
            "top_partners": [
                {"id": pid, "count": count} for pid, count in partners.most_common(5)
            ],
            "skills": dict(sorted(skills.items())),
            "balance_history": self._balance_history(agent_id, txs),
        }

    def _balance_history(self, agent_id: str, txs: list[Transaction]) -> list[dict[str, float]]:
        """Replay the agent's trades from the seed balance, epoch by epoch."""
        running = self.seed_balance
        by_epoch: dict[int, float] = {}
        for t in sorted(txs, key=lambda t: t.epoch):
            if t.buyer_id == agent_id:
                running -= t.amount
            if t.seller_id == agent_id:
                running += t.amount - t.fee
            by_epoch[t.epoch] = max(0.0, round_money(running))
        return [{"epoch": e, "balance": b} for e, b in sorted(by_epoch.items())]

    def write_epoch_artifact(self, output_dir: Path, summary: EpochSummary) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"epoch_{summary.epoch:05d}.json"
        path.write_text(
            json.dumps(summary.as_dict(), indent=2, ensure_ascii=True), encoding="utf-8"
        )
        return path

    def write_epochs_csv(self, output_dir: Path, filename: str = "epochs.csv") -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / filename
        fields = [
            "epoch",
            "event_type",
            "total_volume",
            "active_agents",
            "bankruptcies",
            "top_earner",
            "anchor_hash",
            "created_at",
        ]
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fields)
            writer.writeheader()
            for e in self.repo.list_epochs():
                writer.writerow(
                    {
                        "epoch": e.number,
                        "event_type": e.event_type,
                        "total_volume": e.total_volume,
                        "active_agents": e.active_agents,
                        "bankruptcies": e.bankruptcies,
                        "top_earner": e.top_earner or "",
                        "anchor_hash": e.anchor_hash or "",
                        "created_at": e.created_at.isoformat() if e.created_at else "",
                    }
                )
        return path
