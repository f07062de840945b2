from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from agent_economy.config.settings import EconomySettings
from agent_economy.utils.types import (
    BANKRUPTCY_SKILL,
    Agent,
    AgentStatus,
    StatusChange,
    Transaction,
)

logger = logging.getLogger("agent_economy.solvency")


@dataclass
class SolvencyResult:
    roster: dict[str, Agent]
    changes: list[StatusChange] = field(default_factory=list)
    tombstones: list[Transaction] = field(default_factory=list)

    @property
    def bankruptcies(self) -> list[StatusChange]:
        return [c for c in self.changes if c.is_transition]

    @property
    def advisories(self) -> list[StatusChange]:
        return [
            c for c in self.changes
            if c.status in (AgentStatus.WARNING, AgentStatus.BAILOUT_REQUEST)
        ]


class SolvencyMachine:
    def __init__(self, cfg: EconomySettings) -> None:
        self.cfg = cfg

    def classify(self, balance: float) -> AgentStatus:
        if balance < self.cfg.bankruptcy_floor:
            return AgentStatus.BANKRUPT
        if balance < self.cfg.bailout_floor:
            return AgentStatus.BAILOUT_REQUEST
        if balance < self.cfg.warning_floor:
            return AgentStatus.WARNING
        return AgentStatus.ACTIVE

    def reclassify(
        self,
        roster: dict[str, Agent],
        epoch: int,
        now: datetime | None = None,
    ) -> SolvencyResult:
        """Retire insolvent agents and report the advisory classes.

        Only ``bankrupt`` is written back onto the agent; ``warning`` and
        ``bailout_request`` are recomputed from the live balance every epoch.
        """
        ts = now or datetime.now(timezone.utc)
        agents = {agent_id: replace(a) for agent_id, a in roster.items()}
        result = SolvencyResult(roster=agents)

        for agent_id in sorted(agents):
            agent = agents[agent_id]
            if not agent.is_active:
                continue
            status = self.classify(agent.balance)
            if status == AgentStatus.ACTIVE:
                continue

            result.changes.append(
                StatusChange(
                    agent_id=agent.id,
                    previous=agent.status,
                    status=status,
                    balance=agent.balance,
                )
            )
            if status == AgentStatus.BANKRUPT:
                agent.status = AgentStatus.BANKRUPT
                agent.updated_at = ts
                result.tombstones.append(
                    Transaction(
                        buyer_id=agent.id,
                        seller_id=agent.id,
                        skill_type=BANKRUPTCY_SKILL,
                        amount=0.0,
                        fee=0.0,
                        epoch=epoch,
                        narrative=(
                            f"{agent.name} went bankrupt! Left the market with "
                            f"${agent.balance:.2f}."
                        ),
                        created_at=ts,
                    )
                )
                logger.info("SOLVENCY bankrupt agent=%s balance=%.4f", agent.id, agent.balance)
            else:
                logger.info(
                    "SOLVENCY %s agent=%s balance=%.4f", status.value, agent.id, agent.balance
                )
        return result
