from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AgentStatus(str, Enum):
    ACTIVE = "active"
    WARNING = "warning"
    BAILOUT_REQUEST = "bailout_request"
    BANKRUPT = "bankrupt"


# Only these two are ever written to the store; the others are advisory.
PERSISTED_STATUSES = frozenset({AgentStatus.ACTIVE, AgentStatus.BANKRUPT})

BANKRUPTCY_SKILL = "bankruptcy"


@dataclass
class Agent:
    id: str
    name: str
    strategy: str = ""
    balance: float = 0.0
    total_earned: float = 0.0
    total_spent: float = 0.0
    status: AgentStatus = AgentStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE


@dataclass(frozen=True)
class Skill:
    type: str
    name: str
    base_price: float


@dataclass(frozen=True)
class MarketEvent:
    type: str
    description: str
    price_multiplier: float
    trade_probability: float


@dataclass(frozen=True)
class ProposedTransfer:
    buyer_id: str
    seller_id: str
    skill_type: str
    amount: float
    fee: float
    narrative: str
    supplementary: bool = False


@dataclass(frozen=True)
class Transaction:
    buyer_id: str
    seller_id: str
    skill_type: str
    amount: float
    fee: float
    epoch: int
    narrative: str
    created_at: datetime | None = None

    @property
    def is_tombstone(self) -> bool:
        return self.skill_type == BANKRUPTCY_SKILL


@dataclass(frozen=True)
class StatusChange:
    agent_id: str
    previous: AgentStatus
    status: AgentStatus
    balance: float

    @property
    def is_transition(self) -> bool:
        """True only for hard, persisted transitions."""
        return self.status == AgentStatus.BANKRUPT and self.previous != AgentStatus.BANKRUPT


@dataclass(frozen=True)
class Surge:
    agent_id: str
    balance: float
    gain_pct: float


@dataclass
class EpochRecord:
    number: int
    total_volume: float
    active_agents: int
    bankruptcies: int
    top_earner: str | None
    event_type: str
    event_description: str = ""
    anchor_hash: str | None = None
    created_at: datetime | None = None

    @property
    def anchored(self) -> bool:
        return self.anchor_hash is not None


@dataclass(frozen=True)
class SnapshotRow:
    agent_id: str
    balance: float
    status: str


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    agent_id: str
    name: str
    balance: float
    status: str


@dataclass
class EpochSummary:
    epoch: int
    event: MarketEvent
    trade_count: int
    total_volume: float
    bankruptcies: int
    active_agents: int
    top_earner: str | None
    anchor_hash: str | None
    advisories: list[StatusChange] = field(default_factory=list)
    surges: list[Surge] = field(default_factory=list)
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)
    oracle_fallbacks: int = 0

    def as_dict(self) -> dict:
        return {
            "epoch": self.epoch,
            "event_type": self.event.type,
            "event_description": self.event.description,
            "price_multiplier": self.event.price_multiplier,
            "trade_count": self.trade_count,
            "total_volume": self.total_volume,
            "bankruptcies": self.bankruptcies,
            "active_agents": self.active_agents,
            "top_earner": self.top_earner,
            "anchor_hash": self.anchor_hash,
            "oracle_fallbacks": self.oracle_fallbacks,
            "advisories": [
                {"agent_id": a.agent_id, "status": a.status.value, "balance": a.balance}
                for a in self.advisories
            ],
            "surges": [
                {"agent_id": s.agent_id, "balance": s.balance, "gain_pct": s.gain_pct}
                for s in self.surges
            ],
            "leaderboard": [
                {
                    "rank": e.rank,
                    "agent_id": e.agent_id,
                    "name": e.name,
                    "balance": e.balance,
                    "status": e.status,
                }
                for e in self.leaderboard
            ],
        }
