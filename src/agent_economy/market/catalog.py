"""Fixed catalogs of the economy: tradeable skills and market regimes.

One market event is drawn per epoch, uniformly and independently of every
previous epoch. The event is threaded through matching so every trade in
the epoch sees the same price multiplier.
"""
from __future__ import annotations

import logging
import random

from agent_economy.utils.types import MarketEvent, Skill

SKILLS: tuple[Skill, ...] = (
    Skill("translation", "Translation", 3.0),
    Skill("analysis", "Data analysis", 8.0),
    Skill("coding", "Coding", 10.0),
    Skill("writing", "Writing", 5.0),
    Skill("research", "Research", 6.0),
    Skill("security_audit", "Security audit", 12.0),
    Skill("education", "Education / mentoring", 7.0),
    Skill("marketing", "Marketing", 6.0),
    Skill("consulting", "Business consulting", 15.0),
    Skill("design", "Design / creative work", 8.0),
    Skill("brokerage", "Brokerage", 2.0),
    Skill("insurance", "Insurance", 4.0),
    Skill("intelligence", "Market intelligence", 9.0),
)

SKILLS_BY_TYPE: dict[str, Skill] = {s.type: s for s in SKILLS}

MARKET_EVENTS: tuple[MarketEvent, ...] = (
    MarketEvent("boom", "Economic boom! Trading volume surges", 1.5, 0.8),
    MarketEvent("recession", "Recession... consumers pull back", 0.6, 0.3),
    MarketEvent("opportunity", "Special opportunity! High returns possible", 2.0, 0.6),
    MarketEvent("normal", "An ordinary market day", 1.0, 0.5),
)


def skill_for(skill_type: str) -> Skill | None:
    return SKILLS_BY_TYPE.get(skill_type)


class MarketEventSelector:
    def __init__(
        self,
        rng: random.Random,
        catalog: tuple[MarketEvent, ...] = MARKET_EVENTS,
    ) -> None:
        if not catalog:
            raise ValueError("market event catalog is empty")
        self.rng = rng
        self.catalog = catalog
        self.logger = logging.getLogger("agent_economy.market")

    def select(self) -> MarketEvent:
        event = self.catalog[self.rng.randrange(len(self.catalog))]
        self.logger.info(
            "Market event selected: type=%s multiplier=%.2f trade_probability=%.2f",
            event.type,
            event.price_multiplier,
            event.trade_probability,
        )
        return event


class FixedEventSelector:
    """Always returns the same event. Used for scripted runs and replays."""

    def __init__(self, event: MarketEvent) -> None:
        self.event = event

    def select(self) -> MarketEvent:
        return self.event
