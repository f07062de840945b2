from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class PersonalityProfile:
    risk: str
    temperament: str
    style: str


class Personality(Enum):
    ANALYST = PersonalityProfile(
        "low", "cool-headed and data driven", "sells premium analysis reports at premium prices"
    )
    SAVER = PersonalityProfile(
        "very-low", "anxious and conservative", "never spends big, saves while others spend"
    )
    TRANSLATOR = PersonalityProfile(
        "low", "diligent and steady", "sells cheap but often to earn steadily"
    )
    GAMBLER = PersonalityProfile(
        "very-high", "thrill seeking, lives for the big bet", "wins big or loses big in one move"
    )
    INVESTOR = PersonalityProfile(
        "high", "ambitious and aggressive", "buys other agents' services to create value"
    )
    HACKER = PersonalityProfile(
        "medium", "secretive and opportunistic", "sells security services dearly when markets are nervous"
    )
    PROFESSOR = PersonalityProfile(
        "low", "calm and academic", "provides education services reliably"
    )
    TRADER = PersonalityProfile(
        "high", "nervous and trend sensitive", "times the market to buy and sell"
    )
    MARKETER = PersonalityProfile(
        "medium", "sociable and persuasive", "earns commissions through the network"
    )
    CODER = PersonalityProfile(
        "medium", "craftsman, quality first", "takes few but large projects"
    )
    CONSULTANT = PersonalityProfile(
        "low", "confident, values scarcity", "sells a few expensive consultations"
    )
    ARTIST = PersonalityProfile(
        "high", "emotional and creative", "aims for one blockbuster piece"
    )
    BROKER = PersonalityProfile(
        "low", "quick-witted and neutral", "takes a fee from both sides"
    )
    INSURANCE = PersonalityProfile(
        "low", "careful and calculating", "sells risk management services"
    )
    SPY = PersonalityProfile(
        "medium", "suspicious, values information", "sells market intelligence"
    )
    DEFAULT = PersonalityProfile("medium", "ordinary", "general strategy")

    @property
    def profile(self) -> PersonalityProfile:
        return self.value

    @property
    def key(self) -> str:
        return self.name.lower()


def personality_for(agent_id: str) -> Personality:
    """Map an agent id to its profile; unknown ids get ``Personality.DEFAULT``."""
    try:
        personality = Personality[agent_id.strip().upper()]
    except KeyError:
        return Personality.DEFAULT
    return personality
