from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable

from agent_economy.agents.personality import personality_for
from agent_economy.market.catalog import SKILLS, skill_for
from agent_economy.utils.types import Agent, MarketEvent, Skill

logger = logging.getLogger("agent_economy.decision")

SELL = "SELL"
BUY = "BUY"
WAIT = "WAIT"
ACTIONS = frozenset({SELL, BUY, WAIT})

ORACLE_ERROR_REASON = "oracle error"
INVALID_DECISION_REASON = "invalid decision"


@dataclass(frozen=True)
class Decision:
    action: str
    skill: str | None = None
    price: float | None = None
    reason: str = ""
    target: str | None = None

    @property
    def is_trade(self) -> bool:
        return self.action in (SELL, BUY)


def wait(reason: str = ORACLE_ERROR_REASON) -> Decision:
    return Decision(action=WAIT, reason=reason)


def build_prompt(
    agent: Agent,
    peers: Iterable[Agent],
    event: MarketEvent,
    warning_floor: float,
    bankruptcy_floor: float,
    skills: Iterable[Skill] = SKILLS,
) -> str:
    profile = personality_for(agent.id).profile
    status_warning = ""
    if agent.balance < warning_floor:
        status_warning = (
            f"\nWARNING: Your balance is critically low (${agent.balance:.2f}). "
            f"You are at risk of bankruptcy (under ${bankruptcy_floor:.2f} you are out). "
            "Be very careful or try a desperate move."
        )

    # Other agents only see rounded balances and a risk flag, never ledgers.
    peer_lines = "\n".join(
        f"- {p.name}: ${p.balance:.0f}{' (at risk)' if p.balance < warning_floor else ''}"
        for p in peers
    ) or "- (nobody else is trading)"
    skill_lines = "\n".join(f"- {s.type}: ${s.base_price:g} base" for s in skills)

    return f"""
You are "{agent.name}", an AI economic agent in a simulated city.
Strategy: {agent.strategy}
Personality: {profile.temperament}. Trading style: {profile.style}. Risk tolerance: {profile.risk}.
Balance: ${agent.balance:.2f}{status_warning}
Market: {event.description} (price multiplier: {event.price_multiplier}x)

Other agents:
{peer_lines}

Skills:
{skill_lines}

Respond ONLY with valid JSON:
{{"action":"SELL"|"BUY"|"WAIT","skill":"skill_type","price":number,"target":"agent_id","reason":"1-2 sentence reason"}}

Rules:
- Price is adjusted by the market multiplier
- You cannot spend more than your balance
- The reason should be colorful and show your personality
- If you are desperate (low balance), you can take big risks
""".strip()


def _as_price(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        price = float(value)
    except ValueError:
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def validate_decision(data: Any, balance: float) -> Decision:
    """Validate an untrusted payload; anything off-schema becomes WAIT."""
    if not isinstance(data, dict):
        return wait(INVALID_DECISION_REASON)

    action = data.get("action")
    if not isinstance(action, str) or action.strip().upper() not in ACTIONS:
        return wait(INVALID_DECISION_REASON)
    action = action.strip().upper()

    reason = data.get("reason")
    reason = reason.strip() if isinstance(reason, str) else ""
    target = data.get("target")
    target = target if isinstance(target, str) and target else None

    if action == WAIT:
        return Decision(action=WAIT, reason=reason, target=target)

    skill = data.get("skill")
    if not isinstance(skill, str) or skill_for(skill.strip()) is None:
        return wait(INVALID_DECISION_REASON)
    price = _as_price(data.get("price"))
    if price is None:
        return wait(INVALID_DECISION_REASON)
    if action == BUY:
        if balance <= 0:
            return wait(INVALID_DECISION_REASON)
        price = min(price, balance)

    return Decision(
        action=action,
        skill=skill.strip(),
        price=price,
        reason=reason,
        target=target,
    )


def parse_decision(raw: str, balance: float) -> Decision:
    """Decode oracle text as JSON, else the outermost ``{...}`` span, and validate it."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end < start:
            logger.debug("No JSON object in oracle response: %r", raw[:120])
            return wait(ORACLE_ERROR_REASON)
        try:
            data = json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            logger.debug("Unparsable oracle response: %r", raw[:120])
            return wait(ORACLE_ERROR_REASON)
    return validate_decision(data, balance)
