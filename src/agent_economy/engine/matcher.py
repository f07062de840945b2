"""Trade matching: direct buyer/seller matching, then supplementary liquidity.

PHASE A: DIRECT
  Buyers are visited in roster order (balance descending, id ascending).
  Each takes the first unconsumed seller in roster order offering the same
  skill. Price is the lower of bid and ask times the event multiplier,
  clamped to what the buyer can still pay. Trades at or below the dust
  floor are discarded and leave the seller available.

PHASE B: SUPPLEMENTARY LIQUIDITY
  A few random pairings among all active agents, each accepted with the
  event's trade probability. At least one is attempted when Phase A
  produced nothing. A seller still sells at most once per epoch.

Available funds are tracked exactly the way the ledger will apply the
transfers, so every proposed debit is payable when it is committed.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from agent_economy.agents.decision import BUY, SELL, Decision
from agent_economy.config.settings import EconomySettings
from agent_economy.market.catalog import SKILLS, skill_for
from agent_economy.utils.money import clamp_spend, round_money
from agent_economy.utils.types import Agent, MarketEvent, ProposedTransfer

logger = logging.getLogger("agent_economy.matcher")


def roster_order(agents: list[Agent]) -> list[Agent]:
    return sorted(agents, key=lambda a: (-a.balance, a.id))


@dataclass
class _Book:
    """Per-epoch matching state: spendable funds and consumed sellers."""

    funds: dict[str, float]
    sold: set[str]
    places: int

    def settle(self, transfer: ProposedTransfer) -> None:
        self.funds[transfer.buyer_id] = round_money(
            self.funds[transfer.buyer_id] - transfer.amount, self.places
        )
        self.funds[transfer.seller_id] = round_money(
            self.funds[transfer.seller_id] + transfer.amount - transfer.fee, self.places
        )
        self.sold.add(transfer.seller_id)


class TradeMatcher:
    def __init__(self, cfg: EconomySettings, rng: random.Random) -> None:
        self.cfg = cfg
        self.rng = rng

    def match(
        self,
        roster: list[Agent],
        decisions: dict[str, Decision],
        event: MarketEvent,
    ) -> list[ProposedTransfer]:
        ordered = roster_order([a for a in roster if a.is_active])
        book = _Book(
            funds={a.id: a.balance for a in ordered},
            sold=set(),
            places=self.cfg.money_decimals,
        )

        direct = self._phase_direct(ordered, decisions, event, book)
        supplementary = self._phase_supplementary(ordered, event, book, len(direct))
        logger.info(
            "MATCH event=%s direct=%d supplementary=%d",
            event.type,
            len(direct),
            len(supplementary),
        )
        return direct + supplementary

    # ------------------------------------------------------------------
    # Phase A
    # ------------------------------------------------------------------

    def _phase_direct(
        self,
        ordered: list[Agent],
        decisions: dict[str, Decision],
        event: MarketEvent,
        book: _Book,
    ) -> list[ProposedTransfer]:
        sellers = [
            a for a in ordered
            if decisions.get(a.id) is not None and decisions[a.id].action == SELL
        ]
        transfers: list[ProposedTransfer] = []

        for buyer in ordered:
            bid = decisions.get(buyer.id)
            if bid is None or bid.action != BUY or bid.price is None:
                continue
            seller = next(
                (
                    s for s in sellers
                    if decisions[s.id].skill == bid.skill
                    and s.id != buyer.id
                    and s.id not in book.sold
                ),
                None,
            )
            if seller is None:
                continue

            ask = decisions[seller.id].price or 0.0
            price = round_money(min(bid.price, ask) * event.price_multiplier, self.cfg.money_decimals)
            amount = clamp_spend(price, book.funds[buyer.id], self.cfg.money_decimals)
            if amount <= self.cfg.dust_floor:
                logger.debug(
                    "MATCH discarded buyer=%s seller=%s skill=%s amount=%.4f (dust)",
                    buyer.id, seller.id, bid.skill, amount,
                )
                continue

            skill = skill_for(bid.skill or "")
            skill_name = skill.name if skill else bid.skill
            transfer = self._transfer(
                buyer,
                seller,
                bid.skill or "",
                amount,
                f"{buyer.name} bought {skill_name} from {seller.name} for ${amount:.2f}",
                supplementary=False,
            )
            book.settle(transfer)
            transfers.append(transfer)
        return transfers

    # ------------------------------------------------------------------
    # Phase B
    # ------------------------------------------------------------------

    def _phase_supplementary(
        self,
        ordered: list[Agent],
        event: MarketEvent,
        book: _Book,
        direct_count: int,
    ) -> list[ProposedTransfer]:
        if len(ordered) < 2:
            return []
        attempts = self.rng.randrange(max(1, self.cfg.max_supplementary_trades))
        if direct_count == 0:
            attempts += 1

        transfers: list[ProposedTransfer] = []
        for _ in range(attempts):
            if self.rng.random() >= event.trade_probability:
                continue
            buyer = self.rng.choice(ordered)
            candidates = [a for a in ordered if a.id != buyer.id and a.id not in book.sold]
            if not candidates:
                continue
            seller = self.rng.choice(candidates)
            skill = self.rng.choice(SKILLS)
            price = round_money(
                skill.base_price * event.price_multiplier * (0.5 + self.rng.random()),
                self.cfg.money_decimals,
            )
            amount = clamp_spend(price, book.funds[buyer.id], self.cfg.money_decimals)
            if amount <= self.cfg.dust_floor:
                continue

            transfer = self._transfer(
                buyer,
                seller,
                skill.type,
                amount,
                f"{buyer.name} bought {skill.name} from {seller.name} for ${amount:.2f} (market match)",
                supplementary=True,
            )
            book.settle(transfer)
            transfers.append(transfer)
        return transfers

    def _transfer(
        self,
        buyer: Agent,
        seller: Agent,
        skill_type: str,
        amount: float,
        narrative: str,
        supplementary: bool,
    ) -> ProposedTransfer:
        return ProposedTransfer(
            buyer_id=buyer.id,
            seller_id=seller.id,
            skill_type=skill_type,
            amount=amount,
            fee=round_money(amount * self.cfg.platform_fee_rate, self.cfg.money_decimals),
            narrative=narrative,
            supplementary=supplementary,
        )
