from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from agent_economy.config.settings import EconomySettings
from agent_economy.utils.errors import LedgerError
from agent_economy.utils.money import clamp_spend, round_money
from agent_economy.utils.types import Agent, ProposedTransfer, Transaction

logger = logging.getLogger("agent_economy.ledger")


@dataclass
class LedgerResult:
    roster: dict[str, Agent]
    transactions: list[Transaction]
    fees_burned: float = 0.0

    @property
    def volume(self) -> float:
        return sum(t.amount for t in self.transactions)


class Ledger:
    """The only component allowed to move money between agents.

    Transfers are applied in list order to a copy of the roster. The platform
    fee is withheld from the seller and leaves circulation.
    """

    def __init__(self, cfg: EconomySettings) -> None:
        self.cfg = cfg

    def apply(
        self,
        roster: list[Agent],
        transfers: list[ProposedTransfer],
        epoch: int,
        now: datetime | None = None,
    ) -> LedgerResult:
        places = self.cfg.money_decimals
        ts = now or datetime.now(timezone.utc)
        accounts = {a.id: replace(a) for a in roster}
        committed: list[Transaction] = []
        burned = 0.0

        for transfer in transfers:
            if transfer.buyer_id == transfer.seller_id:
                raise LedgerError(f"self-trade rejected for agent {transfer.buyer_id}")
            buyer = accounts.get(transfer.buyer_id)
            seller = accounts.get(transfer.seller_id)
            if buyer is None or seller is None:
                raise LedgerError(
                    f"transfer references unknown agent buyer={transfer.buyer_id} "
                    f"seller={transfer.seller_id}"
                )

            amount = clamp_spend(transfer.amount, buyer.balance, places)
            if amount <= 0:
                logger.warning(
                    "LEDGER skipped transfer buyer=%s seller=%s: buyer has no funds",
                    buyer.id,
                    seller.id,
                )
                continue
            fee = transfer.fee
            if amount != transfer.amount:
                logger.warning(
                    "LEDGER clamped debit buyer=%s from %.4f to %.4f",
                    buyer.id,
                    transfer.amount,
                    amount,
                )
                fee = round_money(amount * self.cfg.platform_fee_rate, places)
            proceeds = round_money(amount - fee, places)

            buyer.balance = round_money(buyer.balance - amount, places)
            buyer.total_spent = round_money(buyer.total_spent + amount, places)
            buyer.updated_at = ts
            seller.balance = round_money(seller.balance + proceeds, places)
            seller.total_earned = round_money(seller.total_earned + proceeds, places)
            seller.updated_at = ts
            burned = round_money(burned + fee, places)

            committed.append(
                Transaction(
                    buyer_id=buyer.id,
                    seller_id=seller.id,
                    skill_type=transfer.skill_type,
                    amount=amount,
                    fee=fee,
                    epoch=epoch,
                    narrative=transfer.narrative,
                    created_at=ts,
                )
            )

        logger.info(
            "LEDGER epoch=%d committed=%d volume=%.4f fees_burned=%.4f",
            epoch,
            len(committed),
            sum(t.amount for t in committed),
            burned,
        )
        return LedgerResult(roster=accounts, transactions=committed, fees_burned=burned)
