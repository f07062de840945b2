"""Epoch engine of the agent economy.

  DECIDE: one oracle request per active agent, dispatched concurrently.
  MATCH:  direct buyer/seller matching, then supplementary liquidity.
  SETTLE: ledger transfers, solvency reclassification, atomic commit.
  ANCHOR: SHA-256 digest of the committed epoch state.
"""
from agent_economy.engine.scheduler import EpochScheduler

__all__ = ["EpochScheduler"]
