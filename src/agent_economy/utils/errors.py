from __future__ import annotations


class EconomyError(Exception):
    """Base class for errors surfaced to the caller of the epoch engine."""


class PersistenceError(EconomyError):
    """The store failed; the current epoch was not recorded."""


class EpochNotFoundError(EconomyError):
    def __init__(self, number: int) -> None:
        super().__init__(f"epoch {number} not found")
        self.number = number


class RosterTooSmallError(EconomyError):
    def __init__(self, active: int) -> None:
        super().__init__(f"not enough active agents to trade (active={active})")
        self.active = active


class LedgerError(EconomyError):
    pass


class AnchorError(EconomyError):
    pass
