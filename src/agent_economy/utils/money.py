from __future__ import annotations


def round_money(value: float, places: int = 4) -> float:
    rounded = round(float(value), places)
    # Normalise -0.0 so serialized balances never carry a sign on zero.
    return rounded + 0.0 if rounded != 0 else 0.0


def clamp_spend(amount: float, available: float, places: int = 4) -> float:
    return round_money(max(0.0, min(amount, available)), places)
