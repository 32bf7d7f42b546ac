"""Risk-tolerance tier table.

Maps an agent's risk tolerance (0-100 percentile) to the most expensive
arena it may enter:

    85-100 -> Diamond   max fee 2
    70-85  -> Platinum  max fee 1
    50-70  -> Gold      max fee 0.5
    30-50  -> Silver    max fee 0.2
     0-30  -> Bronze    max fee 0.1
"""

from typing import NamedTuple

from matchmaker.models import TierName


class TierBand(NamedTuple):
    min_risk: float
    tier: TierName
    max_fee: float


# Ordered highest band first; never mutated
TIER_TABLE: tuple[TierBand, ...] = (
    TierBand(85, "diamond", 2.0),
    TierBand(70, "platinum", 1.0),
    TierBand(50, "gold", 0.5),
    TierBand(30, "silver", 0.2),
    TierBand(0, "bronze", 0.1),
)


def tier_for_risk(risk_tolerance: float) -> TierBand:
    """Return the band a 0-100 risk tolerance falls into."""
    for band in TIER_TABLE:
        if risk_tolerance >= band.min_risk:
            return band
    return TIER_TABLE[-1]


def max_allowed_fee(risk_tolerance: float) -> float:
    """Highest entry fee an agent with this risk tolerance may pay."""
    return tier_for_risk(risk_tolerance).max_fee
