"""
Scoring Engine - Asset Score.

============================================================
RESPONSIBILITY
============================================================
Computes a 0-100 composite score per asset from its market
record and (optionally) its staking reference entry.

- Five independent step functions
- Score decomposition for explainability
- Pure: no state, no I/O, deterministic

============================================================
COMPONENTS
============================================================
Market    (0-25)  market cap rank
Staking   (0-25)  staking yield, +5 for >= 50% participation
Security  (0-20)  absolute market cap
Adoption  (0-15)  24h volume / market cap
Tech      (0-15)  drawdown from all-time high

Assets without a reference entry score 0 for staking.

============================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from data_sources.models import ProviderRecord
from reference_data.staking import StakingReference


# =============================================================
# BRACKETS
# =============================================================

# (upper rank bound inclusive, points); ranks start at 1
MARKET_RANK_BRACKETS: Tuple[Tuple[int, Decimal], ...] = (
    (10, Decimal("25")),
    (25, Decimal("22")),
    (50, Decimal("18")),
    (100, Decimal("14")),
    (250, Decimal("10")),
)
MARKET_FLOOR = Decimal("5")

# (minimum APY inclusive, points)
STAKING_APY_BRACKETS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("10"), Decimal("20")),
    (Decimal("5"), Decimal("15")),
    (Decimal("2"), Decimal("10")),
)
STAKING_FLOOR = Decimal("5")
STAKING_RATIO_BONUS_THRESHOLD = Decimal("50")
STAKING_RATIO_BONUS = Decimal("5")

# (market cap strictly above, points)
SECURITY_BRACKETS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("10000000000"), Decimal("20")),
    (Decimal("1000000000"), Decimal("16")),
    (Decimal("100000000"), Decimal("12")),
)
SECURITY_FLOOR = Decimal("8")

# (volume / market cap strictly above, points)
ADOPTION_BRACKETS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("0.10"), Decimal("15")),
    (Decimal("0.05"), Decimal("12")),
    (Decimal("0.01"), Decimal("9")),
)
ADOPTION_FLOOR = Decimal("5")

# (ATH change percent strictly above, points)
TECH_BRACKETS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("-20"), Decimal("15")),
    (Decimal("-50"), Decimal("12")),
    (Decimal("-80"), Decimal("8")),
)
TECH_FLOOR = Decimal("4")

ZERO = Decimal("0")


# =============================================================
# RESULT TYPES
# =============================================================

@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-component points."""
    market: Decimal
    staking: Decimal
    security: Decimal
    adoption: Decimal
    tech: Decimal
    
    def total(self) -> Decimal:
        return self.market + self.staking + self.security + self.adoption + self.tech
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_score": self.market,
            "staking_score": self.staking,
            "security_score": self.security,
            "adoption_score": self.adoption,
            "tech_score": self.tech,
        }


@dataclass(frozen=True)
class AssetScore:
    """Composite score; ``total`` is always the sum of the breakdown."""
    total: Decimal
    breakdown: ScoreBreakdown
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.total,
            "score_breakdown": self.breakdown.to_dict(),
        }


# =============================================================
# COMPONENT SCORERS
# =============================================================

def score_market(market_cap_rank: Optional[int]) -> Decimal:
    """Market points by market cap rank; unranked assets get the floor."""
    if market_cap_rank is None or market_cap_rank < 1:
        return MARKET_FLOOR
    for upper, points in MARKET_RANK_BRACKETS:
        if market_cap_rank <= upper:
            return points
    return MARKET_FLOOR


def score_staking(reference: Optional[StakingReference]) -> Decimal:
    """Staking points from yield plus a participation bonus."""
    if reference is None:
        return ZERO
    
    points = STAKING_FLOOR
    for minimum, bracket_points in STAKING_APY_BRACKETS:
        if reference.apy >= minimum:
            points = bracket_points
            break
    
    if reference.staking_ratio >= STAKING_RATIO_BONUS_THRESHOLD:
        points += STAKING_RATIO_BONUS
    return points


def _step_above(value: Decimal, brackets, floor: Decimal) -> Decimal:
    for threshold, points in brackets:
        if value > threshold:
            return points
    return floor


def score_security(market_cap: Decimal) -> Decimal:
    """Security points by absolute market capitalization."""
    return _step_above(market_cap, SECURITY_BRACKETS, SECURITY_FLOOR)


def score_adoption(volume_24h: Decimal, market_cap: Decimal) -> Decimal:
    """Adoption points by turnover; no market cap means the floor."""
    if market_cap <= ZERO:
        return ADOPTION_FLOOR
    return _step_above(volume_24h / market_cap, ADOPTION_BRACKETS, ADOPTION_FLOOR)


def score_tech(ath_change_percentage: Decimal) -> Decimal:
    """Tech points by distance from the all-time high."""
    return _step_above(ath_change_percentage, TECH_BRACKETS, TECH_FLOOR)


# =============================================================
# COMPOSITE
# =============================================================

def score_asset(
    record: ProviderRecord,
    reference: Optional[StakingReference] = None,
) -> AssetScore:
    """Compute the composite score of one asset."""
    breakdown = ScoreBreakdown(
        market=score_market(record.market_cap_rank),
        staking=score_staking(reference),
        security=score_security(record.market_cap),
        adoption=score_adoption(record.total_volume, record.market_cap),
        tech=score_tech(record.ath_change_percentage),
    )
    return AssetScore(total=breakdown.total(), breakdown=breakdown)
