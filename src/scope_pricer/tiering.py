"""Tier & Cap Engine - Phase 5 of the Pricing Engine.

Derives entry/standard/premium prices from the base project value using
fixed ratios, rounds to the configured increment and clamps every tier
into the global price band.
"""

import math
from typing import Optional

from .config import CapsConfig, TierConfig
from .errors import InvariantViolation
from .schema import CappingFlags, TierPrices, TierResult


def round_to_increment(amount: float, increment: float) -> float:
    """Round half up to the nearest increment (1125 -> 1150 for 50)."""
    return math.floor(amount / increment + 0.5) * increment


class TierEngine:
    """Computes the three price tiers for a base project value.

    Ordering is guaranteed by the ascending ratios and the monotonic clamp.
    A violation means a configuration bug and is raised, never repaired.
    """

    def __init__(
        self,
        tiers: Optional[TierConfig] = None,
        caps: Optional[CapsConfig] = None,
    ):
        self.tiers = tiers or TierConfig()
        self.caps = caps or CapsConfig()

    def tier(self, bpv: float) -> TierResult:
        """Compute raw and clamped tiers for a base project value."""
        increment = self.tiers.rounding_increment
        raw = TierPrices(
            low=round_to_increment(bpv * self.tiers.low_ratio, increment),
            medium=round_to_increment(bpv * self.tiers.medium_ratio, increment),
            high=round_to_increment(bpv * self.tiers.high_ratio, increment),
        )
        self._check_order(raw, "raw")

        final = TierPrices(
            low=self._clamp(raw.low),
            medium=self._clamp(raw.medium),
            high=self._clamp(raw.high),
        )
        self._check_order(final, "final")
        self._check_bounds(final)

        return TierResult(
            raw=raw,
            final=final,
            capping=CappingFlags(
                low_capped=final.low != raw.low,
                medium_capped=final.medium != raw.medium,
                high_capped=final.high != raw.high,
            ),
            min_cap=self.caps.min_price,
            max_cap=self.caps.max_price,
        )

    def _clamp(self, amount: float) -> float:
        return max(self.caps.min_price, min(amount, self.caps.max_price))

    @staticmethod
    def _check_order(prices: TierPrices, label: str) -> None:
        if not (prices.low <= prices.medium <= prices.high):
            raise InvariantViolation(
                f"{label} tiers out of order: low={prices.low}, "
                f"medium={prices.medium}, high={prices.high}",
                stage="tiering",
            )

    def _check_bounds(self, prices: TierPrices) -> None:
        for name, value in (("low", prices.low), ("medium", prices.medium), ("high", prices.high)):
            if not self.caps.min_price <= value <= self.caps.max_price:
                raise InvariantViolation(
                    f"final {name} tier {value} outside "
                    f"[{self.caps.min_price}, {self.caps.max_price}]",
                    stage="tiering",
                )
