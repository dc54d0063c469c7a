"""Multiplier Composer - Phase 3 of the Pricing Engine.

Converts difficulty factors into a single bounded multiplier product.
Percentage deltas are additive; the product never exceeds the hard cap
no matter how many factors are adverse at once.
"""

from typing import Optional

from .config import DifficultyConfig
from .errors import InvariantViolation
from .schema import (
    Ambiguity,
    Clarity,
    DifficultyFactors,
    Integrations,
    RiskCompliance,
    Urgency,
)


class MultiplierComposer:
    """Composes difficulty factors into MP, 1.0 <= MP <= cap."""

    def __init__(self, config: Optional[DifficultyConfig] = None):
        self.config = config or DifficultyConfig()

    def deltas(self, factors: DifficultyFactors) -> dict[str, float]:
        """Percentage delta contributed by each factor that fired."""
        cfg = self.config
        fired: dict[str, float] = {}
        if factors.urgency == Urgency.URGENT:
            fired["urgency"] = cfg.urgent_pct
        if factors.risk_compliance == RiskCompliance.REGULATED:
            fired["risk_compliance"] = cfg.regulated_pct
        if factors.integrations == Integrations.MULTIPLE:
            fired["integrations"] = cfg.multiple_integrations_pct
        if factors.clarity == Clarity.LOW:
            fired["clarity"] = cfg.low_clarity_pct
        if factors.ambiguity == Ambiguity.SOME:
            fired["ambiguity"] = cfg.ambiguity_pct
        return fired

    def compose(self, factors: DifficultyFactors) -> float:
        """Compose the multiplier product for a set of factors."""
        total_pct = sum(self.deltas(factors).values())
        mp = min(1.0 + total_pct / 100.0, self.config.multiplier_cap)

        if not 1.0 <= mp <= self.config.multiplier_cap:
            raise InvariantViolation(
                f"Multiplier product {mp} outside [1.0, {self.config.multiplier_cap}]",
                stage="composing",
            )
        return mp
