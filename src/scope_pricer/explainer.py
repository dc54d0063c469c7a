"""Explainer - Phase 6 of the Pricing Engine.

Generates the human-readable breakdown shown with every estimate:
scope-size label, complexity drivers and the recommended tier.
"""

from .schema import (
    Ambiguity,
    BadgeLevel,
    Clarity,
    DifficultyFactors,
    FieldAggregation,
    Integrations,
    PriceBreakdown,
    RiskCompliance,
    Urgency,
)


class BreakdownExplainer:
    """Explains an estimate in plain language.

    Principles:
    - Only factors that actually fired are listed
    - Driver order is fixed so identical runs read identically
    """

    # Upper bounds (exclusive) on total TWU for each size label
    SIZE_LABELS = (
        (2.0, "Small scope"),
        (5.0, "Medium scope"),
        (10.0, "Large scope"),
    )
    LARGEST_LABEL = "Very large scope"

    RECOMMENDED_TIER = BadgeLevel.MEDIUM

    # Multiplier products above this are called out as a driver of their own
    HIGH_MULTIPLIER_THRESHOLD = 1.2

    def explain(
        self,
        twu: float,
        aggregations: list[FieldAggregation],
        factors: DifficultyFactors,
        mp: float = 1.0,
    ) -> PriceBreakdown:
        """Build the breakdown for one run."""
        return PriceBreakdown(
            scope_size=self.scope_size_label(twu, len(aggregations)),
            complexity_drivers=self.complexity_drivers(factors, mp),
            recommended=self.RECOMMENDED_TIER,
        )

    def scope_size_label(self, twu: float, field_count: int) -> str:
        label = self.LARGEST_LABEL
        for upper, name in self.SIZE_LABELS:
            if twu < upper:
                label = name
                break
        if field_count > 1:
            label += f" across {field_count} fields"
        return label

    def complexity_drivers(self, factors: DifficultyFactors, mp: float = 1.0) -> list[str]:
        drivers = []
        if factors.urgency == Urgency.URGENT:
            drivers.append("Urgent deadline")
        if factors.risk_compliance == RiskCompliance.REGULATED:
            drivers.append("Regulated industry requirements")
        if factors.integrations == Integrations.MULTIPLE:
            drivers.append("Multiple integrations")
        if factors.ambiguity == Ambiguity.SOME:
            drivers.append("Content/assets to be provided")
        if factors.clarity == Clarity.LOW:
            drivers.append("Unclear requirements")
        if mp > self.HIGH_MULTIPLIER_THRESHOLD:
            drivers.append("High complexity multiplier")
        return drivers

    def format_breakdown(self, breakdown: PriceBreakdown) -> str:
        """Format a breakdown as plain text."""
        drivers = breakdown.complexity_drivers or ["Standard complexity"]
        lines = [breakdown.scope_size, "Complexity drivers:"]
        lines.extend(f"  - {d}" for d in drivers)
        lines.append(f"Recommended tier: {breakdown.recommended.value}")
        return "\n".join(lines)
