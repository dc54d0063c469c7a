"""Field Aggregator - Phase 4 of the Pricing Engine.

Sums effort units per field, applies the project-wide multiplier product
and monetizes each field through the rate table.

    EI    = TWU x MP
    value = EI x rate
    BPV   = sum of field values
"""

import logging
import math
from typing import Optional

from .config import RateTableConfig
from .schema import EffortUnit, FieldAggregation, RateSource

logger = logging.getLogger(__name__)


class FieldAggregator:
    """Aggregates effort units into field values and a base project value.

    The same MP applies to every field: difficulty is a property of the
    whole project. Fields are emitted in sorted order and totals use
    math.fsum, so input order never changes the result.
    """

    def __init__(self, config: Optional[RateTableConfig] = None):
        self.config = config or RateTableConfig()

    def get_base_rate(self, field: str) -> tuple[float, RateSource]:
        """Look up the rate for a field.

        Direct table match, then client alias, then the rounded average of
        all configured rates.
        """
        rates = self.config.base_rates
        if field in rates:
            return float(rates[field]), RateSource.TABLE

        mapped = self.config.field_aliases.get(field)
        if mapped and mapped in rates:
            return float(rates[mapped]), RateSource.ALIAS

        average = float(round(math.fsum(rates.values()) / len(rates)))
        logger.warning("No base rate for field %r; using average %.0f", field, average)
        return average, RateSource.AVERAGE

    def aggregate(
        self,
        units: list[EffortUnit],
        mp: float,
    ) -> tuple[list[FieldAggregation], float]:
        """Aggregate units per field and return (aggregations, BPV)."""
        by_field: dict[str, list[float]] = {}
        for unit in units:
            by_field.setdefault(unit.field, []).append(unit.eu_value)

        aggregations = []
        for field in sorted(by_field):
            twu = math.fsum(by_field[field])
            rate, source = self.get_base_rate(field)
            ei = twu * mp
            aggregations.append(FieldAggregation(
                field=field,
                twu=twu,
                mp=mp,
                ei=ei,
                rate=rate,
                field_value=ei * rate,
                rate_source=source,
            ))

        bpv = math.fsum(a.field_value for a in aggregations)
        return aggregations, bpv
