"""Effort Classifier - Phase 1a of the Pricing Engine.

Maps one free-text scope line to a (field, item type, complexity) triple
and resolves it to effort units using progressively looser matching.
"""

import logging
from typing import Optional

from .config import EffortConfig
from .rules import (
    CANONICAL_FIELDS,
    COMPLEXITY_RULES,
    DEFAULT_ITEM_TYPES,
    FIELD_RULES,
    ITEM_TYPE_RULES,
    QUANTITY_LABEL_WORDS,
    QUANTITY_PATTERN,
    QUANTITY_UNIT_WORDS,
    UNKNOWN_ITEM_TYPE,
    WORK_UNIT_MAPPINGS,
    WorkUnitMapping,
    first_match,
    is_count_noun,
)
from .schema import Classification, Complexity, Fallback, Matched, MatchLevel

logger = logging.getLogger(__name__)


class EffortClassifier:
    """Resolves scope lines to effort units.

    Resolution order (first match wins):
    1. Exact field + item type + complexity
    2. Field + item type at standard complexity
    3. Average EU for the field, discounted for conservatism
    4. Global fallback constant

    Every value is capped at the per-item ceiling. Misses never raise.
    """

    def __init__(
        self,
        config: Optional[EffortConfig] = None,
        mappings: tuple[WorkUnitMapping, ...] = WORK_UNIT_MAPPINGS,
    ):
        self.config = config or EffortConfig()
        self._exact: dict[tuple[str, str, Complexity], float] = {}
        self._by_field: dict[str, list[float]] = {}
        for m in mappings:
            self._exact[(m.field, m.item_type, m.complexity)] = m.eu_value
            self._by_field.setdefault(m.field, []).append(m.eu_value)

    def normalize_field(self, field: str) -> str:
        """Normalize a field name to a canonical pricing field.

        Unrecognised names are returned trimmed but otherwise unchanged.
        """
        text = field.strip()
        lowered = text.lower()
        for canonical in CANONICAL_FIELDS:
            if canonical.lower() == lowered:
                return canonical
        return first_match(FIELD_RULES, lowered) or text

    def infer_item_type(self, item_text: str, canonical_field: str) -> str:
        """Infer the item type using the rules scoped to the field."""
        rules = ITEM_TYPE_RULES.get(canonical_field)
        if rules is None:
            return UNKNOWN_ITEM_TYPE
        matched = first_match(rules, item_text.lower())
        return matched or DEFAULT_ITEM_TYPES[canonical_field]

    def infer_complexity(self, item_text: str) -> Complexity:
        """Infer complexity from wording; standard unless a keyword fires."""
        matched = first_match(COMPLEXITY_RULES, item_text.lower())
        return Complexity(matched) if matched else Complexity.STANDARD

    def infer_quantity(self, item_text: str) -> int:
        """Leading work-item count in the text, 1 when none is stated.

        "Write 2 blog posts" counts two posts. "Phase 2 landing page" and
        "500 words blog post" state a label and a size, not a count.
        """
        match = QUANTITY_PATTERN.match(item_text.lower())
        if not match:
            return 1
        lead, count, phrase = match.group(1).split(), int(match.group(2)), match.group(3).split()
        if lead and lead[-1] in QUANTITY_LABEL_WORDS:
            return 1
        if phrase[0] in QUANTITY_UNIT_WORDS or not any(is_count_noun(w) for w in phrase):
            return 1
        return max(1, min(count, self.config.max_quantity))

    def classify(
        self,
        field: str,
        item_text: str,
        complexity: Optional[Complexity] = None,
    ) -> Classification:
        """Classify one scope line and resolve its effort units."""
        canonical = self.normalize_field(field)
        item_type = self.infer_item_type(item_text, canonical)
        item_complexity = complexity or self.infer_complexity(item_text)
        quantity = self.infer_quantity(item_text)

        resolved = self._resolve(canonical, item_type, item_complexity)
        if resolved is None:
            value = self._cap(self.config.global_fallback_eu * quantity)
            reason = f"No work-unit mapping for field {field!r} / item {item_text!r}"
            logger.warning("%s; using conservative %.2f EU", reason, value)
            return Fallback(
                value=value,
                field=canonical,
                item_type=item_type,
                complexity=item_complexity,
                reason=reason,
                quantity=quantity,
            )

        per_item, level = resolved
        value = self._cap(per_item * quantity)
        logger.debug(
            "Classified %r as %s/%s/%s (%s) -> %.3f EU",
            item_text, canonical, item_type, item_complexity.value, level.value, value,
        )
        return Matched(
            value=value,
            field=canonical,
            item_type=item_type,
            complexity=item_complexity,
            match_level=level,
            quantity=quantity,
        )

    def _resolve(
        self,
        field: str,
        item_type: str,
        complexity: Complexity,
    ) -> Optional[tuple[float, MatchLevel]]:
        exact = self._exact.get((field, item_type, complexity))
        if exact is not None:
            return exact, MatchLevel.EXACT

        standard = self._exact.get((field, item_type, Complexity.STANDARD))
        if standard is not None:
            return standard, MatchLevel.STANDARD_COMPLEXITY

        field_values = self._by_field.get(field)
        if field_values:
            average = sum(field_values) / len(field_values)
            return average * self.config.field_average_discount, MatchLevel.FIELD_AVERAGE

        return None

    def _cap(self, value: float) -> float:
        return min(value, self.config.max_eu_per_item)
