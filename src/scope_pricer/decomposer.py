"""Scope Decomposer - Phase 1 of the Pricing Engine.

Walks a scope's in-scope items and deliverables, drops deliverables that
restate an in-scope line, and classifies what remains into effort units.
"""

import logging
from typing import Optional

from .classifier import EffortClassifier
from .schema import EffortUnit, ScopeItem, ScopeRecord

logger = logging.getLogger(__name__)

SYNTHETIC_DESCRIPTION = "standard project scope"


class ScopeDecomposer:
    """Turns a scope record into a flat, never-empty list of effort units.

    In-scope items are the primary source. A deliverable is dropped when its
    normalized text contains, or is contained in, any line already seen.
    """

    def __init__(self, classifier: Optional[EffortClassifier] = None):
        self.classifier = classifier or EffortClassifier()

    def decompose(self, scope: ScopeRecord) -> list[EffortUnit]:
        """Decompose a scope into effort units."""
        units: list[EffortUnit] = []
        seen: list[str] = []

        for item in scope.in_scope_items:
            normalized = self._normalize(item.text)
            if not normalized or normalized in seen:
                continue
            units.append(self._classify(scope, item))
            seen.append(normalized)

        for item in scope.deliverables:
            normalized = self._normalize(item.text)
            if not normalized:
                continue
            if any(normalized in s or s in normalized for s in seen):
                logger.debug("Skipping deliverable %r already covered by scope", item.text)
                continue
            units.append(self._classify(scope, item))
            seen.append(normalized)

        if not units:
            units.append(EffortUnit(
                field=self.classifier.normalize_field(scope.field),
                item_description=SYNTHETIC_DESCRIPTION,
                eu_value=self.classifier.config.synthetic_unit_eu,
            ))
            logger.info("Scope has no line items; using one synthetic unit")

        return units

    def _classify(self, scope: ScopeRecord, item: ScopeItem) -> EffortUnit:
        classification = self.classifier.classify(
            item.field or scope.field,
            item.text,
            item.complexity,
        )
        return EffortUnit(
            field=classification.field,
            item_description=item.text.strip(),
            eu_value=classification.value,
            classification=classification,
        )

    @staticmethod
    def _normalize(text: str) -> str:
        return text.strip().lower()
