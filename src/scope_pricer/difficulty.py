"""Difficulty Inferencer - Phase 2 of the Pricing Engine.

Derives categorical difficulty factors from scope text and intent metadata.
Every factor is total: a scope always yields exactly one value per factor,
defaulting to the normal/standard/none branch.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import DifficultyConfig
from .schema import (
    Ambiguity,
    Clarity,
    DifficultyFactors,
    Integrations,
    Priority,
    RiskCompliance,
    ScopeRecord,
    Urgency,
)


class DifficultyInferencer:
    """Infers difficulty factors from a scope.

    Urgency depends on the reference time, which the caller pins so a run
    can be replayed exactly.
    """

    def __init__(self, config: Optional[DifficultyConfig] = None):
        self.config = config or DifficultyConfig()
        self._regulated = [re.compile(p) for p in self.config.regulated_keywords]
        self._systems = {
            name: [re.compile(p) for p in patterns]
            for name, patterns in self.config.integration_systems.items()
        }
        self._generic_integrations = [re.compile(p) for p in self.config.generic_integration_keywords]
        self._ambiguity = [re.compile(p) for p in self.config.ambiguity_keywords]

    def infer(self, scope: ScopeRecord, reference_time: datetime) -> DifficultyFactors:
        """Derive all difficulty factors for a scope."""
        return DifficultyFactors(
            clarity=self._derive_clarity(scope),
            urgency=self._derive_urgency(scope, reference_time),
            risk_compliance=self._derive_risk(scope),
            integrations=self._derive_integrations(scope),
            ambiguity=self._derive_ambiguity(scope),
        )

    def _derive_clarity(self, scope: ScopeRecord) -> Clarity:
        intent = scope.intent
        threshold = self.config.min_detail_chars
        if len(intent.goal.strip()) < threshold or len(intent.usage_context.strip()) < threshold:
            return Clarity.LOW
        return Clarity.NORMAL

    def _derive_urgency(self, scope: ScopeRecord, reference_time: datetime) -> Urgency:
        intent = scope.intent
        if intent.priority == Priority.SPEED:
            return Urgency.URGENT

        if intent.deadline is not None:
            now = reference_time
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            horizon = timedelta(days=self.config.urgent_horizon_days)
            if intent.deadline - now < horizon:
                return Urgency.URGENT

        return Urgency.NORMAL

    def _derive_risk(self, scope: ScopeRecord) -> RiskCompliance:
        text = self._intent_text(scope)
        if any(p.search(text) for p in self._regulated):
            return RiskCompliance.REGULATED
        return RiskCompliance.STANDARD

    def _derive_integrations(self, scope: ScopeRecord) -> Integrations:
        return Integrations.MULTIPLE if len(self.integrated_systems(scope)) > 1 else Integrations.FEW

    def integrated_systems(self, scope: ScopeRecord) -> list[str]:
        """Names of the third-party systems the scope text mentions.

        "HubSpot CRM" is one system. Generic terms such as "API" or "CRM"
        stand for a single unnamed system when no named one appears.
        """
        text = scope.all_text()
        named = [
            name for name, patterns in self._systems.items()
            if any(p.search(text) for p in patterns)
        ]
        if not named and any(p.search(text) for p in self._generic_integrations):
            return ["unnamed"]
        return named

    def _derive_ambiguity(self, scope: ScopeRecord) -> Ambiguity:
        text = self._intent_text(scope)
        if any(p.search(text) for p in self._ambiguity):
            return Ambiguity.SOME
        return Ambiguity.NONE

    @staticmethod
    def _intent_text(scope: ScopeRecord) -> str:
        return f"{scope.intent.goal} {scope.intent.usage_context}".lower()
