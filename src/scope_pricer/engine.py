"""Pricing Engine - pipeline orchestrator.

Sequences the pricing phases in a fixed order and exposes the single entry
point ``PricingEngine.estimate(scope, actor)``:

    DECOMPOSING -> INFERRING -> COMPOSING -> AGGREGATING -> TIERING
    -> RECORDING -> DONE

Stages only move forward. A failure in any stage aborts the call; no
partial estimate is ever returned.
"""

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import TypeAdapter, ValidationError

from .aggregator import FieldAggregator
from .audit import AuditRecorder, AuditStore, EstimationRun, InMemoryAuditStore
from .classifier import EffortClassifier
from .config import PricingConfig
from .decomposer import ScopeDecomposer
from .difficulty import DifficultyInferencer
from .errors import InputValidationError, InvariantViolation, PricingError
from .explainer import BreakdownExplainer
from .multiplier import MultiplierComposer
from .rules import RULES_VERSION
from .schema import (
    AuditEntry,
    BadgeLevel,
    PipelineStage,
    PriceEstimate,
    ScopeRecord,
)
from .tiering import TierEngine

logger = logging.getLogger(__name__)

# ISO 8601 parsing that accepts a trailing "Z" on every supported Python.
_DATETIME = TypeAdapter(datetime)

ScopeInput = Union[ScopeRecord, Mapping[str, Any]]


class PricingEngine:
    """Deterministic scope pricing pipeline.

    The configuration is injected and read-only, so one engine may serve
    concurrent calls. The audit store is the only shared mutable resource.
    """

    def __init__(
        self,
        config: Optional[PricingConfig] = None,
        audit_store: Optional[AuditStore] = None,
    ):
        self.config = config or PricingConfig()
        self.audit_store = audit_store if audit_store is not None else InMemoryAuditStore()

        self.classifier = EffortClassifier(self.config.effort)
        self.decomposer = ScopeDecomposer(self.classifier)
        self.inferencer = DifficultyInferencer(self.config.difficulty)
        self.composer = MultiplierComposer(self.config.difficulty)
        self.aggregator = FieldAggregator(self.config.rates)
        self.tier_engine = TierEngine(self.config.tiers, self.config.caps)
        self.explainer = BreakdownExplainer()
        self.recorder = AuditRecorder(self.audit_store)

    def estimate(
        self,
        scope: Optional[ScopeInput],
        actor: str,
        reference_time: Optional[Union[datetime, str]] = None,
    ) -> PriceEstimate:
        """Price a scope and record the run.

        Args:
            scope: Scope record, or a mapping validated into one
            actor: Identity of whoever triggered the run
            reference_time: "Now" used for deadline urgency; defaults to the
                current UTC time and is captured in the audit entry

        Returns:
            The final PriceEstimate, carrying its audit entry id

        Raises:
            InputValidationError: Missing scope, empty field, malformed deadline
            InvariantViolation: A computed value broke a pricing invariant
            AuditWriteError: The audit entry could not be persisted
        """
        record = self.validate(scope)
        if not actor or not str(actor).strip():
            raise InputValidationError("actor is required")
        ref = self._reference_time(reference_time)

        logger.info("Pricing scope %s for %s", record.scope_id, actor)
        estimate = self._compute(record, ref)

        try:
            audit_id = self.recorder.record(EstimationRun(
                actor=str(actor).strip(),
                scope=record,
                estimate=estimate,
                rules_version=RULES_VERSION,
                config_fingerprint=self.config.fingerprint(),
            ))
        except PricingError as e:
            e.stage = e.stage or PipelineStage.RECORDING.value
            raise

        logger.debug("Stage %s", PipelineStage.DONE.value)
        logger.info(
            "Priced scope %s: low=%.0f medium=%.0f high=%.0f (audit %s)",
            record.scope_id, estimate.final_low, estimate.final_medium, estimate.final_high, audit_id,
        )
        return estimate.model_copy(update={"audit_id": audit_id})

    def replay(self, entry: AuditEntry) -> PriceEstimate:
        """Recompute an audited run from its scope snapshot and reference time.

        Nothing is written to the audit store.
        """
        if entry.rules_version != RULES_VERSION:
            logger.warning(
                "Entry %s was priced with rules %s; replaying with %s",
                entry.entry_id, entry.rules_version, RULES_VERSION,
            )
        if entry.config_fingerprint != self.config.fingerprint():
            logger.warning("Entry %s was priced with a different configuration", entry.entry_id)
        return self._compute(entry.scope, entry.reference_time)

    def verify(self, entry: AuditEntry) -> list[str]:
        """Replay an entry and list every value that no longer matches."""
        replayed = self.replay(entry)
        mismatches = []
        checks = {
            "twu": (entry.twu, replayed.twu),
            "mp": (entry.mp, replayed.mp),
            "bpv": (entry.bpv, replayed.bpv),
            "raw_tiers": (entry.raw_tiers, replayed.raw_tiers),
            "final_tiers": (entry.final_tiers, replayed.final_tiers),
            "difficulty_factors": (entry.difficulty_factors, replayed.difficulty_factors),
            "capping_flags": (entry.capping_flags, replayed.capping),
        }
        for name, (stored, current) in checks.items():
            if stored != current:
                mismatches.append(f"{name}: recorded {stored!r}, replayed {current!r}")
        return mismatches

    def validate(self, scope: Optional[ScopeInput]) -> ScopeRecord:
        """Validate caller input into a ScopeRecord before any stage runs."""
        if scope is None:
            raise InputValidationError("scope is required")
        if isinstance(scope, ScopeRecord):
            return scope
        if not isinstance(scope, Mapping):
            raise InputValidationError(f"scope must be a mapping, got {type(scope).__name__}")
        try:
            return ScopeRecord.model_validate(scope)
        except ValidationError as e:
            raise InputValidationError(_summarize_errors(e)) from e

    def _compute(self, scope: ScopeRecord, reference_time: datetime) -> PriceEstimate:
        stage = PipelineStage.DECOMPOSING
        try:
            logger.debug("Stage %s", stage.value)
            units = self.decomposer.decompose(scope)

            stage = PipelineStage.INFERRING
            logger.debug("Stage %s", stage.value)
            factors = self.inferencer.infer(scope, reference_time)

            stage = PipelineStage.COMPOSING
            logger.debug("Stage %s", stage.value)
            mp = self.composer.compose(factors)

            stage = PipelineStage.AGGREGATING
            logger.debug("Stage %s", stage.value)
            aggregations, bpv = self.aggregator.aggregate(units, mp)
            twu = math.fsum(a.twu for a in aggregations)
            if twu <= 0 or bpv <= 0:
                raise InvariantViolation(f"Non-positive effort (twu={twu}, bpv={bpv})")

            stage = PipelineStage.TIERING
            logger.debug("Stage %s", stage.value)
            tiers = self.tier_engine.tier(bpv)
        except PricingError as e:
            e.stage = e.stage or stage.value
            raise

        breakdown = self.explainer.explain(twu, aggregations, factors, mp)
        return PriceEstimate(
            scope_id=scope.scope_id,
            effort_units=units,
            field_aggregations=aggregations,
            twu=twu,
            mp=mp,
            bpv=bpv,
            low=tiers.raw.low,
            medium=tiers.raw.medium,
            high=tiers.raw.high,
            final_low=tiers.final.low,
            final_medium=tiers.final.medium,
            final_high=tiers.final.high,
            breakdown=breakdown,
            difficulty_factors=factors,
            capping=tiers.capping,
            min_cap=tiers.min_cap,
            max_cap=tiers.max_cap,
            reference_time=reference_time,
        )

    @staticmethod
    def _reference_time(value: Optional[Union[datetime, str]]) -> datetime:
        if value is None:
            return datetime.now(timezone.utc)
        if isinstance(value, str):
            try:
                value = _DATETIME.validate_python(value)
            except ValidationError as e:
                raise InputValidationError(f"Malformed reference time: {value!r}") from e
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def price_for_badge(estimate: PriceEstimate, badge: Union[BadgeLevel, str, None]) -> float:
    """Select the final tier a freelancer with this badge is shown.

    Badge levels outside LOW/MEDIUM/HIGH fall back to the medium tier.
    """
    level = badge
    if not isinstance(level, BadgeLevel):
        try:
            level = BadgeLevel(str(badge).strip().upper())
        except ValueError:
            level = BadgeLevel.MEDIUM

    if level == BadgeLevel.LOW:
        return estimate.final_low
    if level == BadgeLevel.HIGH:
        return estimate.final_high
    return estimate.final_medium


def load_scope(path: Union[str, Path]) -> dict[str, Any]:
    """Load a scope record from a JSON file.

    A file holding a one-element list is unwrapped.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, list):
        if len(data) != 1:
            raise InputValidationError(f"{path}: expected exactly one scope, found {len(data)}")
        data = data[0]
    if not isinstance(data, dict):
        raise InputValidationError(f"{path}: scope must be a JSON object")
    return data


def validate_scope(path: Union[str, Path]) -> tuple[bool, list[str]]:
    """Validate a scope file without pricing it.

    Returns:
        (is_valid, issues)
    """
    issues = []
    try:
        data = load_scope(path)
    except json.JSONDecodeError as e:
        return False, [f"Invalid JSON: {e}"]
    except InputValidationError as e:
        return False, [e.reason]

    try:
        record = ScopeRecord.model_validate(data)
    except ValidationError as e:
        return False, _summarize_errors(e).split("; ")

    if not record.in_scope_items and not record.deliverables:
        issues.append("Scope has no line items; a single synthetic unit will be priced")
    if record.intent.deadline is None:
        issues.append("No deadline given; urgency is inferred from priority only")

    return True, issues


def _summarize_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "scope"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)
