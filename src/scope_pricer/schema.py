"""Pydantic models for the Scope Pricing Engine.

Input schemas for scope records and output schemas for price estimates
and audit entries. Every number in a PriceEstimate is carried with the
intermediate values that produced it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class Priority(str, Enum):
    """Client-stated priority for the work."""
    SPEED = "SPEED"
    QUALITY = "QUALITY"
    DEPTH = "DEPTH"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["Priority"]:
        """Parse priority from string (case-insensitive)."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class Complexity(str, Enum):
    """Complexity band of a single work item.

    basic/standard/complex are inferred from text. The remaining bands only
    exist for item types whose effort scales by depth rather than polish.
    """
    BASIC = "basic"
    STANDARD = "standard"
    COMPLEX = "complex"
    LIGHT = "light"
    DEEP = "deep"
    CORE = "core"
    FULL = "full"


class MatchLevel(str, Enum):
    """How an effort value was resolved from the work-unit table."""
    EXACT = "exact"
    STANDARD_COMPLEXITY = "standard_complexity"
    FIELD_AVERAGE = "field_average"
    GLOBAL_FALLBACK = "global_fallback"


class Clarity(str, Enum):
    LOW = "low"
    NORMAL = "normal"


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class RiskCompliance(str, Enum):
    STANDARD = "standard"
    REGULATED = "regulated"


class Integrations(str, Enum):
    FEW = "few"
    MULTIPLE = "multiple"


class Ambiguity(str, Enum):
    NONE = "none"
    SOME = "some"


class RateSource(str, Enum):
    """Where a field's monetary rate came from."""
    TABLE = "table"
    ALIAS = "alias"
    AVERAGE = "average"


class BadgeLevel(str, Enum):
    """Verified freelancer skill level."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class PipelineStage(str, Enum):
    """Stages of one estimation run, in execution order."""
    DECOMPOSING = "decomposing"
    INFERRING = "inferring"
    COMPOSING = "composing"
    AGGREGATING = "aggregating"
    TIERING = "tiering"
    RECORDING = "recording"
    DONE = "done"


# =============================================================================
# Scope Input Models
# =============================================================================


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScopeItem(BaseModel):
    """A single scope line item.

    Plain strings in a scope file are coerced into this model. A per-item
    field lets one scope span several domain fields.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    field: Optional[str] = None
    complexity: Optional[Complexity] = None


class IntentMetadata(BaseModel):
    """Client intent captured alongside the scope."""
    model_config = ConfigDict(frozen=True)

    goal: str = ""
    usage_context: str = ""
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed = Priority.from_string(value)
            if parsed is None and value.strip():
                raise ValueError(f"Unknown priority: {value!r}")
            return parsed
        return value

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    @field_validator("goal", "usage_context", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ScopeRecord(BaseModel):
    """Scope of work as produced by the scope-authoring collaborator."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    scope_id: Optional[str] = None
    field: str
    in_scope_items: list[ScopeItem] = Field(default_factory=list)
    deliverables: list[ScopeItem] = Field(default_factory=list)
    intent: IntentMetadata = Field(default_factory=IntentMetadata)

    @field_validator("field")
    @classmethod
    def _field_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("field must be a non-empty domain field name")
        return value.strip()

    @field_validator("in_scope_items", "deliverables", mode="before")
    @classmethod
    def _coerce_items(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [{"text": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("intent", mode="before")
    @classmethod
    def _none_intent(cls, value: Any) -> Any:
        return {} if value is None else value

    def all_text(self) -> str:
        """All free text in the scope, lowercased, for keyword detection."""
        parts = [item.text for item in self.in_scope_items]
        parts.extend(item.text for item in self.deliverables)
        parts.append(self.intent.goal)
        parts.append(self.intent.usage_context)
        return " ".join(parts).lower()


# =============================================================================
# Classification Result Models
# =============================================================================


class Matched(BaseModel):
    """Effort value resolved from the work-unit table."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["matched"] = "matched"
    value: float = Field(..., ge=0)
    field: str
    item_type: str
    complexity: Complexity
    match_level: MatchLevel
    quantity: int = 1


class Fallback(BaseModel):
    """Conservative effort value used when no table entry applies."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["fallback"] = "fallback"
    value: float = Field(..., ge=0)
    field: str
    item_type: str
    complexity: Complexity
    reason: str
    quantity: int = 1
    match_level: MatchLevel = MatchLevel.GLOBAL_FALLBACK


Classification = Union[Matched, Fallback]


# =============================================================================
# Pipeline Intermediate Models
# =============================================================================


class EffortUnit(BaseModel):
    """One scope line resolved to effort units."""
    model_config = ConfigDict(frozen=True)

    field: str
    item_description: str
    eu_value: float = Field(..., ge=0)
    classification: Optional[Classification] = None

    @property
    def is_fallback(self) -> bool:
        return isinstance(self.classification, Fallback)


class DifficultyFactors(BaseModel):
    """Categorical difficulty factors derived from a scope."""
    model_config = ConfigDict(frozen=True)

    clarity: Clarity = Clarity.NORMAL
    urgency: Urgency = Urgency.NORMAL
    risk_compliance: RiskCompliance = RiskCompliance.STANDARD
    integrations: Integrations = Integrations.FEW
    ambiguity: Ambiguity = Ambiguity.NONE


class FieldAggregation(BaseModel):
    """Monetized effort for one domain field."""
    model_config = ConfigDict(frozen=True)

    field: str
    twu: float  # Total work units
    mp: float  # Multiplier product
    ei: float  # Effort index = twu * mp
    rate: float  # Currency per EU
    field_value: float  # ei * rate
    rate_source: RateSource = RateSource.TABLE


class TierPrices(BaseModel):
    """Low/medium/high price triple."""
    model_config = ConfigDict(frozen=True)

    low: float
    medium: float
    high: float


class CappingFlags(BaseModel):
    """Whether each tier was clamped into the global band."""
    model_config = ConfigDict(frozen=True)

    low_capped: bool = False
    medium_capped: bool = False
    high_capped: bool = False


class TierResult(BaseModel):
    """Raw and clamped tiers for one base project value."""
    model_config = ConfigDict(frozen=True)

    raw: TierPrices
    final: TierPrices
    capping: CappingFlags
    min_cap: float
    max_cap: float


# =============================================================================
# Output Models
# =============================================================================


class PriceBreakdown(BaseModel):
    """Human-readable explanation of an estimate."""
    model_config = ConfigDict(frozen=True)

    scope_size: str
    complexity_drivers: list[str] = Field(default_factory=list)
    recommended: BadgeLevel = BadgeLevel.MEDIUM


class PriceEstimate(BaseModel):
    """Complete output of one estimation run."""
    model_config = ConfigDict(frozen=True)

    scope_id: Optional[str] = None
    effort_units: list[EffortUnit]
    field_aggregations: list[FieldAggregation]
    twu: float
    mp: float
    bpv: float

    # Price tiers before and after the global clamp
    low: float
    medium: float
    high: float
    final_low: float
    final_medium: float
    final_high: float

    breakdown: PriceBreakdown
    difficulty_factors: DifficultyFactors
    capping: CappingFlags
    min_cap: float
    max_cap: float
    reference_time: datetime

    audit_id: Optional[str] = None

    @property
    def raw_tiers(self) -> TierPrices:
        return TierPrices(low=self.low, medium=self.medium, high=self.high)

    @property
    def final_tiers(self) -> TierPrices:
        return TierPrices(low=self.final_low, medium=self.final_medium, high=self.final_high)

    @property
    def fallback_count(self) -> int:
        """Number of effort units resolved by the global fallback."""
        return sum(1 for unit in self.effort_units if unit.is_fallback)


class AuditEntry(BaseModel):
    """Immutable record of one estimation run.

    This is the single source of truth for "why was this price X" queries.
    The scope snapshot and pinned reference time make every entry replayable.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: str
    actor: str
    recorded_at: datetime
    reference_time: datetime
    scope_id: Optional[str] = None
    scope: ScopeRecord

    effort_units: list[EffortUnit]
    field_aggregations: list[FieldAggregation]
    twu: float
    mp: float
    bpv: float
    raw_tiers: TierPrices
    final_tiers: TierPrices
    difficulty_factors: DifficultyFactors
    capping_flags: CappingFlags
    breakdown: PriceBreakdown

    rules_version: str
    config_fingerprint: str
