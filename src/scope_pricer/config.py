"""Centralized configuration management for the pricing engine.

Rate tables, tier ratios, global caps and difficulty adjustments are
plain data. A PricingConfig is immutable once built and is injected into
the engine, so alternate tables never leak between callers.
"""

import hashlib
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .rules import FIELD_ALIASES


# Absolute ceiling for the multiplier product. Configured caps may be lower.
MAX_MULTIPLIER_CAP = 1.25

# Client-supplied material an ambiguity phrase has to refer to.
_ASSET_NOUNS = (
    r"\b(?:content|copy|text|assets?|photos?|photographs?|images?|imagery|logos?"
    r"|materials?|videos?|graphics?|icons?|brand guidelines)"
)


class RateTableConfig(BaseModel):
    """Currency per effort unit for each pricing field."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    currency: str = Field("INR", description="Currency code for all monetary values")
    base_rates: dict[str, float] = Field(
        default_factory=lambda: {
            "UI/UX Design": 5000,
            "Web Frontend / WordPress": 4000,
            "Backend / Full-Stack": 6000,
            "Mobile App Development": 6500,
            "Graphic Design / Branding": 2000,
            "Motion / Video / Advanced Visuals": 5000,
            "Content Writing & Strategy": 2000,
            "Digital Marketing (SEO/Ads/Social)": 3000,
            "Data / Automation / Integrations": 7000,
            "QA / Testing / Optimization": 3000,
        },
        description="Rate per EU keyed by canonical field name",
    )
    field_aliases: dict[str, str] = Field(
        default_factory=lambda: dict(FIELD_ALIASES),
        description="Client field names mapped to canonical field names",
    )

    @field_validator("base_rates")
    @classmethod
    def _rates_positive(cls, value: dict[str, float]) -> dict[str, float]:
        if not value:
            raise ValueError("base_rates must contain at least one field")
        for field, rate in value.items():
            if rate <= 0:
                raise ValueError(f"base rate for {field!r} must be positive")
        return value


class TierConfig(BaseModel):
    """Fixed ratios applied to the base project value."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    low_ratio: float = Field(0.85, gt=0, description="Entry tier multiplier on BPV")
    medium_ratio: float = Field(1.00, gt=0, description="Standard tier multiplier on BPV")
    high_ratio: float = Field(1.20, gt=0, description="Premium tier multiplier on BPV")
    rounding_increment: float = Field(50, gt=0, description="Tiers round to the nearest increment")

    @model_validator(mode="after")
    def _ratios_ascending(self) -> "TierConfig":
        if not (self.low_ratio <= self.medium_ratio <= self.high_ratio):
            raise ValueError("tier ratios must satisfy low <= medium <= high")
        return self


class CapsConfig(BaseModel):
    """Global price floor and ceiling."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    min_price: float = Field(500, ge=0, description="No tier is priced below this")
    max_price: float = Field(2_000_000, gt=0, description="No tier is priced above this")

    @model_validator(mode="after")
    def _band_valid(self) -> "CapsConfig":
        if self.min_price >= self.max_price:
            raise ValueError("min_price must be lower than max_price")
        return self


class EffortConfig(BaseModel):
    """Effort classification limits."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    max_eu_per_item: float = Field(3.0, gt=0, description="Ceiling on any single line item")
    field_average_discount: float = Field(
        0.75, gt=0, le=1,
        description="Conservatism factor on the field-average fallback",
    )
    global_fallback_eu: float = Field(0.5, ge=0, description="EU used when nothing matches")
    max_quantity: int = Field(10, ge=1, description="Largest leading item count honoured")
    synthetic_unit_eu: float = Field(1.0, gt=0, description="EU of the unit emitted for an empty scope")


class DifficultyConfig(BaseModel):
    """Difficulty factor thresholds, keywords and percentage deltas."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    urgent_horizon_days: float = Field(7, ge=0, description="Deadlines closer than this are urgent")
    min_detail_chars: int = Field(
        20, ge=0,
        description="Goal or usage text shorter than this marks clarity as low",
    )

    urgent_pct: float = Field(10.0, ge=0)
    regulated_pct: float = Field(8.0, ge=0)
    multiple_integrations_pct: float = Field(5.0, ge=0)
    low_clarity_pct: float = Field(5.0, ge=0)
    ambiguity_pct: float = Field(3.0, ge=0)
    multiplier_cap: float = Field(MAX_MULTIPLIER_CAP, description="Hard ceiling on the multiplier product")

    regulated_keywords: list[str] = Field(default_factory=lambda: [
        r"health ?care", r"medical", r"patient", r"clinic", r"hospital", r"\bhipaa\b",
        r"financ", r"banking", r"\bbank\b", r"fintech", r"insurance", r"\bpci\b",
        r"legal", r"law firm", r"government", r"public sector", r"\bgdpr\b",
        r"compliance", r"regulated", r"regulatory",
    ])
    # One entry per third-party system; any of its patterns counts it once.
    integration_systems: dict[str, list[str]] = Field(default_factory=lambda: {
        "stripe": [r"stripe"],
        "paypal": [r"paypal"],
        "razorpay": [r"razorpay"],
        "shopify": [r"shopify"],
        "woocommerce": [r"woocommerce"],
        "salesforce": [r"salesforce"],
        "hubspot": [r"hubspot"],
        "zoho": [r"zoho"],
        "mailchimp": [r"mailchimp"],
        "sendgrid": [r"sendgrid"],
        "twilio": [r"twilio"],
        "zapier": [r"zapier"],
        "slack": [r"slack"],
        "quickbooks": [r"quickbooks"],
        "xero": [r"\bxero\b"],
        "google analytics": [r"google analytics", r"\bga4\b"],
        "google maps": [r"google maps"],
        "firebase": [r"firebase"],
        "aws": [r"\baws\b", r"amazon web services"],
    })
    # Generic terms name an unnamed system; they count as one only when no
    # named system is mentioned.
    generic_integration_keywords: list[str] = Field(default_factory=lambda: [
        r"\bcrm\b", r"\berp\b", r"payment gateway", r"third[- ]party",
        r"webhook", r"\bapis?\b",
    ])
    ambiguity_keywords: list[str] = Field(default_factory=lambda: [
        _ASSET_NOUNS + r"\b.{0,40}?(?:to be (?:provided|supplied|shared|confirmed|determined)"
        r"|will be (?:provided|supplied|shared|sent)|pending|awaiting|\btbd\b|\btbc\b"
        r"|not yet (?:available|ready|delivered|final))",
        r"(?:will|to) (?:provide|supply|send|share) (?:[a-z]+ ){0,2}" + _ASSET_NOUNS + r"\b",
        r"awaiting (?:[a-z]+ ){0,2}" + _ASSET_NOUNS + r"\b",
    ])

    @field_validator("multiplier_cap")
    @classmethod
    def _cap_in_range(cls, value: float) -> float:
        if not 1.0 <= value <= MAX_MULTIPLIER_CAP:
            raise ValueError(f"multiplier_cap must lie within [1.0, {MAX_MULTIPLIER_CAP}]")
        return value


class PricingConfig(BaseModel):
    """Complete configuration for the pricing engine."""
    model_config = ConfigDict(frozen=True, validate_default=True)

    rates: RateTableConfig = Field(default_factory=RateTableConfig)
    tiers: TierConfig = Field(default_factory=TierConfig)
    caps: CapsConfig = Field(default_factory=CapsConfig)
    effort: EffortConfig = Field(default_factory=EffortConfig)
    difficulty: DifficultyConfig = Field(default_factory=DifficultyConfig)

    def fingerprint(self) -> str:
        """Short stable hash of the configuration, recorded with each audit entry."""
        payload = self.model_dump_json().encode("utf-8")
        return hashlib.sha256(payload).hexdigest()[:16]


# Global config instance (CLI default only; the engine takes an injected config)
_config: Optional[PricingConfig] = None


def get_config() -> PricingConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    """
    global _config
    if _config is None:
        _config = PricingConfig()
    return _config


def load_config(path: Path) -> PricingConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded PricingConfig.
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = PricingConfig.model_validate(data or {})
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = PricingConfig()


def find_config_file() -> Optional[Path]:
    """Find a pricing configuration file.

    Looks in (order of priority):
    1. SCOPE_PRICER_CONFIG environment variable
    2. ./pricing-config.yaml
    3. ./pricing-config.yml
    4. ~/.config/scope-pricer/config.yaml
    """
    env_path = os.environ.get("SCOPE_PRICER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for name in ["pricing-config.yaml", "pricing-config.yml"]:
        path = Path(name)
        if path.exists():
            return path

    user_config = Path.home() / ".config" / "scope-pricer" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    config = PricingConfig()
    data = config.model_dump()

    yaml_content = """# Scope Pricer Configuration
# ==========================
#
# Rate tables, tier ratios, global caps and difficulty adjustments.
# Changing any value changes the config fingerprint recorded in audit entries.
#
# Copy this file to one of these locations:
#   - ./pricing-config.yaml (current directory)
#   - ~/.config/scope-pricer/config.yaml (user config)
#
# Or set the SCOPE_PRICER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)
