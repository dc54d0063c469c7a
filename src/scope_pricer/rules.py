"""Keyword rules and the work-unit map.

Every text-pattern decision the classifier makes is a row in one of the
tables below. Bump RULES_VERSION whenever a row changes; the version is
written into every audit entry.

1 EU = 1 person-day (8 productive hours, mid-level).
"""

import re
from dataclasses import dataclass
from typing import Optional

from .schema import Complexity


RULES_VERSION = "2024.4"


# =============================================================================
# Canonical Fields
# =============================================================================

UI_UX = "UI/UX Design"
WEB_FRONTEND = "Web Frontend / WordPress"
BACKEND = "Backend / Full-Stack"
MOBILE = "Mobile App Development"
GRAPHIC = "Graphic Design / Branding"
MOTION = "Motion / Video / Advanced Visuals"
CONTENT = "Content Writing & Strategy"
MARKETING = "Digital Marketing (SEO/Ads/Social)"
DATA = "Data / Automation / Integrations"
QA = "QA / Testing / Optimization"

CANONICAL_FIELDS = (
    UI_UX,
    WEB_FRONTEND,
    BACKEND,
    MOBILE,
    GRAPHIC,
    MOTION,
    CONTENT,
    MARKETING,
    DATA,
    QA,
)


@dataclass(frozen=True)
class KeywordRule:
    """Maps any matching pattern to a canonical value."""
    patterns: tuple[str, ...]
    value: str

    def matches(self, text: str) -> bool:
        return any(re.search(pattern, text) for pattern in self.patterns)


@dataclass(frozen=True)
class WorkUnitMapping:
    """Effort for one (field, item type, complexity) combination."""
    field: str
    item_type: str
    complexity: Complexity
    eu_value: float


# =============================================================================
# Field Normalization Rules (ordered, first match wins)
# =============================================================================

# Graphic and motion come before UI/UX so "Graphic Design" and
# "Motion Design" do not collapse into UI/UX. Backend/full-stack comes
# before web so "Web Backend" prices as backend work.
FIELD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule((r"graphic", r"branding", r"brand identity", r"\blogo"), GRAPHIC),
    KeywordRule((r"motion", r"video", r"animation"), MOTION),
    KeywordRule((r"\bui\b", r"\bux\b", r"design"), UI_UX),
    KeywordRule((r"backend", r"back-end", r"full[\s-]?stack"), BACKEND),
    KeywordRule((r"\bweb\b", r"website", r"frontend", r"front-end", r"wordpress"), WEB_FRONTEND),
    KeywordRule((r"\bapi\b", r"server"), BACKEND),
    KeywordRule((r"mobile", r"\bapps?\b", r"\bios\b", r"android"), MOBILE),
    KeywordRule((r"content", r"writing", r"\bcopy"), CONTENT),
    KeywordRule((r"marketing", r"\bseo\b", r"social", r"\bads\b"), MARKETING),
    KeywordRule((r"\bdata\b", r"automation", r"integration", r"\betl\b"), DATA),
    KeywordRule((r"\bqa\b", r"test", r"quality"), QA),
)

# Client-facing field names that map straight to a pricing field
FIELD_ALIASES: dict[str, str] = {
    "UI/UX Design": UI_UX,
    "Graphic Design": GRAPHIC,
    "Web Development": WEB_FRONTEND,
    "Frontend Development": WEB_FRONTEND,
    "Backend Development": BACKEND,
    "Full Stack Development": BACKEND,
    "WordPress Development": WEB_FRONTEND,
    "Mobile App Development": MOBILE,
    "iOS Development": MOBILE,
    "Android Development": MOBILE,
    "Video Production": MOTION,
    "Motion Graphics": MOTION,
    "Content Writing": CONTENT,
    "Digital Marketing": MARKETING,
    "SEO (Search Engine Optimization)": MARKETING,
    "Data Science": DATA,
    "Data Analysis": DATA,
}


# =============================================================================
# Item Type Rules (scoped per canonical field)
# =============================================================================

ITEM_TYPE_RULES: dict[str, tuple[KeywordRule, ...]] = {
    UI_UX: (
        KeywordRule((r"screen", r"page", r"interface"), "screen"),
        KeywordRule((r"research",), "user_research"),
        KeywordRule((r"design system", r"component library"), "design_system"),
        KeywordRule((r"audit", r"review"), "ux_audit"),
        KeywordRule((r"prototyp", r"mockup"), "prototyping"),
    ),
    WEB_FRONTEND: (
        KeywordRule((r"page", r"landing"), "page"),
        KeywordRule((r"section", r"component"), "custom_section"),
        KeywordRule((r"animation", r"interactive"), "animation"),
        KeywordRule((r"\bcpt\b", r"custom post type", r"admin"), "cpt_admin_ui"),
        KeywordRule((r"form",), "form"),
        KeywordRule((r"workflow", r"process"), "workflow"),
        KeywordRule((r"integration", r"\bapi\b"), "integration"),
    ),
    BACKEND: (
        KeywordRule((r"\bapi\b", r"endpoint"), "api"),
        KeywordRule((r"auth", r"login", r"role"), "auth_roles"),
        KeywordRule((r"model", r"schema", r"database"), "data_model"),
        KeywordRule((r"payment", r"stripe", r"paypal"), "payment"),
        KeywordRule((r"\bcrm\b", r"customer"), "crm"),
    ),
    MOBILE: (
        KeywordRule((r"screen", r"view"), "screen"),
        KeywordRule((r"sync", r"\bapi\b"), "api_sync"),
        KeywordRule((r"push", r"notification"), "push_notifications"),
        KeywordRule((r"analytics", r"tracking"), "analytics"),
        KeywordRule((r"store", r"publish"), "app_store_prep"),
    ),
    GRAPHIC: (
        KeywordRule((r"logo",), "logo_system"),
        KeywordRule((r"brand", r"identity"), "brand_kit"),
        KeywordRule((r"campaign", r"marketing"), "campaign_pack"),
    ),
    MOTION: (
        KeywordRule((r"30s", r"30 second"), "video_clip_30s"),
        KeywordRule((r"storyboard", r"story board"), "storyboard"),
        KeywordRule((r"explainer", r"60", r"90"), "explainer_60_90s"),
    ),
    CONTENT: (
        KeywordRule((r"500", r"word"), "content_500_words"),
        KeywordRule((r"strategy", r"copy"), "page_strategy_copy"),
        KeywordRule((r"calendar", r"editorial"), "editorial_calendar"),
        KeywordRule((r"\bseo\b", r"cluster", r"5 page"), "seo_cluster_5_pages"),
    ),
    MARKETING: (
        KeywordRule((r"audit",), "seo_audit"),
        KeywordRule((r"keyword", r"50"), "keyword_set_50"),
        KeywordRule((r"campaign", r"setup", r"set up"), "campaign_setup"),
        KeywordRule((r"management", r"monthly"), "monthly_management"),
    ),
    DATA: (
        KeywordRule((r"\betl\b", r"connector", r"data pipeline"), "etl_connector"),
        KeywordRule((r"workflow", r"automation"), "workflow_automation"),
        KeywordRule((r"dashboard", r"visuali[sz]ation"), "dashboard"),
        KeywordRule((r"\brpa\b", r"\bbots?\b", r"robot"), "rpa_bot"),
    ),
    QA: (
        KeywordRule((r"test plan", r"planning"), "test_plan"),
        KeywordRule((r"regression", r"cycle"), "regression_cycle"),
        KeywordRule((r"performance", r"audit"), "performance_audit"),
        KeywordRule((r"\bfix", r"sprint"), "fix_sprint"),
    ),
}

# Item type used when no rule in the field matches
DEFAULT_ITEM_TYPES: dict[str, str] = {
    UI_UX: "screen",
    WEB_FRONTEND: "page",
    BACKEND: "api",
    MOBILE: "screen",
    GRAPHIC: "static_asset",
    MOTION: "video_clip_30s",
    CONTENT: "content_500_words",
    MARKETING: "seo_audit",
    DATA: "workflow_automation",
    QA: "test_plan",
}

UNKNOWN_ITEM_TYPE = "standard"


# =============================================================================
# Complexity Rules (ordered, first match wins; default is standard)
# =============================================================================

COMPLEXITY_RULES: tuple[KeywordRule, ...] = (
    KeywordRule((r"basic", r"simple", r"minimal"), Complexity.BASIC.value),
    KeywordRule((r"complex", r"advanced", r"sophisticated", r"enterprise"), Complexity.COMPLEX.value),
)


# =============================================================================
# Work-Unit Map (field -> item type -> complexity -> EU)
# =============================================================================

def _rows(field: str, *rows: tuple[str, Complexity, float]) -> list[WorkUnitMapping]:
    return [WorkUnitMapping(field, item_type, complexity, eu) for item_type, complexity, eu in rows]


_B, _S, _C = Complexity.BASIC, Complexity.STANDARD, Complexity.COMPLEX

WORK_UNIT_MAPPINGS: tuple[WorkUnitMapping, ...] = tuple(
    _rows(
        UI_UX,
        ("screen", _B, 0.5),
        ("screen", _S, 0.75),
        ("screen", _C, 1.5),
        ("user_research", Complexity.LIGHT, 1),
        ("user_research", Complexity.DEEP, 3),
        ("design_system", Complexity.CORE, 3),
        ("design_system", Complexity.FULL, 6),
        ("ux_audit", _S, 2),
        ("prototyping", _S, 2),
    )
    + _rows(
        WEB_FRONTEND,
        ("page", _B, 0.5),
        ("page", _S, 0.75),
        ("page", _C, 1.5),
        ("custom_section", _S, 0.75),
        ("animation", _S, 0.75),
        ("cpt_admin_ui", _S, 2),
        ("form", _S, 1),
        ("workflow", _S, 1),
        ("integration", _S, 2),
    )
    + _rows(
        BACKEND,
        ("api", _B, 0.5),
        ("api", _C, 1.5),
        ("auth_roles", _S, 2),
        ("data_model", _S, 2),
        ("payment", _S, 2),
        ("payment", _C, 3),
        ("crm", _S, 2),
        ("crm", _C, 3),
    )
    + _rows(
        MOBILE,
        ("screen", _B, 1),
        ("screen", _S, 1.5),
        ("screen", _C, 2),
        ("api_sync", _S, 1),
        ("push_notifications", _S, 1),
        ("analytics", _S, 1),
        ("app_store_prep", _S, 1),
    )
    + _rows(
        GRAPHIC,
        ("static_asset", _B, 0.125),
        ("logo_system", _S, 2),
        ("brand_kit", _S, 3),
        ("campaign_pack", _S, 2),
    )
    + _rows(
        MOTION,
        ("video_clip_30s", _S, 2),
        ("storyboard", _S, 1),
        ("explainer_60_90s", _S, 4),
    )
    + _rows(
        CONTENT,
        ("content_500_words", _S, 0.25),
        ("page_strategy_copy", _S, 1),
        ("editorial_calendar", _S, 1),
        ("seo_cluster_5_pages", _S, 2),
    )
    + _rows(
        MARKETING,
        ("seo_audit", _S, 1),
        ("keyword_set_50", _S, 0.5),
        ("campaign_setup", _S, 1),
        ("monthly_management", _S, 2),
    )
    + _rows(
        DATA,
        ("etl_connector", _S, 2),
        ("workflow_automation", _S, 1),
        ("dashboard", _S, 2),
        ("rpa_bot", _S, 3),
    )
    + _rows(
        QA,
        ("test_plan", _S, 1),
        ("regression_cycle", _S, 2),
        ("performance_audit", _S, 1.5),
        ("fix_sprint", _S, 2),
    )
)


# Leading work-item count, e.g. "Write 2 blog posts" or "5 screens". The
# number may follow at most two lead words and must be followed within three
# words by a plural noun. Numbers after a label ("Phase 2", "Top 10") are
# names, and numbers followed by a unit ("500 words", "30 seconds") are sizes.
QUANTITY_PATTERN = re.compile(
    r"^\s*((?:[a-z&/-]+\s+){0,2})(\d{1,3})\s+((?:[a-z-]+\s+){0,2}[a-z-]+)"
)

QUANTITY_LABEL_WORDS = frozenset({
    "phase", "version", "v", "step", "stage", "part", "round", "sprint",
    "milestone", "top", "page", "release", "level", "week", "day",
})

QUANTITY_UNIT_WORDS = frozenset({
    "word", "words", "second", "seconds", "sec", "secs", "minute", "minutes",
    "min", "mins", "hour", "hours", "hr", "hrs", "day", "days", "week",
    "weeks", "month", "months", "percent",
})

# Singular nouns that happen to end in "s".
_NOT_PLURAL_ENDINGS = ("ss", "us", "is")


def is_count_noun(word: str) -> bool:
    """True for a plural noun that a leading number can count."""
    return (
        len(word) > 2
        and word.endswith("s")
        and not word.endswith(_NOT_PLURAL_ENDINGS)
        and word not in QUANTITY_UNIT_WORDS
    )


def first_match(rules: tuple[KeywordRule, ...], text: str) -> Optional[str]:
    """Return the value of the first rule matching text, or None."""
    for rule in rules:
        if rule.matches(text):
            return rule.value
    return None
