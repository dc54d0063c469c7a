"""End-to-end tests for the pricing pipeline.

Covers the four reference scenarios, determinism, error handling and the
audit trail (record, replay, verify).
"""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import REFERENCE_TIME, content_scope
from scope_pricer.audit import AuditStore, InMemoryAuditStore, JsonlAuditStore
from scope_pricer.config import PricingConfig, RateTableConfig
from scope_pricer.engine import PricingEngine, load_scope, price_for_badge, validate_scope
from scope_pricer.errors import (
    AuditWriteError,
    ErrorKind,
    InputValidationError,
)
from scope_pricer.rules import RULES_VERSION
from scope_pricer.schema import (
    BadgeLevel,
    Clarity,
    RiskCompliance,
    Urgency,
)


class FailingStore(AuditStore):
    """Store whose writes always fail."""

    def append(self, entry):
        raise OSError("disk full")

    def __iter__(self):
        return iter([])


def assert_tier_invariants(estimate, config=PricingConfig()):
    assert estimate.final_low <= estimate.final_medium <= estimate.final_high
    for value in (estimate.final_low, estimate.final_medium, estimate.final_high):
        assert config.caps.min_price <= value <= config.caps.max_price


class TestReferenceScenarios:
    """The four reference pricing scenarios."""

    def test_simple_content_scope(self, engine):
        """Two short posts, 30 days out, quality priority."""
        estimate = engine.estimate(content_scope(), "client-42", REFERENCE_TIME)

        assert estimate.twu < 2
        assert estimate.twu == pytest.approx(0.5)
        assert estimate.mp == 1.0
        assert estimate.bpv == pytest.approx(1000.0)
        assert (estimate.final_low, estimate.final_medium, estimate.final_high) == (850, 1000, 1200)
        assert estimate.breakdown.complexity_drivers == []
        assert estimate.breakdown.scope_size == "Small scope"
        assert estimate.breakdown.recommended == BadgeLevel.MEDIUM
        assert len(estimate.effort_units) == 1
        assert_tier_invariants(estimate)

    def test_urgent_scope_costs_more(self, engine):
        """Same scope, 5 days out with speed priority."""
        calm = engine.estimate(content_scope(), "client-42", REFERENCE_TIME)
        rushed = engine.estimate(
            content_scope(days_to_deadline=5, priority="SPEED"), "client-42", REFERENCE_TIME,
        )

        assert rushed.difficulty_factors.urgency == Urgency.URGENT
        assert 1.0 < rushed.mp <= 1.25
        assert rushed.final_low > calm.final_low
        assert rushed.final_medium > calm.final_medium
        assert rushed.final_high > calm.final_high
        assert (rushed.final_low, rushed.final_medium, rushed.final_high) == (950, 1100, 1300)
        assert "Urgent deadline" in rushed.breakdown.complexity_drivers

    def test_regulated_scope(self, engine):
        scope = content_scope(
            goal="Patient education articles for a clinic",
            usage_context="Hospital portal with patient records, HIPAA reviewed",
        )
        estimate = engine.estimate(scope, "client-7", REFERENCE_TIME)

        assert estimate.difficulty_factors.risk_compliance == RiskCompliance.REGULATED
        assert "Regulated industry requirements" in estimate.breakdown.complexity_drivers
        assert estimate.mp == pytest.approx(1.08)

    def test_high_multiplier_listed_as_driver(self, engine):
        """Urgent, regulated and awaiting assets pushes the product past 1.2."""
        scope = content_scope(
            days_to_deadline=4,
            goal="Patient education articles for a clinic",
            usage_context="Hospital portal; patient photos to be provided by the clinic",
        )
        estimate = engine.estimate(scope, "client-7", REFERENCE_TIME)

        assert estimate.mp == pytest.approx(1.21)
        assert estimate.breakdown.complexity_drivers == [
            "Urgent deadline",
            "Regulated industry requirements",
            "Content/assets to be provided",
            "High complexity multiplier",
        ]

    def test_empty_scope(self, engine):
        """No items at all still yields one synthetic unit and non-zero tiers."""
        estimate = engine.estimate(
            {"field": "Underwater Basket Weaving"}, "client-1", REFERENCE_TIME,
        )

        assert len(estimate.effort_units) == 1
        assert estimate.effort_units[0].eu_value == 1.0
        assert estimate.twu == 1.0
        assert estimate.difficulty_factors.clarity == Clarity.LOW
        assert estimate.final_low > 0
        assert estimate.field_aggregations[0].rate == 4350.0
        assert_tier_invariants(estimate)


class TestEstimateProperties:
    """Properties every estimate satisfies."""

    def test_deterministic(self, engine):
        """Identical input and reference time give identical output apart from the audit id."""
        first = engine.estimate(content_scope(days_to_deadline=3), "a", REFERENCE_TIME)
        second = engine.estimate(content_scope(days_to_deadline=3), "a", REFERENCE_TIME)

        assert first.audit_id != second.audit_id
        assert first.model_dump(exclude={"audit_id"}) == second.model_dump(exclude={"audit_id"})

    @pytest.mark.parametrize("text", [
        "2024-06-01T09:00:00+00:00",
        "2024-06-01T09:00:00Z",
        "2024-06-01T14:30:00+05:30",
    ])
    def test_reference_time_as_string(self, engine, text):
        """ISO 8601 strings, including a trailing Z, pin the same instant."""
        from_str = engine.estimate(content_scope(), "a", text)
        from_dt = engine.estimate(content_scope(), "a", REFERENCE_TIME)
        assert from_str.final_tiers == from_dt.final_tiers
        assert from_str.reference_time == REFERENCE_TIME

    def test_multi_field_scope(self, engine):
        scope = {
            "field": "UI/UX Design",
            "in_scope_items": [
                "Home screen",
                "Checkout screen",
                {"text": "Payment processing with Stripe", "field": "Backend / Full-Stack"},
            ],
            "intent": {"goal": "Launch a small online store", "usage_context": "Public storefront for shoppers"},
        }
        estimate = engine.estimate(scope, "a", REFERENCE_TIME)

        assert len(estimate.field_aggregations) == 2
        assert "across 2 fields" in estimate.breakdown.scope_size
        assert estimate.bpv == pytest.approx(sum(a.field_value for a in estimate.field_aggregations))
        assert_tier_invariants(estimate)

    def test_fallback_count(self, engine):
        estimate = engine.estimate(
            {"field": "Knitting", "in_scope_items": ["Scarf", "Hat"]}, "a", REFERENCE_TIME,
        )
        assert estimate.fallback_count == 2
        assert estimate.twu == pytest.approx(1.0)

    def test_huge_scope_is_capped(self):
        config = PricingConfig(rates=RateTableConfig(base_rates={"Mobile App Development": 10_000_000}))
        engine = PricingEngine(config)
        estimate = engine.estimate(
            {"field": "Mobile App Development", "in_scope_items": ["Complex dashboard screen"]},
            "a",
            REFERENCE_TIME,
        )
        assert estimate.final_high == config.caps.max_price
        assert estimate.capping.high_capped
        assert_tier_invariants(estimate, config)


class TestErrors:
    """Tests for the structured error taxonomy."""

    def test_missing_scope(self, engine):
        with pytest.raises(InputValidationError) as exc:
            engine.estimate(None, "a", REFERENCE_TIME)
        assert exc.value.kind == ErrorKind.INPUT_VALIDATION

    def test_empty_field(self, engine, audit_store):
        with pytest.raises(InputValidationError) as exc:
            engine.estimate({"field": "  "}, "a", REFERENCE_TIME)
        assert "field" in exc.value.reason
        assert len(audit_store) == 0

    def test_malformed_deadline(self, engine):
        with pytest.raises(InputValidationError) as exc:
            engine.estimate(
                {"field": "UI/UX Design", "intent": {"deadline": "next tuesday-ish"}}, "a", REFERENCE_TIME,
            )
        assert "deadline" in exc.value.reason

    def test_unknown_priority(self, engine):
        with pytest.raises(InputValidationError):
            engine.estimate({"field": "UI/UX Design", "intent": {"priority": "ASAP"}}, "a")

    def test_missing_actor(self, engine):
        with pytest.raises(InputValidationError):
            engine.estimate(content_scope(), "", REFERENCE_TIME)

    def test_malformed_reference_time(self, engine):
        with pytest.raises(InputValidationError):
            engine.estimate(content_scope(), "a", "yesterday")

    def test_audit_failure_discards_estimate(self):
        engine = PricingEngine(audit_store=FailingStore())
        with pytest.raises(AuditWriteError) as exc:
            engine.estimate(content_scope(), "a", REFERENCE_TIME)
        assert exc.value.stage == "recording"
        assert exc.value.to_dict() == {
            "kind": "audit_write",
            "reason": exc.value.reason,
            "stage": "recording",
        }
        assert "disk full" in exc.value.reason


class TestPriceForBadge:
    """Tests for selecting the tier shown to a freelancer."""

    @pytest.fixture
    def estimate(self, engine):
        return engine.estimate(content_scope(), "a", REFERENCE_TIME)

    @pytest.mark.parametrize("badge,expected", [
        (BadgeLevel.LOW, 850),
        ("MEDIUM", 1000),
        ("high", 1200),
        ("PLATINUM", 1000),
        (None, 1000),
    ])
    def test_badge_mapping(self, estimate, badge, expected):
        assert price_for_badge(estimate, badge) == expected


class TestAuditTrail:
    """Tests for audit recording and replay."""

    def test_one_entry_per_call(self, engine, audit_store):
        estimate = engine.estimate(content_scope(), "client-42", REFERENCE_TIME)

        assert len(audit_store) == 1
        entry = audit_store.get(estimate.audit_id)
        assert entry.actor == "client-42"
        assert entry.scope_id == "scope-content-1"
        assert entry.final_tiers == estimate.final_tiers
        assert entry.reference_time == REFERENCE_TIME
        assert entry.rules_version == RULES_VERSION
        assert entry.config_fingerprint == PricingConfig().fingerprint()

    def test_for_scope(self, engine, audit_store):
        engine.estimate(content_scope(), "a", REFERENCE_TIME)
        engine.estimate(content_scope(days_to_deadline=2), "b", REFERENCE_TIME)
        engine.estimate({"scope_id": "other", "field": "UI/UX Design"}, "a", REFERENCE_TIME)
        assert [e.actor for e in audit_store.for_scope("scope-content-1")] == ["a", "b"]

    def test_jsonl_round_trip_replays_exactly(self, tmp_path):
        store = JsonlAuditStore(tmp_path / "logs" / "audit.jsonl")
        engine = PricingEngine(audit_store=store)
        estimate = engine.estimate(
            content_scope(days_to_deadline=4, usage_context="Assets will be provided by marketing"),
            "client-42",
            REFERENCE_TIME,
        )

        lines = (tmp_path / "logs" / "audit.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["entry_id"] == estimate.audit_id

        entry = store.get(estimate.audit_id)
        assert engine.verify(entry) == []
        replayed = engine.replay(entry)
        assert replayed.final_tiers == estimate.final_tiers
        assert replayed.audit_id is None
        assert len(list(store)) == 1

    def test_verify_reports_changed_tables(self, engine, audit_store):
        estimate = engine.estimate(content_scope(), "a", REFERENCE_TIME)
        entry = audit_store.get(estimate.audit_id)

        cheaper = PricingConfig(rates=RateTableConfig(base_rates={"Content Writing & Strategy": 1500}))
        mismatches = PricingEngine(cheaper).verify(entry)
        assert any(m.startswith("bpv") for m in mismatches)
        assert any(m.startswith("final_tiers") for m in mismatches)

    def test_corrupt_log_line(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        path.write_text('{"entry_id": "x"}\n', encoding="utf-8")
        with pytest.raises(ValueError):
            list(JsonlAuditStore(path))

    def test_concurrent_estimates(self):
        store = InMemoryAuditStore()
        engine = PricingEngine(audit_store=store)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda i: engine.estimate(content_scope(days_to_deadline=i), f"actor-{i}", REFERENCE_TIME),
                range(1, 25),
            ))
        assert len(store) == 24
        assert len({r.audit_id for r in results}) == 24


class TestScopeFiles:
    """Tests for loading and validating scope files."""

    def test_load_wrapped_scope(self, tmp_path):
        path = tmp_path / "scope.json"
        path.write_text(json.dumps([content_scope()]), encoding="utf-8")
        assert load_scope(path)["field"] == "Content Writing & Strategy"

    def test_load_rejects_many_scopes(self, tmp_path):
        path = tmp_path / "scope.json"
        path.write_text(json.dumps([content_scope(), content_scope()]), encoding="utf-8")
        with pytest.raises(InputValidationError):
            load_scope(path)

    def test_validate_reports_warnings(self, tmp_path):
        path = tmp_path / "scope.json"
        path.write_text(json.dumps({"field": "UI/UX Design"}), encoding="utf-8")
        is_valid, issues = validate_scope(path)
        assert is_valid
        assert len(issues) == 2

    def test_validate_rejects_bad_json(self, tmp_path):
        path = tmp_path / "scope.json"
        path.write_text("{not json", encoding="utf-8")
        is_valid, issues = validate_scope(path)
        assert not is_valid
        assert issues[0].startswith("Invalid JSON")
