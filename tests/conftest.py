"""Shared fixtures for the scope pricer tests."""

from datetime import datetime, timedelta, timezone

import pytest

from scope_pricer.audit import InMemoryAuditStore
from scope_pricer.engine import PricingEngine


REFERENCE_TIME = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

CLEAR_GOAL = "Grow organic traffic for our travel blog"
CLEAR_USAGE = "Published on the company website every week"


def content_scope(days_to_deadline: float = 30, priority: str = "QUALITY", **intent) -> dict:
    """Two-post content scope with a clear, low-risk intent."""
    deadline = REFERENCE_TIME + timedelta(days=days_to_deadline)
    return {
        "scope_id": "scope-content-1",
        "field": "Content Writing & Strategy",
        "in_scope_items": ["Write 2 blog posts (500 words each)"],
        "deliverables": ["2 blog posts"],
        "intent": {
            "goal": CLEAR_GOAL,
            "usage_context": CLEAR_USAGE,
            "priority": priority,
            "deadline": deadline.isoformat(),
            **intent,
        },
    }


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def engine(audit_store):
    """Engine with default tables and an in-memory audit store."""
    return PricingEngine(audit_store=audit_store)
