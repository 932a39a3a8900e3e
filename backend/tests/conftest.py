"""Shared fixtures: in-memory store, lifecycle manager and sample policies."""

import os
from datetime import datetime, timezone

# Must be set before policy_engine.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("POLICY_STORE", "memory")

import pytest

from policy_engine.core.enums import LoanType, PolicyCategory
from policy_engine.models.domain.policy import PolicyDefinition, PolicyRule
from policy_engine.repositories import InMemoryPolicyStore
from policy_engine.services import PolicyEvaluationService, PolicyLifecycleManager

FIXED_NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)


def make_rule(name="Rule", conditions=None, actions=None, priority=100, **extra) -> PolicyRule:
    """Build a rule from the camelCase dict form used on the wire."""
    return PolicyRule.from_dict(
        {
            "name": name,
            "priority": priority,
            "conditions": conditions or [],
            "actions": actions if actions is not None else [{"type": "APPROVE"}],
            **extra,
        }
    )


def make_definition(
    name="Salaried Eligibility",
    category=PolicyCategory.ELIGIBILITY,
    loan_type=LoanType.PERSONAL_LOAN,
    rules=None,
    **extra,
) -> PolicyDefinition:
    return PolicyDefinition(
        name=name,
        category=category,
        loan_type=loan_type,
        rules=rules if rules is not None else [make_rule("Approve salaried")],
        **extra,
    )


@pytest.fixture
def store() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
def manager(store) -> PolicyLifecycleManager:
    return PolicyLifecycleManager(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def evaluation_service(store) -> PolicyEvaluationService:
    return PolicyEvaluationService(store)


@pytest.fixture
def eligibility_rules() -> list[PolicyRule]:
    return [
        make_rule(
            "Low CIBIL rejection",
            priority=5,
            conditions=[{"field": "applicant.cibilScore", "operator": "LESS_THAN", "value": "600"}],
            actions=[{"type": "REJECT", "parameters": {"reason": "CIBIL below 600"}}],
        ),
        make_rule(
            "Salaried approval",
            priority=10,
            conditions=[
                {"field": "applicant.employmentType", "operator": "EQUALS", "value": "SALARIED"},
                {"field": "applicant.age", "operator": "BETWEEN", "minValue": "21", "maxValue": "58"},
                {"field": "applicant.cibilScore", "operator": "GREATER_THAN_OR_EQUAL", "value": "700"},
            ],
            actions=[
                {"type": "APPROVE"},
                {"type": "SET_MAX_AMOUNT", "parameters": {"amount": "2000000"}},
                {"type": "REQUIRE_DOCUMENT", "parameters": {"documentType": "SALARY_SLIP"}},
            ],
        ),
    ]


@pytest.fixture
async def active_policy(manager, eligibility_rules):
    policy = await manager.create(make_definition(rules=eligibility_rules), author="alice")
    return await manager.activate(policy.id, author="alice")
