"""Pre-built DRAFT eligibility templates and their idempotent seeding."""

import logging
from typing import Any

from policy_engine.core.enums import LoanType, PolicyCategory
from policy_engine.models.domain.policy import Policy, PolicyDefinition, PolicyRule
from policy_engine.services.policy_service import PolicyLifecycleManager

logger = logging.getLogger(__name__)

TEMPLATE_AUTHOR = "system"


def _condition(field: str, operator: str, value: Any = None, **extra: Any) -> dict[str, Any]:
    condition = {"field": field, "operator": operator, **extra}
    if value is not None:
        condition["value"] = value
    return condition


def _action(action_type: str, description: str, /, **parameters: Any) -> dict[str, Any]:
    return {"type": action_type, "description": description, "parameters": parameters}


PERSONAL_LOAN_RULES = [
    {
        "name": "Low CIBIL Rejection",
        "description": "Reject applicants with CIBIL score below 500",
        "priority": 5,
        "conditions": [_condition("applicant.cibilScore", "LESS_THAN", "500")],
        "actions": [_action("REJECT", "CIBIL score below minimum threshold of 500")],
    },
    {
        "name": "Salaried Applicant Approval",
        "description": "Approve salaried/professional applicants meeting eligibility criteria",
        "priority": 10,
        "conditions": [
            _condition("applicant.employmentType", "IN", values=["SALARIED", "PROFESSIONAL"]),
            _condition("applicant.cibilScore", "GREATER_THAN_OR_EQUAL", "650"),
            _condition("applicant.age", "BETWEEN", minValue="21", maxValue="60"),
            _condition("applicant.monthlyIncome", "GREATER_THAN_OR_EQUAL", "25000"),
        ],
        "actions": [
            _action("APPROVE", "Eligible for personal loan (salaried applicant)"),
            _action("SET_MAX_AMOUNT", "Maximum loan amount: INR 20 lakhs", amount="2000000"),
            _action(
                "SET_INTEREST_RATE",
                "Standard interest rate for salaried applicants",
                rate="12.5",
                type="FIXED",
            ),
        ],
    },
    {
        "name": "Borderline CIBIL Referral",
        "description": "Refer applicants with borderline CIBIL (500-649) to senior underwriter",
        "priority": 15,
        "conditions": [
            _condition("applicant.cibilScore", "BETWEEN", minValue="500", maxValue="649"),
        ],
        "actions": [
            _action("REFER", "Borderline CIBIL score requires senior underwriter review"),
            _action(
                "ASSIGN_TO_ROLE",
                "Assign to senior underwriter for manual review",
                role="SENIOR_UNDERWRITER",
            ),
            _action("FLAG_RISK", "Flag for risk review", reason="Borderline CIBIL score"),
        ],
    },
    {
        "name": "Self-Employed Applicant Approval",
        "description": "Approve self-employed/business applicants with stricter criteria",
        "priority": 20,
        "conditions": [
            _condition("applicant.employmentType", "IN", values=["SELF_EMPLOYED", "BUSINESS"]),
            _condition("applicant.cibilScore", "GREATER_THAN_OR_EQUAL", "700"),
            _condition("applicant.age", "BETWEEN", minValue="25", maxValue="55"),
            _condition("applicant.monthlyIncome", "GREATER_THAN_OR_EQUAL", "40000"),
        ],
        "actions": [
            _action("APPROVE", "Eligible for personal loan (self-employed applicant)"),
            _action("SET_MAX_AMOUNT", "Maximum loan amount: INR 15 lakhs", amount="1500000"),
            _action(
                "SET_INTEREST_RATE",
                "Standard interest rate for self-employed applicants",
                rate="14.0",
                type="FIXED",
            ),
        ],
    },
]

HOME_LOAN_RULES = [
    {
        "name": "Low CIBIL Rejection",
        "description": "Reject applicants with CIBIL score below 600 for Home Loans",
        "priority": 5,
        "conditions": [_condition("applicant.cibilScore", "LESS_THAN", "600")],
        "actions": [_action("REJECT", "CIBIL score below Home Loan minimum threshold of 600")],
    },
    {
        "name": "Insufficient Income Rejection",
        "description": "Reject applicants with monthly income below INR 40,000",
        "priority": 6,
        "conditions": [_condition("applicant.monthlyIncome", "LESS_THAN", "40000")],
        "actions": [_action("REJECT", "Monthly income below minimum requirement of INR 40,000")],
    },
    {
        "name": "High Value Loan Referral",
        "description": "Refer loans above INR 50 lakhs to senior underwriter",
        "priority": 10,
        "conditions": [_condition("loan.requestedAmount", "GREATER_THAN", "5000000")],
        "actions": [
            _action("REFER", "High value loan requires senior underwriter review"),
            _action("ASSIGN_TO_ROLE", "Assign to senior underwriter", role="SENIOR_UNDERWRITER"),
            _action(
                "REQUIRE_DOCUMENT",
                "Require property valuation report for high-value loans",
                documentType="VALUATION_REPORT",
                mandatory="true",
            ),
        ],
    },
    {
        "name": "Standard Home Loan Approval",
        "description": "Approve applicants meeting all Home Loan eligibility criteria",
        "priority": 20,
        "conditions": [
            _condition("applicant.cibilScore", "GREATER_THAN_OR_EQUAL", "700"),
            _condition("applicant.age", "BETWEEN", minValue="21", maxValue="65"),
            _condition("applicant.monthlyIncome", "GREATER_THAN_OR_EQUAL", "40000"),
            _condition("property.estimatedValue", "IS_NOT_NULL"),
        ],
        "actions": [
            _action("APPROVE", "Eligible for Home Loan"),
            _action("SET_MAX_TENURE", "Maximum tenure: 30 years", months="360"),
            _action(
                "SET_INTEREST_RATE",
                "Standard floating rate for Home Loans",
                rate="8.5",
                type="FLOATING",
            ),
            _action(
                "REQUIRE_DOCUMENT",
                "Require property ownership documents",
                documentType="PROPERTY_PAPERS",
                mandatory="true",
            ),
        ],
    },
]

KCC_RULES = [
    {
        "name": "No Land Ownership Rejection",
        "description": "Reject applicants without land ownership for KCC",
        "priority": 5,
        "conditions": [_condition("applicant.landOwnership", "IS_FALSE")],
        "actions": [_action("REJECT", "Land ownership is required for KCC")],
    },
    {
        "name": "Large Farmer Enhanced Limit",
        "description": "Enhanced credit limits for large farmers with irrigated land (>5 acres)",
        "priority": 10,
        "conditions": [
            _condition("applicant.landArea", "GREATER_THAN", "5"),
            _condition("applicant.irrigatedLand", "IS_TRUE"),
        ],
        "actions": [
            _action("SET_MAX_AMOUNT", "Enhanced limit: INR 5 lakhs for large farmers", amount="500000"),
            _action(
                "SET_INTEREST_RATE", "Preferential rate for large farmers", rate="3.5", type="FIXED"
            ),
        ],
    },
    {
        "name": "Standard KCC Approval",
        "description": "Standard KCC approval for farmers with land and crop cultivation",
        "priority": 20,
        "conditions": [
            _condition("applicant.landOwnership", "IS_TRUE"),
            _condition("applicant.cropType", "IS_NOT_NULL"),
        ],
        "actions": [
            _action("APPROVE", "Eligible for Kisan Credit Card"),
            _action("SET_MAX_AMOUNT", "Standard KCC limit: INR 3 lakhs", amount="300000"),
            _action(
                "SET_INTEREST_RATE",
                "Standard KCC interest rate (subsidized)",
                rate="4.0",
                type="FIXED",
            ),
            _action("SET_PROCESSING_FEE", "Minimal processing fee for KCC", percentage="0.5"),
        ],
    },
]


def _template(
    name: str,
    description: str,
    loan_type: LoanType,
    tags: list[str],
    rules: list[dict[str, Any]],
) -> PolicyDefinition:
    return PolicyDefinition(
        name=name,
        description=description,
        category=PolicyCategory.ELIGIBILITY,
        loan_type=loan_type,
        priority=100,
        tags=set(tags),
        rules=[PolicyRule.from_dict(rule) for rule in rules],
    )


def build_templates() -> list[PolicyDefinition]:
    """The three eligibility templates, freshly built on every call."""
    return [
        _template(
            "Personal Loan - Eligibility Template",
            "Pre-built eligibility template for Personal Loans. Covers salaried and "
            "self-employed approval, CIBIL-based rejection, and borderline referral rules.",
            LoanType.PERSONAL_LOAN,
            ["template", "personal-loan", "eligibility"],
            PERSONAL_LOAN_RULES,
        ),
        _template(
            "Home Loan - Eligibility Template",
            "Pre-built eligibility template for Home Loans. Covers standard approval, "
            "high-value referral, CIBIL rejection, and income check rules.",
            LoanType.HOME_LOAN,
            ["template", "home-loan", "eligibility"],
            HOME_LOAN_RULES,
        ),
        _template(
            "KCC - Eligibility Template",
            "Pre-built eligibility template for Kisan Credit Card (KCC). Covers standard "
            "KCC approval, large farmer enhanced limits, and land ownership rejection.",
            LoanType.KCC,
            ["template", "kcc", "kisan-credit-card", "eligibility", "agriculture"],
            KCC_RULES,
        ),
    ]


async def seed_templates(manager: PolicyLifecycleManager) -> list[Policy]:
    """
    Create every template whose name is not yet taken.

    Args:
        manager: Lifecycle manager used to create the DRAFT policies

    Returns:
        The policies created by this call (empty when all already exist)
    """
    logger.info("Checking for policy templates to initialize...")
    created: list[Policy] = []
    for definition in build_templates():
        if await manager.store.exists_by_name(definition.name):
            logger.debug(f"Template already exists: '{definition.name}', skipping")
            continue
        policy = await manager.create(definition, author=TEMPLATE_AUTHOR)
        logger.info(
            f"Created policy template '{policy.name}' (code: {policy.policy_code}, "
            f"loan type: {policy.loan_type.value}, rules: {policy.rule_count})"
        )
        created.append(policy)

    if created:
        logger.info(f"Policy template initialization complete: {len(created)} created")
    else:
        logger.info("All policy templates already exist")
    return created
