"""Policy management endpoints."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from policy_engine.core.enums import LoanType, PolicyCategory, PolicyStatus
from policy_engine.core.exceptions import PolicyEngineError
from policy_engine.deps import get_author, get_if_match, get_lifecycle_manager
from policy_engine.models.domain.policy import Policy
from policy_engine.models.schemas.policy import (
    LockVersionRequest,
    PolicyCreate,
    PolicyListResponse,
    PolicyResponse,
    PolicyStatsResponse,
    PolicyUpdate,
    RuleCreate,
)
from policy_engine.services.policy_service import PolicyLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter()

Manager = Annotated[PolicyLifecycleManager, Depends(get_lifecycle_manager)]
Author = Annotated[str, Depends(get_author)]
IfMatch = Annotated[Optional[int], Depends(get_if_match)]


def _lock_version(body_value: Optional[int], header_value: Optional[int]) -> Optional[int]:
    """Body lockVersion wins over If-Match."""
    return body_value if body_value is not None else header_value


def _matches(policy: Policy, status_filter, category, loan_type, tag, query) -> bool:
    if status_filter is not None and policy.status != status_filter:
        return False
    if category is not None and policy.category != category:
        return False
    if loan_type is not None and policy.loan_type != loan_type:
        return False
    if tag is not None and tag.strip() not in policy.tags:
        return False
    if query:
        needle = query.strip().lower()
        haystack = f"{policy.name} {policy.description or ''}".lower()
        if needle not in haystack:
            return False
    return True


# ==================== Policy Endpoints ====================


@router.post(
    "",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a policy",
    description="Create a new DRAFT policy (version 1) with a generated policy code",
)
async def create_policy(
    policy_data: PolicyCreate,
    manager: Manager,
    author: Author,
) -> PolicyResponse:
    """
    Create a new policy.

    The policy starts as DRAFT with version 1 and a code such as
    POL-2026-000001. Rules are validated before anything is stored:
    - Comparison operators need a value (numeric for >, >=, <, <=)
    - IN / NOT_IN need a non-empty values list
    - BETWEEN needs numeric minValue <= maxValue
    - Action parameters are checked per action type
    """
    try:
        policy = await manager.create(policy_data.to_definition(), author=author)
        return PolicyResponse.from_domain(policy)

    except PolicyEngineError:
        raise
    except Exception as e:
        logger.error(f"Error creating policy: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create policy",
        )


@router.get(
    "",
    response_model=PolicyListResponse,
    summary="List policies",
    description="List policies with optional filtering and pagination",
)
async def list_policies(
    manager: Manager,
    status_filter: Annotated[
        Optional[PolicyStatus], Query(alias="status", description="Filter by status")
    ] = None,
    category: Annotated[Optional[PolicyCategory], Query(description="Filter by category")] = None,
    loan_type: Annotated[
        Optional[LoanType], Query(alias="loanType", description="Filter by loan type")
    ] = None,
    tag: Annotated[Optional[str], Query(description="Filter by tag")] = None,
    q: Annotated[
        Optional[str], Query(description="Case-insensitive text search on name and description")
    ] = None,
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    page_size: Annotated[
        int, Query(alias="pageSize", ge=1, le=100, description="Number of items per page")
    ] = 20,
) -> PolicyListResponse:
    """
    List policies.

    Every version of every policy is listed, ordered by policy code and then
    newest version first. Filters combine with AND.
    """
    try:
        # Narrow with the most selective store query, then apply the rest
        if q and q.strip():
            policies = await manager.search(q)
        elif tag:
            policies = await manager.list_by_tag(tag)
        elif status_filter is not None:
            policies = await manager.list_by_status(status_filter)
        elif category is not None:
            policies = await manager.list_by_category(category)
        elif loan_type is not None:
            policies = await manager.list_by_loan_type(loan_type)
        else:
            policies = await manager.list_all()

        policies = [
            policy
            for policy in policies
            if _matches(policy, status_filter, category, loan_type, tag, q)
        ]

        total = len(policies)
        skip = (page - 1) * page_size
        paginated = policies[skip : skip + page_size]
        total_pages = (total + page_size - 1) // page_size if total > 0 else 1

        return PolicyListResponse(
            items=[PolicyResponse.from_domain(policy) for policy in paginated],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )

    except PolicyEngineError:
        raise
    except Exception as e:
        logger.error(f"Error listing policies: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list policies",
        )


@router.get(
    "/stats",
    response_model=PolicyStatsResponse,
    summary="Policy statistics",
    description="Counts by status and ACTIVE counts per category",
)
async def get_policy_stats(manager: Manager) -> PolicyStatsResponse:
    stats = await manager.get_stats()
    return PolicyStatsResponse.model_validate(stats)


@router.get(
    "/code/{policy_code}",
    response_model=PolicyResponse,
    summary="Get latest version by code",
)
async def get_policy_by_code(policy_code: str, manager: Manager) -> PolicyResponse:
    policy = await manager.get_by_code(policy_code)
    return PolicyResponse.from_domain(policy)


@router.get(
    "/code/{policy_code}/versions",
    response_model=list[PolicyResponse],
    summary="Version history",
    description="All versions of a policy code, newest first",
)
async def get_version_history(policy_code: str, manager: Manager) -> list[PolicyResponse]:
    versions = await manager.get_version_history(policy_code)
    return [PolicyResponse.from_domain(policy) for policy in versions]


@router.get(
    "/code/{policy_code}/versions/{version_number}",
    response_model=PolicyResponse,
    summary="Get a specific version",
)
async def get_policy_version(
    policy_code: str,
    version_number: int,
    manager: Manager,
) -> PolicyResponse:
    policy = await manager.get_version(policy_code, version_number)
    return PolicyResponse.from_domain(policy)


@router.get(
    "/{policy_id}",
    response_model=PolicyResponse,
    summary="Get a policy",
    description="Get a single policy version by ID, including its rules",
)
async def get_policy(policy_id: str, manager: Manager) -> PolicyResponse:
    policy = await manager.get(policy_id)
    return PolicyResponse.from_domain(policy)


@router.put(
    "/{policy_id}",
    response_model=PolicyResponse,
    summary="Update a policy",
    description="Replace the content of a DRAFT or INACTIVE policy",
)
async def update_policy(
    policy_id: str,
    policy_data: PolicyUpdate,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
) -> PolicyResponse:
    """
    Update a policy.

    The request body replaces name, description, category, loan type,
    priority, effective window, tags and rules. ACTIVE policies must be
    deactivated first; ARCHIVED policies are read-only.

    Pass the lockVersion last read (body or If-Match header) to get a 409
    instead of silently overwriting a concurrent change.
    """
    try:
        policy = await manager.update(
            policy_id,
            policy_data.to_definition(),
            author=author,
            expected_lock_version=_lock_version(policy_data.lock_version, if_match),
        )
        return PolicyResponse.from_domain(policy)

    except PolicyEngineError:
        raise
    except Exception as e:
        logger.error(f"Error updating policy {policy_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update policy",
        )


@router.delete(
    "/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a policy",
    description="Delete a DRAFT policy",
)
async def delete_policy(
    policy_id: str,
    manager: Manager,
    if_match: IfMatch,
    lock_version: Annotated[Optional[int], Query(alias="lockVersion", ge=0)] = None,
) -> None:
    await manager.delete(policy_id, expected_lock_version=_lock_version(lock_version, if_match))


@router.post(
    "/{policy_id}/versions",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new version",
    description="Copy a policy into a new DRAFT version with the same code",
)
async def create_policy_version(
    policy_id: str,
    manager: Manager,
    author: Author,
) -> PolicyResponse:
    """
    Create a new version of a policy.

    The new version is a DRAFT with version number n+1, the same rules and
    tags, and previousVersionId pointing at the source. The source keeps
    its status.
    """
    policy = await manager.create_new_version(policy_id, author=author)
    return PolicyResponse.from_domain(policy)


# ==================== State Transitions ====================


@router.patch(
    "/{policy_id}/activate",
    response_model=PolicyResponse,
    summary="Activate a policy",
    description="DRAFT or INACTIVE -> ACTIVE (requires at least one enabled rule)",
)
async def activate_policy(
    policy_id: str,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
    body: Optional[LockVersionRequest] = None,
) -> PolicyResponse:
    policy = await manager.activate(
        policy_id,
        author=author,
        expected_lock_version=_lock_version(body.lock_version if body else None, if_match),
    )
    return PolicyResponse.from_domain(policy)


@router.patch(
    "/{policy_id}/deactivate",
    response_model=PolicyResponse,
    summary="Deactivate a policy",
    description="ACTIVE -> INACTIVE",
)
async def deactivate_policy(
    policy_id: str,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
    body: Optional[LockVersionRequest] = None,
) -> PolicyResponse:
    policy = await manager.deactivate(
        policy_id,
        author=author,
        expected_lock_version=_lock_version(body.lock_version if body else None, if_match),
    )
    return PolicyResponse.from_domain(policy)


@router.patch(
    "/{policy_id}/archive",
    response_model=PolicyResponse,
    summary="Archive a policy",
    description="DRAFT, ACTIVE or INACTIVE -> ARCHIVED (terminal)",
)
async def archive_policy(
    policy_id: str,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
    body: Optional[LockVersionRequest] = None,
) -> PolicyResponse:
    policy = await manager.archive(
        policy_id,
        author=author,
        expected_lock_version=_lock_version(body.lock_version if body else None, if_match),
    )
    return PolicyResponse.from_domain(policy)


# ==================== Rule Endpoints ====================


@router.post(
    "/{policy_id}/rules",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a rule",
    description="Append a rule to a DRAFT or INACTIVE policy",
)
async def add_rule(
    policy_id: str,
    rule_data: RuleCreate,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
) -> PolicyResponse:
    policy = await manager.add_rule(
        policy_id,
        rule_data.to_domain(),
        author=author,
        expected_lock_version=_lock_version(rule_data.lock_version, if_match),
    )
    return PolicyResponse.from_domain(policy)


@router.delete(
    "/{policy_id}/rules/{rule_name}",
    response_model=PolicyResponse,
    summary="Remove a rule",
    description="Remove a rule by name from a DRAFT or INACTIVE policy",
)
async def remove_rule(
    policy_id: str,
    rule_name: str,
    manager: Manager,
    author: Author,
    if_match: IfMatch,
    lock_version: Annotated[Optional[int], Query(alias="lockVersion", ge=0)] = None,
) -> PolicyResponse:
    policy = await manager.remove_rule(
        policy_id,
        rule_name,
        author=author,
        expected_lock_version=_lock_version(lock_version, if_match),
    )
    return PolicyResponse.from_domain(policy)
