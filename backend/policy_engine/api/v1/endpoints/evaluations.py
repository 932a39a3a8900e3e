"""Policy evaluation endpoint."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from policy_engine.core.exceptions import PolicyEngineError
from policy_engine.deps import get_evaluation_service
from policy_engine.models.schemas.evaluation import DecisionResponse, EvaluationRequest
from policy_engine.services.evaluation_service import PolicyEvaluationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=DecisionResponse,
    summary="Evaluate an application",
    description="Evaluate application facts against all ACTIVE, effective policies",
)
async def evaluate_application(
    request: EvaluationRequest,
    service: Annotated[PolicyEvaluationService, Depends(get_evaluation_service)],
) -> DecisionResponse:
    """
    Evaluate a loan application.

    Process:
    1. Load ACTIVE policies for the loan type (and category, if given)
       whose effective window contains the evaluation instant
    2. Evaluate rules in policy priority order, then rule priority order
    3. Aggregate fired actions into a single decision:
       - REJECT > REFER > APPROVE
       - Rates, fees, amounts and tenure: first (highest priority) wins
       - Documents, risk flags and notifications accumulate

    Conditions that cannot be evaluated (wrong type, bad operand) are
    reported under ``warnings`` and count as not matched.
    """
    try:
        decision = await service.evaluate(
            request.loan_type,
            request.category,
            request.facts,
            now=request.as_of,
            application_id=request.application_id,
        )
        return DecisionResponse.model_validate(
            {**decision.to_dict(), "applicationId": request.application_id}
        )

    except PolicyEngineError:
        raise
    except Exception as e:
        logger.error(f"Error evaluating application {request.application_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate application",
        )
