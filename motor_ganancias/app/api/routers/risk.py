from fastapi import APIRouter, Depends

from app.api.dependencies import get_risk_engine
from app.domain.schemas import RiskAssessmentParams, RiskAssessmentResult
from app.services.risk_assessment import RiskAssessmentEngine

router = APIRouter(prefix="/v1/risk", tags=["Risk"])


@router.post("/assess", response_model=RiskAssessmentResult)
async def assess_risk(
    params: RiskAssessmentParams,
    engine: RiskAssessmentEngine = Depends(get_risk_engine),
) -> RiskAssessmentResult:
    """Evalúa si el cobro requiere autenticación fuerte (3DS / SCA)."""
    return await engine.assess_risk(params)
