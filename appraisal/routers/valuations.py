from fastapi import APIRouter, Depends
from ..schemas import EstimateBody, EstimateResponse
from ..services.valuation_service import ValuationService, valuation_service

router = APIRouter()

@router.post("/valuations/estimate", response_model=EstimateResponse)
def post_estimate(body: EstimateBody, svc: ValuationService = Depends(valuation_service)):
    return svc.estimate(body.run_id, body.strategy)
