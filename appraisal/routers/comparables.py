from fastapi import APIRouter, Depends
from ..schemas import ComparableRun, OverrideBody, OverrideResponse, SearchBody
from ..services.valuation_service import ValuationService, valuation_service

router = APIRouter()

@router.post("/comparables/search", response_model=ComparableRun)
async def post_search(body: SearchBody, svc: ValuationService = Depends(valuation_service)):
    return await svc.search(body)

@router.get("/comparables/{run_id}", response_model=ComparableRun)
def get_run(run_id: str, svc: ValuationService = Depends(valuation_service)):
    return svc.get_run(run_id)

@router.post("/comparables/{run_id}/adjustments/override", response_model=OverrideResponse)
def post_override(run_id: str, body: OverrideBody, svc: ValuationService = Depends(valuation_service)):
    return svc.override(run_id, body)
