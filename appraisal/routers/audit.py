from fastapi import APIRouter, Depends
from ..schemas import AuditEventsResponse
from ..services.valuation_service import ValuationService, valuation_service

router = APIRouter()

@router.get("/audit/events", response_model=AuditEventsResponse)
def get_audit_events(svc: ValuationService = Depends(valuation_service)):
    """Manual override trail, newest first."""
    return svc.audit_events()
