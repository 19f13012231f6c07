from fastapi import APIRouter, Depends, Header, Response
from ..core.utils import weak_etag
from ..schemas import (
    FinalizeBody,
    FinalizedReport,
    GeneratedAppraisalReport,
    GroundedPromptBundle,
    GroundedReportInput,
    ReportFromRunBody,
    ValidationResult,
)
from ..services.valuation_service import ValuationService, valuation_service

router = APIRouter()

@router.post("/reports/prompt", response_model=GroundedPromptBundle)
def post_prompt(body: GroundedReportInput, svc: ValuationService = Depends(valuation_service)):
    return svc.prompt_bundle(body)

@router.post("/reports/draft", response_model=GeneratedAppraisalReport)
def post_draft(body: GroundedReportInput, svc: ValuationService = Depends(valuation_service)):
    return svc.draft_report(body)

@router.post("/reports/from-run", response_model=GeneratedAppraisalReport)
def post_from_run(body: ReportFromRunBody, svc: ValuationService = Depends(valuation_service)):
    return svc.report_from_run(body)

@router.post("/reports/validate", response_model=list[ValidationResult])
def post_validate(body: GroundedReportInput, svc: ValuationService = Depends(valuation_service)):
    return svc.validate(body)

@router.get("/reports/{report_id}", response_model=GeneratedAppraisalReport)
def get_report(
    report_id: str,
    response: Response,
    if_none_match: str | None = Header(default=None),
    svc: ValuationService = Depends(valuation_service),
):
    report = svc.get_report(report_id)
    etag = weak_etag(report)
    if if_none_match == etag:
        return Response(status_code=304, headers={"ETag": etag})
    response.headers["ETag"] = etag
    return report

@router.post("/reports/{report_id}/finalize", response_model=FinalizedReport)
def post_finalize(report_id: str, body: FinalizeBody, svc: ValuationService = Depends(valuation_service)):
    return svc.finalize(report_id, body)
