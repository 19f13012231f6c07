import logging
import threading
import time
import uuid
from datetime import datetime, timezone

from cachetools import TTLCache
from fastapi import HTTPException

from ..core.config import settings
from ..core.cache import RunStore, store as run_store
from ..core.metrics import MANUAL_OVERRIDES, record_report, record_valuation
from ..data.base import ComparablesClient
from ..data.comps_client import comparables_client
from ..engine.adjustments import apply_adjustments
from ..engine.aggregation import valuate_from_comparables
from ..engine.geo import duplicate_fingerprint
from ..engine.overrides import InMemoryAuditLog, apply_manual_override
from ..engine.search import search_top_comparables
from ..report.draft import generate_deterministic_report_draft
from ..report.prompt import build_grounded_prompt_bundle
from ..report.validation import validate_report_consistency
from ..schemas import (
    ADJUSTMENT_FIELDS,
    AuditEventsResponse,
    ComparableReportItem,
    ComparableRun,
    ComparableSearchRequest,
    EstimateResponse,
    FinalizeBody,
    FinalizedReport,
    GeneratedAppraisalReport,
    GroundedPromptBundle,
    GroundedReportInput,
    LifecycleEvent,
    OverrideBody,
    OverrideResponse,
    PropertyFeaturePayload,
    ReportFromRunBody,
    ReportValuationRange,
    RunCandidate,
    SearchBody,
    Strategy,
    ValidationResult,
    ValuationOutput,
)

logger = logging.getLogger(__name__)

# Process-wide audit trail; swap for a persistent AuditSink in production.
audit_log = InMemoryAuditLog()

# Read-modify-write on a stored run or report happens under its lock (per process).
_locks: TTLCache = TTLCache(maxsize=4096, ttl=settings.RUN_TTL_SECONDS)
_locks_guard = threading.Lock()

def entity_lock(kind: str, key: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(f"{kind}:{key}")
        if lock is None:
            lock = _locks[f"{kind}:{key}"] = threading.Lock()
        return lock

def dedupe_pool(pool: list[PropertyFeaturePayload]) -> tuple[list[PropertyFeaturePayload], int]:
    """Drop repeated transactions by fingerprint; first occurrence wins."""
    seen: set[str] = set()
    unique = []
    for item in pool:
        key = duplicate_fingerprint(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique, len(pool) - len(unique)

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

class ValuationService:
    """
    Orchestrates:
      pool → dedupe → search → adjust → stored run
      run → (manual overrides) → outlier filter + aggregate → grounded report
    The engine stays pure; runs and reports live in the run store, override
    events go to the audit sink.
    """
    def __init__(
        self,
        comps: ComparablesClient | None = None,
        audit: InMemoryAuditLog | None = None,
        store: RunStore | None = None,
    ):
        self.comps = comps or comparables_client()
        self.audit = audit if audit is not None else audit_log
        self.store = store or run_store

    # ----- runs -----

    def _record(self, entity_type: str, entity_id: str, event_type: str, payload: dict) -> None:
        self.audit.append([LifecycleEvent(
            id=f"audit_{uuid.uuid4()}",
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            payload=payload,
            created_at=_now_iso(),
        )])

    def _save_run(self, run: ComparableRun) -> None:
        self.store.put("run", run.run_id, run)

    def get_run(self, run_id: str) -> ComparableRun:
        run = self.store.load("run", run_id, ComparableRun)
        if run is None:
            raise HTTPException(status_code=404, detail="Comparable run not found")
        return run

    async def search(self, body: SearchBody) -> ComparableRun:
        started = time.perf_counter()
        subject = body.subject
        pool = body.comparables_pool
        if pool is None:
            pool = await self.comps.recent_sales(subject, settings.COMPS_RADIUS_METERS, settings.COMPS_POOL_SIZE)

        unique, dropped = dedupe_pool(pool)
        top_k = min(body.top_k or settings.DEFAULT_TOP_K, settings.MAX_TOP_K)
        ranked = search_top_comparables(
            ComparableSearchRequest(subject=subject, comparables_pool=unique, top_k=top_k)
        )
        candidates = [
            RunCandidate(**dict(apply_adjustments(subject, hit)), candidate_id=f"cand_{uuid.uuid4()}")
            for hit in ranked
        ]

        run = ComparableRun(
            run_id=f"run_{uuid.uuid4()}",
            created_at=_now_iso(),
            requested_by=body.requested_by,
            elapsed_ms=int((time.perf_counter() - started) * 1000),
            subject=subject,
            duplicates_dropped=dropped,
            candidates=candidates,
        )
        self._save_run(run)
        self._record("comparable-run", run.run_id, "create", {
            "requested_by": run.requested_by,
            "top_k": top_k,
            "candidates": len(candidates),
        })
        logger.info(
            "comparable run %s: pool=%d duplicates=%d kept=%d",
            run.run_id, len(pool), dropped, len(candidates),
        )
        return run

    def override(self, run_id: str, body: OverrideBody) -> OverrideResponse:
        with entity_lock("run", run_id):
            run = self.get_run(run_id)
            idx = next((i for i, c in enumerate(run.candidates) if c.candidate_id == body.candidate_id), None)
            if idx is None:
                raise HTTPException(status_code=404, detail="Candidate not found in run")

            updated, events = apply_manual_override(run.candidates[idx], body.patch, body.appraiser_id, body.reason)
            run.candidates[idx] = updated
            self._save_run(run)
            self.audit.append(events)
        MANUAL_OVERRIDES.inc(len(events))
        logger.info(
            "override on run %s candidate %s by %s: fields=%s",
            run_id, body.candidate_id, body.appraiser_id, [e.field for e in events],
        )
        return OverrideResponse(
            run_id=run_id,
            candidate_id=body.candidate_id,
            adjustment=updated.adjustment,
            events=events,
        )

    def audit_events(self) -> AuditEventsResponse:
        return AuditEventsResponse(count=len(self.audit), events=self.audit.latest(settings.AUDIT_PAGE_SIZE))

    # ----- valuation -----

    def _valuate(self, run: ComparableRun, strategy: Strategy | None) -> ValuationOutput:
        output = valuate_from_comparables(
            run.candidates,
            strategy or settings.DEFAULT_STRATEGY,
            min_items=settings.OUTLIER_MIN_ITEMS,
            iqr_multiplier=settings.IQR_MULTIPLIER,
        )
        record_valuation(output)
        logger.info(
            "valuation for run %s: strategy=%s mid=%d confidence=%d used=%d rejected=%d",
            run.run_id, output.strategy, output.range.mid, output.confidence_score,
            output.comparables_used, len(output.rejected_outliers),
        )
        return output

    def estimate(self, run_id: str, strategy: Strategy | None = None) -> EstimateResponse:
        run = self.get_run(run_id)
        output = self._valuate(run, strategy)
        self._record("valuation", run_id, "create", {
            "strategy": output.strategy,
            "range": output.range.model_dump(),
            "confidence_score": output.confidence_score,
        })
        return EstimateResponse(run_id=run_id, **dict(output))

    # ----- reports -----

    def prompt_bundle(self, report: GroundedReportInput) -> GroundedPromptBundle:
        return build_grounded_prompt_bundle(report)

    def validate(self, report: GroundedReportInput) -> list[ValidationResult]:
        return validate_report_consistency(report)

    def draft_report(self, report: GroundedReportInput, run_id: str | None = None) -> GeneratedAppraisalReport:
        draft = generate_deterministic_report_draft(report)
        self.store.put("report", draft.report_id, draft)
        self._record("report", draft.report_id, "create", {
            "run_id": run_id,
            "property_id": report.property.id,
            "template_id": report.template.template_id,
            "language": report.template.language,
        })
        record_report(draft)
        logger.info(
            "report %s drafted: findings=%s ready=%s",
            draft.report_id, [v.key for v in draft.validations], draft.ready_for_final_approval,
        )
        return draft

    def report_from_run(self, body: ReportFromRunBody) -> GeneratedAppraisalReport:
        run = self.get_run(body.run_id)
        output = self._valuate(run, body.strategy)
        rejected = set(output.rejected_outliers)
        used = [c for c in run.candidates if c.comparable.id not in rejected]

        report = GroundedReportInput(
            property=body.property,
            comparables=[
                ComparableReportItem(
                    id=c.comparable.id,
                    address=c.comparable.address,
                    similarity=min(1.0, c.similarity),
                    distance_meters=c.distance_meters,
                    sale_date=c.comparable.sale_date.isoformat(),
                    sale_price=c.comparable.sale_price,
                    adjusted_price=c.adjustment.adjusted_price,
                    adjustment_breakdown={
                        **{name: getattr(c.adjustment, name) for name in ADJUSTMENT_FIELDS},
                        "total_percent": c.adjustment.total_percent,
                    },
                    explanation=c.explanation,
                )
                for c in used
            ],
            document_facts=body.document_facts,
            image_evidence=body.image_evidence,
            valuation_range=ReportValuationRange(**output.range.model_dump()),
            confidence_score=output.confidence_score,
            template=body.template,
        )
        return self.draft_report(report, run_id=run.run_id)

    def get_report(self, report_id: str) -> GeneratedAppraisalReport:
        report = self.store.load("report", report_id, GeneratedAppraisalReport)
        if report is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return report

    def finalize(self, report_id: str, body: FinalizeBody) -> FinalizedReport:
        with entity_lock("report", report_id):
            report = self.get_report(report_id)
            if report.finalization is not None:
                raise HTTPException(status_code=409, detail="Report is already finalized")
            if not report.ready_for_final_approval:
                raise HTTPException(
                    status_code=409,
                    detail="Report has validation errors and cannot be finalized",
                )
            record = FinalizedReport(
                report_id=report_id,
                version=report.version + 1,
                signature_id=f"sig_{uuid.uuid4()}",
                approved_by=body.appraiser_id,
                approval_comment=body.approval_comment,
                approved_at=_now_iso(),
            )
            self.store.put("report", report_id, report.model_copy(update={
                "version": record.version,
                "finalization": record,
            }))
            self._record("report", report_id, "finalize", record.model_dump())
        logger.info("report %s finalized by %s as v%d", report_id, body.appraiser_id, record.version)
        return record

def valuation_service() -> ValuationService:
    # Cheap factory; clients are light and state lives in the run store and audit sink.
    return ValuationService()
