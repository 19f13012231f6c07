import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol

from ..schemas import ADJUSTMENT_FIELDS, AuditEvent, ComparableWithAdjustment, ManualOverrideEvent
from .adjustments import compose_adjustment

logger = logging.getLogger(__name__)

class AuditSink(Protocol):
    """Append-only destination for override and lifecycle events. Callers own persistence."""
    def append(self, events: Iterable[AuditEvent]) -> None: ...

class InMemoryAuditLog(AuditSink):
    """Process-local AuditSink. Events are frozen models and never removed."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append(self, events: Iterable[AuditEvent]) -> None:
        self._events.extend(events)

    def __len__(self) -> int:
        return len(self._events)

    def latest(self, limit: int) -> list[AuditEvent]:
        """Newest first."""
        return list(reversed(self._events[-limit:])) if limit > 0 else []

def _is_number(value: Any) -> bool:
    # bool is an int subclass; it is not a percentage
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)

def apply_manual_override(
    comparable: ComparableWithAdjustment,
    patch: Mapping[str, Any],
    appraiser_id: str,
    reason: str,
    at: datetime | None = None,
) -> tuple[ComparableWithAdjustment, list[ManualOverrideEvent]]:
    """
    Patch any subset of the ten adjustment fields and recompute the total and
    the adjusted price. Returns the updated comparable and one audit event per
    numeric field in the patch; anything else in the patch is skipped.

    No side effects: appending the events to an AuditSink is the caller's job.
    """
    timestamp = (at or datetime.now(timezone.utc)).isoformat()
    current = comparable.adjustment
    factors = {name: getattr(current, name) for name in ADJUSTMENT_FIELDS}
    events = []

    for name, value in patch.items():
        if name not in factors or not _is_number(value):
            continue
        events.append(ManualOverrideEvent(
            comparable_id=comparable.comparable.id,
            field=name,
            old_value=getattr(current, name),
            new_value=float(value),
            reason=reason,
            appraiser_id=appraiser_id,
            timestamp=timestamp,
        ))
        factors[name] = float(value)

    adjustment = compose_adjustment(comparable.comparable.sale_price, factors)
    logger.debug(
        "override on %s by %s: %d field(s), total %.4f -> %.4f",
        comparable.comparable.id, appraiser_id, len(events), current.total_percent, adjustment.total_percent,
    )
    return comparable.model_copy(update={"adjustment": adjustment}), events
