"""
Scan progress tracking for observers (UI spinners, step lists).

The tracker mirrors the cascade as a list of user-facing steps. It never
influences control flow: sink failures are reported and dropped.
"""
from typing import Dict, List, Optional, Tuple

from .collaborators import ProgressSink
from .feature_flags import trace
from .schemas import StageName

PENDING = "pending"
ACTIVE = "active"
COMPLETE = "complete"
SKIPPED = "skipped"

# step_id -> label shown to the user
STEP_LABELS: Dict[str, str] = {
    "barcode": "Checking for barcode",
    "database": "Searching databases",
    "ocr": "Reading product label",
    "name_match": "Matching product",
    "ai": "AI analyzing image",
    "details": "Loading details",
}

STAGE_STEPS: Dict[StageName, str] = {
    StageName.BARCODE_LOOKUP: "barcode",
    StageName.DATABASE_MATCH: "database",
    StageName.OCR_EXTRACTION: "ocr",
    StageName.NAME_SEARCH: "name_match",
    StageName.AI_VISION: "ai",
    StageName.DATABASE_RECONCILIATION: "details",
}

_ALLOWED = {
    PENDING: {ACTIVE, SKIPPED},
    ACTIVE: {COMPLETE, SKIPPED},
    COMPLETE: set(),
    SKIPPED: set(),
}


class ProgressTracker:
    """
    Step-status state machine: pending -> active -> complete|skipped,
    or pending -> skipped for steps the cascade never reached.
    """

    def __init__(self, stages: List[StageName], sink: Optional[ProgressSink] = None):
        self.sink = sink
        self.steps: List[str] = [STAGE_STEPS[s] for s in stages]
        self._status: Dict[str, str] = {step: PENDING for step in self.steps}

    def status(self, step_id: str) -> str:
        return self._status[step_id]

    def snapshot(self) -> List[Tuple[str, str]]:
        return [(step, self._status[step]) for step in self.steps]

    def _set(self, step_id: str, status: str) -> None:
        if step_id not in self._status:
            raise ValueError(f"Unknown progress step: {step_id}")
        current = self._status[step_id]
        if status not in _ALLOWED[current]:
            raise ValueError(f"Invalid progress transition for {step_id}: {current} -> {status}")
        self._status[step_id] = status
        self._notify(step_id, status)

    def _notify(self, step_id: str, status: str) -> None:
        if self.sink is None:
            return
        try:
            self.sink.on_step_change(step_id, status)
        except Exception as e:
            trace("PROGRESS", f"sink failed on {step_id}={status}: {e}")

    def start(self, stage: StageName) -> None:
        self._set(STAGE_STEPS[stage], ACTIVE)

    def finish(self, stage: StageName, produced_candidate: bool) -> None:
        """Close the active step: complete when it yielded a candidate, else skipped."""
        self._set(STAGE_STEPS[stage], COMPLETE if produced_candidate else SKIPPED)

    def skip(self, stage: StageName) -> None:
        self._set(STAGE_STEPS[stage], SKIPPED)

    def finalize(self) -> None:
        """Mark every step the cascade never reached as skipped."""
        for step in self.steps:
            if self._status[step] in (PENDING, ACTIVE):
                self._set(step, SKIPPED)
