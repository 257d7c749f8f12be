"""
Shared stage contract: timeout, cancellation and failure isolation.

Concrete stages implement `_execute`; `run` wraps it so that no stage ever
raises into the orchestrator. Every failure becomes a StageOutcome.
"""
import asyncio
import time
from typing import Any, Callable, Dict, Optional

from ..feature_flags import trace
from ..schemas import (
    Candidate,
    CandidateSource,
    ErrorKind,
    Evidence,
    ProductRecord,
    ScanInput,
    StageName,
    StageOutcome,
    StageStatus,
)

Clock = Callable[[], float]


class StageError(Exception):
    """Raised inside a stage body to fail the stage with a specific kind."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ScanContext:
    """
    Cancellable context for one scan.

    `cancel()` interrupts the stage in flight; the orchestrator records it as
    failed and runs nothing further. `deadline_s` caps the whole scan: each
    stage timeout is shortened to the time remaining.
    """

    def __init__(self, deadline_s: Optional[float] = None, clock: Clock = time.monotonic):
        self._cancelled = asyncio.Event()
        self._clock = clock
        self._deadline = clock() + deadline_s if deadline_s is not None else None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def wait_cancelled(self) -> None:
        await self._cancelled.wait()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())


def candidate_from_record(record: ProductRecord, source: CandidateSource, confidence: float,
                          **overrides: Any) -> Candidate:
    """Candidate carrying a product database row."""
    fields = dict(
        name=record.name,
        brand=record.brand,
        category=record.category,
        image_ref=record.image_url,
        ingredients_raw_text=record.ingredients_text,
        barcode_value=record.barcode,
        size_hint=record.size,
        source=source,
        confidence=confidence,
    )
    fields.update(overrides)
    return Candidate(**fields)


def has_ingredients(text: Optional[str], min_chars: int) -> bool:
    return bool(text) and len(text.strip()) >= min_chars


class IdentificationStage:
    """
    Base class for cascade stages.

    Attributes:
        name: Stage identifier used in the trace
        short_circuits: Whether an accepted candidate from this stage ends the
            cascade. Evidence stages (OCR, AI vision) only feed later stages.
        accept_threshold: Minimum candidate confidence to stop the cascade
        timeout_s: Per-invocation timeout
    """
    name: StageName
    short_circuits: bool = True

    def __init__(self, settings: Optional[Dict[str, Any]] = None, clock: Clock = time.perf_counter):
        self.settings = dict(settings or {})
        self.accept_threshold = float(self.settings.get("accept", 1.0))
        self.timeout_s = float(self.settings.get("timeout_s", 10.0))
        self.clock = clock

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        """Reason this stage cannot run for this scan, or None when it applies."""
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        raise NotImplementedError

    def outcome(self, status: StageStatus, candidate: Optional[Candidate] = None,
                error: Optional[ErrorKind] = None, reason: Optional[str] = None,
                **attributes: str) -> StageOutcome:
        return StageOutcome(
            stage_name=self.name,
            status=status,
            candidate=candidate,
            error=error,
            reason=reason,
            attributes={k: v for k, v in attributes.items() if v is not None},
        )

    def accepts(self, outcome: StageOutcome) -> bool:
        """True when the outcome should end the cascade."""
        return (
            self.short_circuits
            and outcome.status == StageStatus.MATCHED
            and outcome.candidate is not None
            and outcome.candidate.confidence >= self.accept_threshold
        )

    def _timeout_for(self, ctx: ScanContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout_s
        return min(self.timeout_s, remaining)

    async def run(self, ctx: ScanContext, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        """
        Run the stage once, bounded by its timeout and the scan context.

        Returns:
            StageOutcome; never raises for stage failures. Cancellation of the
            calling task itself still propagates.
        """
        reason = self.skip_reason(scan_input, evidence)
        if reason is not None:
            trace("STAGE", f"{self.name.value}: skipped ({reason})")
            return self.outcome(StageStatus.SKIPPED, reason=reason)

        start = self.clock()
        timeout = self._timeout_for(ctx)
        body = asyncio.ensure_future(asyncio.wait_for(self._execute(scan_input, evidence), timeout))
        cancel_waiter = asyncio.ensure_future(ctx.wait_cancelled())
        try:
            done, _ = await asyncio.wait({body, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_waiter.cancel()
            if not body.done():
                body.cancel()

        if body not in done:
            await asyncio.gather(body, return_exceptions=True)
            outcome = self.outcome(StageStatus.FAILED, error=ErrorKind.CANCELLED,
                                   reason=f"{self.name.value} cancelled")
        else:
            outcome = self._collect(body, timeout)

        latency_ms = round((self.clock() - start) * 1000.0, 3)
        trace("STAGE", f"{self.name.value}: {outcome.status.value} "
                       f"({outcome.reason or '-'}) in {latency_ms:.1f}ms")
        return outcome.model_copy(update={"latency_ms": latency_ms})

    def _collect(self, body: "asyncio.Future[StageOutcome]", timeout: float) -> StageOutcome:
        try:
            return body.result()
        except asyncio.TimeoutError:
            return self.outcome(StageStatus.FAILED, error=ErrorKind.STAGE_TIMEOUT,
                                reason=f"{self.name.value} timed out after {timeout:.1f}s")
        except StageError as e:
            return self.outcome(StageStatus.FAILED, error=e.kind, reason=e.message)
        except Exception as e:
            return self.outcome(StageStatus.FAILED, error=ErrorKind.STAGE_TRANSPORT_ERROR,
                                reason=f"{self.name.value} failed: {type(e).__name__}: {e}")
