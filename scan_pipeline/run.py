"""
Cascade orchestrator - single entry point for product identification.

Runs the configured stages in order, stops at the first accepted candidate,
then normalises, matches and scores the recovered ingredient list. Every
scan returns a complete IdentificationResult; stage failures never raise.
"""
import time
from typing import List, Optional, Tuple

from .collaborators import Collaborators, ProgressSink
from .config_loader import CascadeConfig, load_cascade_config
from .feature_flags import FLAGS, trace
from .ingredients.matcher import IngredientMatcher, unmatched_names
from .ingredients.normalizer import MAX_TOKENS, count_tokens, normalise
from .ingredients.scoring import SafetyScorer
from .progress import ProgressTracker
from .schemas import (
    Candidate,
    ChildProfile,
    ErrorKind,
    Evidence,
    IdentificationResult,
    ScanInput,
    ScanStatus,
    StageName,
    StageOutcome,
    StageStatus,
)
from .stages import IdentificationStage, ScanContext, build_stages
from .stages.base import Clock, has_ingredients

OCR_STAGES = (StageName.OCR_EXTRACTION, StageName.NAME_SEARCH)
AI_STAGES = (StageName.AI_VISION, StageName.DATABASE_RECONCILIATION)


def _apply_flags(stage_names: List[StageName]) -> List[StageName]:
    """Drop stages switched off by feature flags."""
    names = list(stage_names)
    if not FLAGS.enable_ocr:
        names = [n for n in names if n not in OCR_STAGES]
    if not FLAGS.enable_ai_vision:
        names = [n for n in names if n not in AI_STAGES]
    return names


def _explain(trace_: List[StageOutcome]) -> str:
    reasons = []
    for outcome in trace_:
        if outcome.status == StageStatus.SKIPPED:
            continue
        reasons.append(outcome.reason or f"{outcome.stage_name.value} {outcome.status.value}")
    return ", ".join(reasons) if reasons else "no stage could run for this input"


class CascadeOrchestrator:
    """
    Sequential identification cascade with short-circuiting.

    Args:
        collaborators: Database, ingredient store and optional decoder/OCR/vision
        cfg: CascadeConfig (default: packaged configs)
        profile: Named stage list from cascade_profiles.yml
        stage_names: Explicit stage list; overrides `profile`
        progress_sink: Optional observer of step status changes
        clock: Monotonic clock in seconds for latency measurement

    Example:
        >>> import asyncio
        >>> from scan_pipeline.run import CascadeOrchestrator
        >>> from scan_pipeline.collaborators import Collaborators, load_ingredient_store, load_product_catalog
        >>> from scan_pipeline.schemas import ScanInput, ChildProfile
        >>>
        >>> collaborators = Collaborators(
        ...     product_db=load_product_catalog("products.yml"),
        ...     ingredient_store=load_ingredient_store(),
        ... )
        >>> orchestrator = CascadeOrchestrator(collaborators)
        >>> result = asyncio.run(orchestrator.identify(ScanInput(barcode="5000000000017"), ChildProfile(age_years=8)))
        >>> print(result.status, result.safety_score.band)
    """

    def __init__(
        self,
        collaborators: Collaborators,
        cfg: Optional[CascadeConfig] = None,
        *,
        profile: str = "default",
        stage_names: Optional[List[StageName]] = None,
        progress_sink: Optional[ProgressSink] = None,
        clock: Clock = time.perf_counter,
    ):
        self.collaborators = collaborators
        self.cfg = cfg or load_cascade_config()
        self.profile = profile
        names = stage_names if stage_names is not None else self.cfg.profile(profile)
        self.stage_names = _apply_flags(names)
        self.stages: List[IdentificationStage] = build_stages(self.stage_names, collaborators, self.cfg, clock=clock)
        self.progress_sink = progress_sink
        self.matcher = IngredientMatcher.from_config(self.cfg.matching)
        self.scorer = SafetyScorer(self.cfg.safety_rules)
        self.max_tokens = int(self.cfg.matching.get("max_tokens", MAX_TOKENS))

    @property
    def ingredient_store_version(self) -> str:
        return getattr(self.collaborators.ingredient_store, "version", "unknown")

    async def identify(self, scan_input: ScanInput, profile: ChildProfile,
                       ctx: Optional[ScanContext] = None) -> IdentificationResult:
        """
        Identify the scanned product and score it for `profile`.

        Args:
            scan_input: Barcode and/or image handle
            profile: Child the safety score is computed for
            ctx: Cancellable scan context (created when omitted)

        Returns:
            IdentificationResult with the full stage trace, even on failure
        """
        if scan_input.is_empty:
            trace("CASCADE", "invalid input: neither barcode nor image supplied")
            return IdentificationResult(
                status=ScanStatus.INVALID_INPUT,
                error=ErrorKind.INVALID_INPUT,
                explanation="scan input has neither a barcode nor an image",
                config_version=self.cfg.config_version,
                ingredient_store_version=self.ingredient_store_version,
            )

        ctx = ctx or ScanContext()
        tracker = ProgressTracker(self.stage_names, self.progress_sink)
        evidence = Evidence(scan_input=scan_input)
        final: Optional[Candidate] = None

        for stage in self.stages:
            if ctx.cancelled:
                trace("CASCADE", f"cancelled before {stage.name.value}")
                break
            # Steps that cannot run never show as active
            applicable = stage.skip_reason(scan_input, evidence) is None
            if applicable:
                tracker.start(stage.name)
            else:
                tracker.skip(stage.name)
            outcome = await stage.run(ctx, scan_input, evidence)
            evidence = evidence.extend(outcome)
            if applicable:
                tracker.finish(stage.name, produced_candidate=outcome.candidate is not None
                               and outcome.status == StageStatus.MATCHED)
            if stage.accepts(outcome):
                final = outcome.candidate
                trace("CASCADE", f"accepted {final.display_name!r} from {stage.name.value} "
                                 f"({final.confidence:.2f} >= {stage.accept_threshold:.2f})")
                break
            if outcome.error == ErrorKind.CANCELLED:
                break
        tracker.finalize()

        return self._build_result(evidence, final, profile)

    def _ingredient_text(self, evidence: Evidence, final: Optional[Candidate]) -> Tuple[Optional[str], Optional[str]]:
        """Ingredient text to score and where it came from."""
        min_chars = self.cfg.min_ingredient_chars
        if final is not None:
            if has_ingredients(final.ingredients_raw_text, min_chars):
                return final.ingredients_raw_text, final.source.value
            return None, None
        # Not identified: rejected database guesses describe another product,
        # so only the printed label or the vision model's reading is scored
        for stage_name in (StageName.OCR_EXTRACTION, StageName.AI_VISION):
            candidate = evidence.candidate_from(stage_name)
            if candidate is not None and has_ingredients(candidate.ingredients_raw_text, min_chars):
                return candidate.ingredients_raw_text, candidate.source.value
        return None, None

    def _build_result(self, evidence: Evidence, final: Optional[Candidate],
                      profile: ChildProfile) -> IdentificationResult:
        text, ingredient_source = self._ingredient_text(evidence, final)
        matches = []
        safety_score = None
        truncated = False
        if text:
            tokens = normalise(text, limit=self.max_tokens)
            truncated = count_tokens(text) > len(tokens)
            if tokens:
                matches = self.matcher.match_all(tokens, self.collaborators.ingredient_store)
                safety_score = self.scorer.score(matches, profile)
        status = ScanStatus.IDENTIFIED if final is not None else ScanStatus.NOT_IDENTIFIED
        explanation = _explain(list(evidence.outcomes))
        trace("CASCADE", f"{status.value}: {explanation}")

        return IdentificationResult(
            status=status,
            final_candidate=final,
            stage_trace=list(evidence.outcomes),
            candidates=evidence.candidates,
            matched_ingredients=matches,
            new_ingredient_candidates=unmatched_names(matches),
            ingredients_truncated=truncated,
            ingredient_source=ingredient_source if matches else None,
            safety_score=safety_score,
            overall_confidence=final.confidence if final is not None else 0.0,
            explanation=explanation,
            config_version=self.cfg.config_version,
            ingredient_store_version=self.ingredient_store_version,
        )

    def score(self, result: IdentificationResult, profile: ChildProfile) -> IdentificationResult:
        """Re-score an existing result for another child profile."""
        if not result.matched_ingredients:
            return result
        return result.model_copy(update={"safety_score": self.scorer.score(result.matched_ingredients, profile)})


async def identify(scan_input: ScanInput, profile: ChildProfile, collaborators: Collaborators,
                   cfg: Optional[CascadeConfig] = None, *, profile_name: str = "default",
                   ctx: Optional[ScanContext] = None,
                   progress_sink: Optional[ProgressSink] = None) -> IdentificationResult:
    """Run one scan with a throwaway orchestrator."""
    orchestrator = CascadeOrchestrator(collaborators, cfg, profile=profile_name, progress_sink=progress_sink)
    return await orchestrator.identify(scan_input, profile, ctx)
