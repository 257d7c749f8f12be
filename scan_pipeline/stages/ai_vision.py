"""
AI vision identification and reconciliation of its guess with the database.
"""
from typing import Optional

from ..collaborators import ProductDatabase, VisionIdentifier
from ..ingredients.normalizer import text_similarity
from ..schemas import Candidate, CandidateSource, ErrorKind, Evidence, ScanInput, StageName, StageOutcome, StageStatus
from .base import IdentificationStage, StageError, candidate_from_record, has_ingredients


class AIVisionStage(IdentificationStage):
    """
    Ask a vision model what the product is. Evidence only: the reconciliation
    stage decides what the cascade finally returns.
    """
    name = StageName.AI_VISION
    short_circuits = False

    def __init__(self, vision: Optional[VisionIdentifier], settings=None, **kwargs):
        super().__init__(settings, **kwargs)
        self.vision = vision
        self.min_confidence = float(self.settings.get("min_confidence", 0.3))

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        if scan_input.image is None:
            return "no image supplied"
        if self.vision is None:
            return "AI vision not configured"
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        ident = await self.vision.identify(scan_input.image)
        named = bool((ident.name or "").strip())
        if not ident.success:
            detail = ident.error or "unknown error"
            if (named or ident.confidence > 0) and ident.confidence < self.min_confidence:
                # A reading the provider itself did not trust
                raise StageError(ErrorKind.LOW_CONFIDENCE,
                                 f"AI vision confidence {ident.confidence:.2f} < {self.min_confidence:.2f} ({detail})")
            raise StageError(ErrorKind.STAGE_TRANSPORT_ERROR, f"AI vision failed: {detail}")
        if ident.confidence < self.min_confidence:
            raise StageError(ErrorKind.LOW_CONFIDENCE,
                             f"AI vision confidence {ident.confidence:.2f} < {self.min_confidence:.2f}")
        if not named:
            raise StageError(ErrorKind.LOW_CONFIDENCE, "AI vision returned no product name")

        candidate = Candidate(
            name=ident.name.strip(),
            brand=ident.brand,
            category=ident.category,
            image_ref=scan_input.image,
            ingredients_raw_text=", ".join(ident.key_ingredients) or None,
            size_hint=ident.size_hint,
            source=CandidateSource.AI_VISION,
            confidence=ident.confidence,
        )
        return self.outcome(StageStatus.MATCHED, candidate=candidate,
                            reason=f"AI vision identified '{candidate.display_name}' ({ident.confidence:.2f})",
                            provider=ident.provider)


class DatabaseReconciliationStage(IdentificationStage):
    """
    Look up the AI guess in the product database.

    (a) match with ingredients     -> database data, high confidence
    (b) match without ingredients  -> database name/brand, AI ingredients, flagged
    (c) no match                   -> AI data as-is, flagged for review
    (d) no AI guess                -> skipped
    """
    name = StageName.DATABASE_RECONCILIATION

    def __init__(self, product_db: ProductDatabase, settings=None, min_ingredient_chars: int = 10, **kwargs):
        super().__init__(settings, **kwargs)
        self.product_db = product_db
        self.confidence_with_ingredients = float(self.settings.get("confidence_with_ingredients", 0.9))
        self.confidence_without_ingredients = float(self.settings.get("confidence_without_ingredients", 0.7))
        self.min_record_similarity = float(self.settings.get("min_record_similarity", 0.5))
        self.min_ingredient_chars = min_ingredient_chars

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        if evidence.candidate_from(StageName.AI_VISION) is None:
            return "AI vision did not identify the product"
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        guess = evidence.candidate_from(StageName.AI_VISION)
        query = guess.display_name
        results = await self.product_db.search_by_text(query, 1)

        record = None
        if results:
            top = results[0].record
            similarity = max(text_similarity(query, top.display_name), text_similarity(guess.name, top.name))
            if similarity >= self.min_record_similarity:
                record = top

        if record is not None and has_ingredients(record.ingredients_text, self.min_ingredient_chars):
            candidate = candidate_from_record(record, CandidateSource.DATABASE, self.confidence_with_ingredients,
                                              size_hint=record.size or guess.size_hint)
            return self.outcome(StageStatus.MATCHED, candidate=candidate,
                                reason="AI guess confirmed by database", reconciliation_query=query)

        if record is not None:
            candidate = candidate_from_record(
                record,
                CandidateSource.DATABASE,
                self.confidence_without_ingredients,
                ingredients_raw_text=guess.ingredients_raw_text,
                size_hint=record.size or guess.size_hint,
                needs_review=True,
                review_reason="database record has no ingredient list; ingredients from AI vision",
            )
            return self.outcome(StageStatus.MATCHED, candidate=candidate,
                                reason="database record incomplete, AI ingredients used", reconciliation_query=query)

        candidate = guess.model_copy(update={
            "needs_review": True,
            "review_reason": "not found in product database",
        })
        return self.outcome(StageStatus.MATCHED, candidate=candidate,
                            reason="AI guess not in database, flagged for review", reconciliation_query=query)
