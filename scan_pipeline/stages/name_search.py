"""
Text search of the product database with what the label says.
"""
from typing import Optional

from ..collaborators import ProductDatabase
from ..ingredients.normalizer import text_similarity
from ..schemas import CandidateSource, ErrorKind, Evidence, ScanInput, StageName, StageOutcome, StageStatus
from .base import IdentificationStage, candidate_from_record, has_ingredients


class NameSearchStage(IdentificationStage):
    """
    Search by the OCR query. Confidence blends the index score with our own
    name similarity and is capped below barcode certainty.
    """
    name = StageName.NAME_SEARCH

    def __init__(self, product_db: ProductDatabase, settings=None, min_ingredient_chars: int = 10, **kwargs):
        super().__init__(settings, **kwargs)
        self.product_db = product_db
        self.confidence_cap = float(self.settings.get("confidence_cap", 0.85))
        self.search_limit = int(self.settings.get("search_limit", 5))
        self.min_ingredient_chars = min_ingredient_chars

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        if not evidence.attribute("search_query"):
            return "no label text to search"
        return None

    def _confidence(self, query: str, index_score: float, display_name: str) -> float:
        blended = 0.5 * index_score + 0.5 * text_similarity(query, display_name)
        return round(min(self.confidence_cap, blended), 4)

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        query = evidence.attribute("search_query")
        results = await self.product_db.search_by_text(query, self.search_limit)
        if not results:
            return self.outcome(StageStatus.NO_MATCH, error=ErrorKind.STAGE_NO_MATCH,
                                reason="no product matched label text", search_query=query)

        scored = [(self._confidence(query, r.score, r.record.display_name), idx, r) for idx, r in enumerate(results)]
        confidence, _, best = max(scored, key=lambda item: (item[0], -item[1]))
        record = best.record

        ocr_candidate = evidence.candidate_from(StageName.OCR_EXTRACTION)
        overrides = {}
        if not has_ingredients(record.ingredients_text, self.min_ingredient_chars) and ocr_candidate is not None:
            # Product known but without a usable list: keep what the label says
            overrides["ingredients_raw_text"] = ocr_candidate.ingredients_raw_text

        candidate = candidate_from_record(record, CandidateSource.OCR_SEARCH, confidence, **overrides)
        if confidence < self.accept_threshold:
            return self.outcome(StageStatus.NO_MATCH, candidate=candidate, error=ErrorKind.LOW_CONFIDENCE,
                                reason=f"name match {confidence:.2f} < {self.accept_threshold:.2f}",
                                search_query=query)
        return self.outcome(StageStatus.MATCHED, candidate=candidate,
                            reason=f"name matched '{record.display_name}' ({confidence:.2f})",
                            search_query=query)
