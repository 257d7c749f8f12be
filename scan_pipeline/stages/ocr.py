"""
Label reading: OCR text -> product name, ingredient section, search query.
"""
import re
from typing import List, Optional

from ..collaborators import OCREngine
from ..ingredients.normalizer import LABEL_PATTERN, normalise
from ..schemas import (
    Candidate,
    CandidateSource,
    ErrorKind,
    Evidence,
    IngredientToken,
    ScanInput,
    StageName,
    StageOutcome,
    StageStatus,
)
from .base import IdentificationStage, StageError

ALL_CAPS_LINE = re.compile(r"^[A-Z][A-Z\s&'\-]*$")
TITLE_CASE_LINE = re.compile(r"^[A-Z][a-z'\-]+(?:\s+(?:&\s+)?[A-Z][a-z'\-]+)*$")
INGREDIENT_MARKER = re.compile(
    r"(?:\d+\s*[-–]\s*)?\b(?:ingredients?|inci|composition|contains?)\b\s*:?",
    re.IGNORECASE,
)
PARENS_OR_PERCENT = re.compile(r"\([^)]*\)|\d+(?:[.,]\d+)?\s*%")


def extract_product_name(text: str, max_lines: int = 5) -> Optional[str]:
    """
    Product name among the first lines of a label: an all-caps or Title Case
    line longer than 3 characters that is not a number or an ingredient header.
    """
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    for line in lines[:max_lines]:
        if len(line) <= 3 or line.replace(" ", "").isdigit():
            continue
        if LABEL_PATTERN.match(line) and not LABEL_PATTERN.sub("", line).strip():
            continue
        if ALL_CAPS_LINE.match(line) or TITLE_CASE_LINE.match(line):
            return line
    return None


def locate_ingredient_section(text: str) -> str:
    """
    Text following the first ingredient marker; a bare comma-separated list
    is returned whole. Empty when the label has no recognisable list.
    """
    if not text:
        return ""
    found = INGREDIENT_MARKER.search(text)
    if found:
        return text[found.end():].strip()
    if text.count(",") >= 3:
        return text.strip()
    return ""


def query_from_ingredients(tokens: List[IngredientToken], count: int = 5) -> str:
    """Search query built from the first ingredients, asides and percentages removed."""
    parts = []
    for token in tokens[:count]:
        cleaned = re.sub(r"\s+", " ", PARENS_OR_PERCENT.sub(" ", token.raw_name)).strip()
        if cleaned:
            parts.append(cleaned)
    return " ".join(parts)


class OCRExtractionStage(IdentificationStage):
    """
    Read the label. Produces an evidence candidate (never accepted on its own)
    and the query the name search runs with.
    """
    name = StageName.OCR_EXTRACTION
    short_circuits = False

    def __init__(self, ocr_engine: Optional[OCREngine], settings=None, **kwargs):
        super().__init__(settings, **kwargs)
        self.ocr_engine = ocr_engine
        self.confidence_with_name = float(self.settings.get("confidence_with_name", 0.35))
        self.confidence_without_name = float(self.settings.get("confidence_without_name", 0.15))

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        if scan_input.image is None:
            return "no image supplied"
        if self.ocr_engine is None:
            return "OCR not configured"
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        result = await self.ocr_engine.extract_text(scan_input.image)
        if not result.success:
            raise StageError(ErrorKind.STAGE_TRANSPORT_ERROR,
                             f"OCR failed: {result.error}" if result.error else "OCR failed")
        text = (result.text or "").strip()
        if not text:
            return self.outcome(StageStatus.NO_MATCH, error=ErrorKind.STAGE_NO_MATCH,
                                reason="no text on label")

        product_name = extract_product_name(text)
        section = locate_ingredient_section(text)
        tokens = normalise(section)
        query = product_name or query_from_ingredients(tokens) or text[:100].strip()

        candidate = Candidate(
            name=product_name or query,
            ingredients_raw_text=section or None,
            image_ref=scan_input.image,
            source=CandidateSource.OCR_SEARCH,
            confidence=self.confidence_with_name if product_name else self.confidence_without_name,
        )
        found = "product name" if product_name else "no product name"
        return self.outcome(
            StageStatus.MATCHED,
            candidate=candidate,
            reason=f"label read ({found}, {len(tokens)} ingredients)",
            search_query=query,
            ocr_product_name=product_name,
        )
