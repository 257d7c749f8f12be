"""
Pydantic schemas for the product identification cascade.

Every model is frozen: a value is created once inside a single scan and is
never mutated afterwards, so results can be shared with observers safely.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class StageName(str, Enum):
    BARCODE_LOOKUP = "barcode_lookup"
    DATABASE_MATCH = "database_match"
    OCR_EXTRACTION = "ocr_extraction"
    NAME_SEARCH = "name_search"
    AI_VISION = "ai_vision"
    DATABASE_RECONCILIATION = "database_reconciliation"


class StageStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    SKIPPED = "skipped"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Error taxonomy. Only INVALID_INPUT stops a scan before any stage runs."""
    STAGE_TIMEOUT = "stage_timeout"
    STAGE_TRANSPORT_ERROR = "stage_transport_error"
    STAGE_NO_MATCH = "stage_no_match"
    LOW_CONFIDENCE = "low_confidence"
    MATCHING_AMBIGUOUS = "matching_ambiguous"
    INVALID_INPUT = "invalid_input"
    CANCELLED = "cancelled"


class CandidateSource(str, Enum):
    DATABASE = "database"
    OCR_SEARCH = "ocr_search"
    AI_VISION = "ai_vision"


class SafetyBand(str, Enum):
    """Six-tier safety band. Lower is safer."""
    VERY_LOW = "very_low"
    LOW = "low"
    MILD = "mild"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class MatchConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    NONE = "none"


class ScanStatus(str, Enum):
    IDENTIFIED = "identified"
    NOT_IDENTIFIED = "not_identified"
    INVALID_INPUT = "invalid_input"


class ScanInput(_Frozen):
    """What the caller scanned: a barcode value, an image handle, or both."""
    barcode: Optional[str] = None
    image_ref: Optional[str] = None  # opaque: path, data: URI or http(s) URL

    @property
    def barcode_value(self) -> Optional[str]:
        value = (self.barcode or "").strip()
        return value or None

    @property
    def image(self) -> Optional[str]:
        value = (self.image_ref or "").strip()
        return value or None

    @property
    def is_empty(self) -> bool:
        return self.barcode_value is None and self.image is None


class Candidate(_Frozen):
    """A product hypothesis produced by a stage."""
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    image_ref: Optional[str] = None
    ingredients_raw_text: Optional[str] = None
    barcode_value: Optional[str] = None
    size_hint: Optional[str] = None
    source: CandidateSource
    confidence: float = Field(ge=0.0, le=1.0)
    needs_review: bool = False
    review_reason: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.brand or ''} {self.name}".strip()


class StageOutcome(_Frozen):
    """Result of one stage invocation, recorded in the stage trace."""
    stage_name: StageName
    status: StageStatus
    candidate: Optional[Candidate] = None
    latency_ms: float = 0.0
    error: Optional[ErrorKind] = None
    reason: Optional[str] = None
    # Evidence recovered by the stage for later stages (barcode tried, query, ...)
    attributes: Dict[str, str] = Field(default_factory=dict)


class IngredientToken(_Frozen):
    raw_name: str
    normalised_name: str
    position: int = Field(ge=0)


class CanonicalIngredient(_Frozen):
    """Entry of the canonical ingredient store."""
    id: str
    name: str
    synonyms: List[str] = Field(default_factory=list)
    safety_band: SafetyBand
    base_score: int = Field(ge=0, le=100)
    allergen_groups: List[str] = Field(default_factory=list)
    irritant: bool = False
    family: Optional[str] = None


class MatchResult(_Frozen):
    token: IngredientToken
    matched: bool
    canonical_ingredient: Optional[CanonicalIngredient] = None
    match_confidence: MatchConfidence = MatchConfidence.NONE
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    ambiguous: bool = False

    @model_validator(mode="after")
    def _check_match_consistency(self) -> "MatchResult":
        if self.matched != (self.canonical_ingredient is not None):
            raise ValueError("matched must be true exactly when a canonical ingredient is set")
        if self.matched == (self.match_confidence == MatchConfidence.NONE):
            raise ValueError("match_confidence 'none' is reserved for unmatched tokens")
        return self


class Flag(_Frozen):
    """One explained adjustment applied by the safety scorer."""
    ingredient_id: Optional[str] = None
    ingredient_name: str
    reason: str
    severity_delta: int
    critical: bool = False


class IngredientContribution(_Frozen):
    ingredient_id: Optional[str] = None
    ingredient_name: str
    severity: int = Field(ge=0, le=100)


class SafetyScore(_Frozen):
    raw: int = Field(ge=0, le=100)
    band: SafetyBand
    critical_flags: List[Flag] = Field(default_factory=list)
    flags: List[Flag] = Field(default_factory=list)
    contributions: List[IngredientContribution] = Field(default_factory=list)


class ChildProfile(_Frozen):
    name: Optional[str] = None
    age_years: int = Field(ge=0)
    allergies: List[str] = Field(default_factory=list)
    has_eczema: bool = False
    has_sensitive_skin: bool = False


class ProductRecord(_Frozen):
    """Row of the product database."""
    id: str
    barcode: Optional[str] = None
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    ingredients_text: Optional[str] = None
    size: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.brand or ''} {self.name}".strip()


class ScoredProductRecord(_Frozen):
    record: ProductRecord
    score: float = Field(ge=0.0, le=1.0)


class DecodedBarcode(_Frozen):
    value: str
    format: str = "unknown"


class OCRText(_Frozen):
    text: str = ""
    success: bool = True
    error: Optional[str] = None


class VisionIdentification(_Frozen):
    """What a vision model believes the product is."""
    name: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    key_ingredients: List[str] = Field(default_factory=list)
    size_hint: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    success: bool = True
    error: Optional[str] = None
    provider: Optional[str] = None


class Evidence(_Frozen):
    """
    Immutable accumulation of everything earlier stages produced in one scan.

    Stages read it; only the orchestrator extends it, one outcome at a time.
    """
    scan_input: ScanInput
    outcomes: Tuple[StageOutcome, ...] = ()

    def extend(self, outcome: StageOutcome) -> "Evidence":
        return Evidence(scan_input=self.scan_input, outcomes=self.outcomes + (outcome,))

    def outcome_for(self, stage_name: StageName) -> Optional[StageOutcome]:
        for outcome in reversed(self.outcomes):
            if outcome.stage_name == stage_name:
                return outcome
        return None

    def candidate_from(self, stage_name: StageName) -> Optional[Candidate]:
        outcome = self.outcome_for(stage_name)
        return outcome.candidate if outcome is not None else None

    def attribute(self, key: str) -> Optional[str]:
        """Latest value recorded under `key` by any stage."""
        for outcome in reversed(self.outcomes):
            if key in outcome.attributes:
                return outcome.attributes[key]
        return None

    @property
    def barcodes_tried(self) -> List[str]:
        tried: List[str] = []
        for outcome in self.outcomes:
            for value in outcome.attributes.get("barcodes_tried", "").split(","):
                if value and value not in tried:
                    tried.append(value)
        return tried

    @property
    def candidates(self) -> List[Candidate]:
        return [o.candidate for o in self.outcomes if o.candidate is not None]


class IdentificationResult(_Frozen):
    """Complete cascade result with provenance and version tracking."""
    status: ScanStatus
    final_candidate: Optional[Candidate] = None
    stage_trace: List[StageOutcome] = Field(default_factory=list)
    candidates: List[Candidate] = Field(default_factory=list)
    matched_ingredients: List[MatchResult] = Field(default_factory=list)
    new_ingredient_candidates: List[str] = Field(default_factory=list)
    ingredients_truncated: bool = False
    ingredient_source: Optional[str] = None
    safety_score: Optional[SafetyScore] = None
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    explanation: str = ""
    error: Optional[ErrorKind] = None

    # Version tracking (mandatory)
    config_version: str
    ingredient_store_version: str

    def summary(self) -> Dict[str, Any]:
        """Small dict for CLI output and telemetry lines."""
        return {
            "status": self.status.value,
            "product": self.final_candidate.display_name if self.final_candidate else None,
            "source": self.final_candidate.source.value if self.final_candidate else None,
            "confidence": round(self.overall_confidence, 4),
            "safety_raw": self.safety_score.raw if self.safety_score else None,
            "safety_band": self.safety_score.band.value if self.safety_score else None,
            "explanation": self.explanation,
        }
