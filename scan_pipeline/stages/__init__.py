"""
Identification stages, in cascade order.
"""
from typing import List

from ..collaborators import Collaborators
from ..config_loader import CascadeConfig
from ..schemas import StageName
from .base import IdentificationStage, ScanContext, StageError
from .barcode import BarcodeLookupStage, DatabaseMatchStage
from .ocr import OCRExtractionStage
from .name_search import NameSearchStage
from .ai_vision import AIVisionStage, DatabaseReconciliationStage


def build_stage(stage_name: StageName, collaborators: Collaborators, cfg: CascadeConfig,
                **kwargs) -> IdentificationStage:
    """Instantiate one stage with its collaborators and threshold block."""
    settings = cfg.stage(stage_name)
    min_chars = cfg.min_ingredient_chars
    if stage_name == StageName.BARCODE_LOOKUP:
        return BarcodeLookupStage(collaborators.product_db, settings, **kwargs)
    if stage_name == StageName.DATABASE_MATCH:
        return DatabaseMatchStage(collaborators.product_db, collaborators.barcode_decoder, settings, **kwargs)
    if stage_name == StageName.OCR_EXTRACTION:
        return OCRExtractionStage(collaborators.ocr_engine, settings, **kwargs)
    if stage_name == StageName.NAME_SEARCH:
        return NameSearchStage(collaborators.product_db, settings, min_ingredient_chars=min_chars, **kwargs)
    if stage_name == StageName.AI_VISION:
        return AIVisionStage(collaborators.vision, settings, **kwargs)
    if stage_name == StageName.DATABASE_RECONCILIATION:
        return DatabaseReconciliationStage(collaborators.product_db, settings, min_ingredient_chars=min_chars,
                                           **kwargs)
    raise ValueError(f"Unknown stage: {stage_name}")


def build_stages(stage_names: List[StageName], collaborators: Collaborators, cfg: CascadeConfig,
                 **kwargs) -> List[IdentificationStage]:
    return [build_stage(name, collaborators, cfg, **kwargs) for name in stage_names]


__all__ = [
    "IdentificationStage",
    "ScanContext",
    "StageError",
    "BarcodeLookupStage",
    "DatabaseMatchStage",
    "OCRExtractionStage",
    "NameSearchStage",
    "AIVisionStage",
    "DatabaseReconciliationStage",
    "build_stage",
    "build_stages",
]
