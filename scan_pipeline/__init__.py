"""
Product identification cascade with ingredient matching and child-safety scoring.
"""
from .schemas import ChildProfile, IdentificationResult, ScanInput
from .collaborators import Collaborators
from .config_loader import load_cascade_config
from .run import CascadeOrchestrator, identify

__version__ = "0.1.0"

__all__ = [
    "ChildProfile",
    "IdentificationResult",
    "ScanInput",
    "Collaborators",
    "load_cascade_config",
    "CascadeOrchestrator",
    "identify",
]
