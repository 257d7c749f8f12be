"""
Ingredient normalisation, matching and child-safety scoring.
"""
from .normalizer import normalise, count_tokens, text_similarity, MAX_TOKENS
from .matcher import IngredientMatcher, unmatched_names
from .scoring import SafetyScorer, band_for

__all__ = [
    "normalise",
    "count_tokens",
    "text_similarity",
    "MAX_TOKENS",
    "IngredientMatcher",
    "unmatched_names",
    "SafetyScorer",
    "band_for",
]
