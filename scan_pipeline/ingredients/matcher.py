"""
Ingredient matching against the canonical ingredient store.

Per token:
  1. exact / near-exact name or synonym equality  -> high
  2. fuzzy similarity >= threshold                  -> medium
  3. otherwise unmatched                            -> none (new ingredient candidate)

Ties at the best fuzzy similarity are resolved conservatively: the entry
with the higher base_score (more concerning) wins, then the lower id.
"""
from typing import TYPE_CHECKING, Dict, List, Optional

from ..feature_flags import trace
from ..schemas import IngredientToken, MatchConfidence, MatchResult

if TYPE_CHECKING:
    from ..collaborators import CanonicalIngredientStore

DEFAULT_FUZZY_THRESHOLD = 0.82
DEFAULT_TIE_EPSILON = 1e-9


class IngredientMatcher:
    """Deterministic token-to-canonical matcher for one store snapshot."""

    def __init__(self, fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD, tie_epsilon: float = DEFAULT_TIE_EPSILON):
        self.fuzzy_threshold = fuzzy_threshold
        self.tie_epsilon = tie_epsilon

    @classmethod
    def from_config(cls, matching: Optional[Dict]) -> "IngredientMatcher":
        matching = matching or {}
        return cls(
            fuzzy_threshold=float(matching.get("fuzzy_threshold", DEFAULT_FUZZY_THRESHOLD)),
            tie_epsilon=float(matching.get("tie_epsilon", DEFAULT_TIE_EPSILON)),
        )

    def match(self, token: IngredientToken, store: "CanonicalIngredientStore") -> MatchResult:
        """Match a single token."""
        entry = store.lookup(token.normalised_name)
        if entry is None and token.raw_name != token.normalised_name:
            entry = store.lookup(token.raw_name)
        if entry is not None:
            return MatchResult(
                token=token,
                matched=True,
                canonical_ingredient=entry,
                match_confidence=MatchConfidence.HIGH,
                similarity=1.0,
            )

        hits = store.fuzzy_lookup(token.normalised_name, self.fuzzy_threshold)
        if not hits:
            return MatchResult(token=token, matched=False)

        best_score = hits[0][1]
        tied = [entry for entry, score in hits if best_score - score <= self.tie_epsilon]
        # Conservative: the most concerning of the tied entries
        chosen = sorted(tied, key=lambda e: (-e.base_score, e.id))[0]
        if len(tied) > 1:
            trace("MATCHER", f"ambiguous '{token.normalised_name}': {[e.id for e in tied]} -> {chosen.id}")

        return MatchResult(
            token=token,
            matched=True,
            canonical_ingredient=chosen,
            match_confidence=MatchConfidence.MEDIUM,
            similarity=min(1.0, best_score),
            ambiguous=len(tied) > 1,
        )

    def match_all(self, tokens: List[IngredientToken], store: "CanonicalIngredientStore") -> List[MatchResult]:
        """
        Match every token, preserving input order.

        Each token is matched independently; repeated names within one call
        reuse the first result (with the repeated token's own position).
        """
        memo: Dict[str, MatchResult] = {}
        results = []
        for token in tokens:
            cached = memo.get(token.normalised_name)
            if cached is None:
                cached = self.match(token, store)
                memo[token.normalised_name] = cached
                result = cached
            else:
                result = cached.model_copy(update={"token": token})
            results.append(result)

        matched = sum(1 for r in results if r.matched)
        trace("MATCHER", f"{matched}/{len(results)} tokens matched (store {getattr(store, 'version', '?')})")
        return results


def unmatched_names(results: List[MatchResult]) -> List[str]:
    """Raw names of unmatched tokens: candidates for the ingredient store."""
    return [r.token.raw_name for r in results if not r.matched]
