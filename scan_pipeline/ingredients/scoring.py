"""
Child-safety scoring of matched ingredients.

Score is 0-100 where 0 is safest. The most concerning ingredient dominates;
the rest can only push the score further into the remaining headroom:

    raw = worst + context_weight * mean(rest) * (100 - worst) / 100

Profile adjustments (age restrictions, allergies, eczema / sensitive skin)
act on individual ingredient severities before aggregation, and every
adjustment is recorded as a Flag.
"""
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from ..schemas import (
    CanonicalIngredient,
    ChildProfile,
    Flag,
    IngredientContribution,
    MatchResult,
    SafetyBand,
    SafetyScore,
)
from .normalizer import name_key, token_set

# Upper bound (inclusive) of each band. Fixed: bands never depend on the profile.
BAND_UPPER_BOUNDS: List[Tuple[int, SafetyBand]] = [
    (10, SafetyBand.VERY_LOW),
    (25, SafetyBand.LOW),
    (40, SafetyBand.MILD),
    (60, SafetyBand.MEDIUM),
    (75, SafetyBand.HIGH),
    (100, SafetyBand.VERY_HIGH),
]

BAND_FLOORS: Dict[SafetyBand, int] = {
    SafetyBand.VERY_LOW: 0,
    SafetyBand.LOW: 11,
    SafetyBand.MILD: 26,
    SafetyBand.MEDIUM: 41,
    SafetyBand.HIGH: 61,
    SafetyBand.VERY_HIGH: 76,
}

CONCENTRATION_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")


def band_for(raw: int) -> SafetyBand:
    for upper, band in BAND_UPPER_BOUNDS:
        if raw <= upper:
            return band
    return SafetyBand.VERY_HIGH


def _clamp(value: float) -> int:
    return int(max(0, min(100, math.floor(value + 0.5))))


def stated_concentration(raw_name: str) -> Optional[float]:
    """Percentage printed next to an ingredient ("Salicylic Acid 2%" -> 2.0)."""
    found = CONCENTRATION_PATTERN.search(raw_name or "")
    if not found:
        return None
    return float(found.group(1).replace(",", "."))


class AgeRestriction:
    """An ingredient family never appropriate under `min_age`."""

    def __init__(self, rule_id: str, match: List[str], min_age: int, band: SafetyBand,
                 reason: str, min_concentration_pct: Optional[float] = None,
                 families: Optional[List[str]] = None):
        self.rule_id = rule_id
        self.match_keys = [name_key(m) for m in match]
        self.families = set(families or [])
        self.min_age = min_age
        self.band = band
        self.reason = reason
        self.min_concentration_pct = min_concentration_pct

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgeRestriction":
        return cls(
            rule_id=data["id"],
            match=list(data.get("match") or [data["id"]]),
            min_age=int(data["min_age"]),
            band=SafetyBand(data.get("band", "high")),
            reason=data.get("reason", "Not recommended at this age"),
            min_concentration_pct=data.get("min_concentration_pct"),
            families=list(data.get("families") or []),
        )

    def covers(self, ingredient: CanonicalIngredient) -> bool:
        if ingredient.family is not None and ingredient.family in self.families:
            return True
        names = [ingredient.id.replace("_", " "), ingredient.name] + list(ingredient.synonyms)
        keys = {name_key(n) for n in names}
        return any(k in keys for k in self.match_keys)

    def applies(self, ingredient: CanonicalIngredient, raw_name: str, age_years: int) -> bool:
        if age_years >= self.min_age or not self.covers(ingredient):
            return False
        if self.min_concentration_pct is None:
            return True
        stated = stated_concentration(raw_name)
        # No stated concentration: assume the restricted strength
        return stated is None or stated >= self.min_concentration_pct


class SafetyScorer:
    """Pure, synchronous scorer configured from safety_rules.yml."""

    def __init__(self, rules: Optional[Dict[str, Any]] = None):
        rules = rules or {}
        self.context_weight = float(rules.get("context_weight", 0.25))
        self.unknown_severity = int(rules.get("unknown_ingredient_severity", 30))
        self.allergen_penalty = int(rules.get("allergen_penalty", 40))
        self.eczema_penalty = int(rules.get("eczema_irritant_penalty", 15))
        self.sensitive_penalty = int(rules.get("sensitive_skin_irritant_penalty", 10))
        self.age_restrictions = [AgeRestriction.from_dict(r) for r in rules.get("age_restrictions", [])]

    def _allergy_hit(self, ingredient: Optional[CanonicalIngredient], raw_name: str,
                     allergies: List[str]) -> Optional[str]:
        if ingredient is not None:
            names = [ingredient.name] + list(ingredient.synonyms) + list(ingredient.allergen_groups)
        else:
            names = [raw_name]
        for allergy in allergies:
            allergy_key = name_key(allergy)
            if not allergy_key:
                continue
            # "tree nut" / "nut" / "nuts" all hit an ingredient grouped under "tree nuts"
            wanted = token_set(allergy)
            for name in names:
                key = name_key(name)
                if key == allergy_key or (wanted and wanted <= token_set(name)):
                    return allergy
                if ingredient is None and allergy_key in key:
                    return allergy
        return None

    def _score_match(self, match: MatchResult, profile: ChildProfile, flags: List[Flag]) -> IngredientContribution:
        ingredient = match.canonical_ingredient
        raw_name = match.token.raw_name
        ingredient_id = ingredient.id if ingredient else None
        display = ingredient.name if ingredient else raw_name

        if ingredient is None:
            severity = self.unknown_severity
            flags.append(Flag(ingredient_name=raw_name, reason="Unknown ingredient", severity_delta=severity))
        else:
            severity = ingredient.base_score

        if ingredient is not None:
            for rule in self.age_restrictions:
                if rule.applies(ingredient, raw_name, profile.age_years):
                    floor = BAND_FLOORS[rule.band]
                    delta = max(0, floor - severity)
                    severity = max(severity, floor)
                    flags.append(Flag(
                        ingredient_id=ingredient_id,
                        ingredient_name=display,
                        reason=f"{rule.reason} (under {rule.min_age})",
                        severity_delta=delta,
                        critical=True,
                    ))

        allergy = self._allergy_hit(ingredient, raw_name, profile.allergies)
        if allergy is not None:
            severity += self.allergen_penalty
            flags.append(Flag(
                ingredient_id=ingredient_id,
                ingredient_name=display,
                reason=f"Matches declared allergy: {allergy}",
                severity_delta=self.allergen_penalty,
                critical=True,
            ))

        if ingredient is not None and ingredient.irritant:
            penalty = 0
            if profile.has_eczema:
                penalty = max(penalty, self.eczema_penalty)
            if profile.has_sensitive_skin:
                penalty = max(penalty, self.sensitive_penalty)
            if penalty:
                severity += penalty
                flags.append(Flag(
                    ingredient_id=ingredient_id,
                    ingredient_name=display,
                    reason="Known irritant for eczema-prone or sensitive skin",
                    severity_delta=penalty,
                ))

        return IngredientContribution(ingredient_id=ingredient_id, ingredient_name=display,
                                      severity=min(100, severity))

    def score(self, matches: List[MatchResult], profile: ChildProfile) -> SafetyScore:
        """
        Score matched ingredients for a child profile.

        Args:
            matches: Matcher output (unmatched tokens included)
            profile: The child the product is scored for

        Returns:
            SafetyScore with raw in [0, 100], its band and every adjustment
        """
        flags: List[Flag] = []
        contributions = [self._score_match(m, profile, flags) for m in matches]
        if not contributions:
            return SafetyScore(raw=0, band=SafetyBand.VERY_LOW)

        severities = [c.severity for c in contributions]
        worst_idx = max(range(len(severities)), key=lambda i: severities[i])
        worst = severities[worst_idx]
        rest = severities[:worst_idx] + severities[worst_idx + 1:]
        context = sum(rest) / len(rest) if rest else 0.0
        raw = _clamp(worst + self.context_weight * context * (100 - worst) / 100.0)

        return SafetyScore(
            raw=raw,
            band=band_for(raw),
            critical_flags=[f for f in flags if f.critical],
            flags=flags,
            contributions=contributions,
        )
