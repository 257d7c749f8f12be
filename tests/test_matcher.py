"""
Tests for matching normalised tokens against the canonical ingredient store.
"""
import pytest
from pydantic import ValidationError

from scan_pipeline.collaborators import InMemoryIngredientStore
from scan_pipeline.ingredients.matcher import IngredientMatcher, unmatched_names
from scan_pipeline.ingredients.normalizer import normalise
from scan_pipeline.schemas import CanonicalIngredient, IngredientToken, MatchConfidence, MatchResult


def _token(name):
    return normalise(name)[0]


class TestExactMatches:
    def test_synonym_is_high_confidence(self, store):
        result = IngredientMatcher().match(_token("Aqua"), store)

        assert result.matched
        assert result.canonical_ingredient.id == "water"
        assert result.match_confidence == MatchConfidence.HIGH
        assert result.similarity == 1.0

    def test_case_and_hyphen_insensitive(self, store):
        result = IngredientMatcher().match(_token("D-PANTHENOL"), store)
        assert result.canonical_ingredient.id == "panthenol"
        assert result.match_confidence == MatchConfidence.HIGH

    def test_parenthetical_ignored(self, store):
        result = IngredientMatcher().match(_token("Parfum (Fragrance)"), store)
        assert result.canonical_ingredient.id == "fragrance"


class TestFuzzyMatches:
    def test_typo_is_medium_confidence(self, store):
        result = IngredientMatcher().match(_token("Sodium Lauryl Sulfat"), store)

        assert result.matched
        assert result.canonical_ingredient.id == "sodium_lauryl_sulfate"
        assert result.match_confidence == MatchConfidence.MEDIUM
        assert 0.82 <= result.similarity < 1.0
        assert not result.ambiguous

    def test_unknown_ingredient_unmatched(self, store):
        results = IngredientMatcher().match_all(normalise("Aqua, Zorblax Resin"), store)

        assert results[1].matched is False
        assert results[1].match_confidence == MatchConfidence.NONE
        assert results[1].canonical_ingredient is None
        assert unmatched_names(results) == ["Zorblax Resin"]

    def test_threshold_from_config(self, store):
        strict = IngredientMatcher.from_config({"fuzzy_threshold": 0.99})
        assert not strict.match(_token("Sodium Lauryl Sulfat"), store).matched


class TestAmbiguity:
    @pytest.fixture
    def twin_store(self):
        return InMemoryIngredientStore([
            CanonicalIngredient(id="b_blend", name="alpha blend", safety_band="low", base_score=20),
            CanonicalIngredient(id="a_blent", name="alpha blent", safety_band="medium", base_score=55),
        ])

    def test_tie_resolves_to_more_concerning_entry(self, twin_store):
        result = IngredientMatcher().match(_token("Alpha Blen"), twin_store)

        assert result.matched
        assert result.ambiguous
        assert result.canonical_ingredient.id == "a_blent"
        assert result.match_confidence == MatchConfidence.MEDIUM

    def test_tie_on_base_score_resolves_by_id(self):
        store = InMemoryIngredientStore([
            CanonicalIngredient(id="zeta", name="alpha blend", safety_band="low", base_score=20),
            CanonicalIngredient(id="beta", name="alpha blent", safety_band="low", base_score=20),
        ])
        result = IngredientMatcher().match(_token("Alpha Blen"), store)
        assert result.canonical_ingredient.id == "beta"


class TestMatchAll:
    def test_order_and_positions_preserved(self, store):
        tokens = normalise("Glycerin, Aqua, Retinol")
        results = IngredientMatcher().match_all(tokens, store)

        assert [r.canonical_ingredient.id for r in results] == ["glycerin", "water", "retinol"]
        assert [r.token.position for r in results] == [0, 1, 2]

    def test_independent_of_token_order(self, store):
        matcher = IngredientMatcher()
        tokens = normalise("Glycerin, Sodium Lauryl Sulfat, Zorblax Resin, Parfum")

        forward = {r.token.normalised_name: r.canonical_ingredient for r in matcher.match_all(tokens, store)}
        backward = {r.token.normalised_name: r.canonical_ingredient
                    for r in matcher.match_all(list(reversed(tokens)), store)}

        assert forward == backward

    def test_repeated_calls_are_identical(self, store):
        tokens = normalise("Aqua, Sodium Lauryl Sulfat, Zorblax Resin")
        matcher = IngredientMatcher()
        assert matcher.match_all(tokens, store) == matcher.match_all(tokens, store)


class TestMatchResultInvariants:
    def test_matched_requires_canonical(self):
        token = IngredientToken(raw_name="Aqua", normalised_name="aqua", position=0)
        with pytest.raises(ValidationError):
            MatchResult(token=token, matched=True, match_confidence=MatchConfidence.HIGH)

    def test_unmatched_requires_none_confidence(self):
        token = IngredientToken(raw_name="Aqua", normalised_name="aqua", position=0)
        with pytest.raises(ValidationError):
            MatchResult(token=token, matched=False, match_confidence=MatchConfidence.MEDIUM)
