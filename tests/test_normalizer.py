"""
Tests for ingredient text normalisation and name similarity.
"""
from scan_pipeline.ingredients.normalizer import (
    MAX_TOKENS,
    clean_raw_name,
    count_tokens,
    key_variants,
    normalise,
    split_top_level,
    text_similarity,
)


def _names(tokens):
    return [t.normalised_name for t in tokens]


class TestSplitting:
    def test_label_prefix_and_percentages(self):
        tokens = normalise("Ingredients: Aqua (Water), Glycerin, Niacinamide 5%, Parfum")

        assert [t.raw_name for t in tokens] == ["Aqua (Water)", "Glycerin", "Niacinamide 5%", "Parfum"]
        assert _names(tokens) == ["aqua", "glycerin", "niacinamide", "parfum"]
        assert [t.position for t in tokens] == [0, 1, 2, 3]

    def test_bullets_semicolons_and_newlines(self):
        tokens = normalise("Water • Glycerin; Shea Butter\nCitric Acid | Limonene")
        assert _names(tokens) == ["water", "glycerin", "shea butter", "citric acid", "limonene"]

    def test_commas_inside_parentheses_do_not_split(self):
        assert split_top_level("Fragrance (Parfum, Limonene), Water") == ["Fragrance (Parfum, Limonene)", " Water"]
        assert _names(normalise("Fragrance (Parfum, Limonene), Water")) == ["fragrance", "water"]

    def test_unclosed_bracket_does_not_swallow_the_list(self):
        tokens = normalise("Aqua (Water, Glycerin, Salicylic Acid, Retinol, Fragrance")

        assert _names(tokens) == ["aqua", "glycerin", "salicylic acid", "retinol", "fragrance"]
        assert tokens[0].raw_name == "Aqua (Water"

    def test_newline_closes_open_bracket(self):
        assert _names(normalise("Aqua (Water\nGlycerin\nRetinol\nFragrance")) == [
            "aqua", "glycerin", "retinol", "fragrance",
        ]

    def test_balanced_prefix_kept_before_unclosed_bracket(self):
        parts = split_top_level("Fragrance (Parfum, Limonene), Aqua (Water, Glycerin")

        assert parts == ["Fragrance (Parfum, Limonene)", " Aqua (Water", " Glycerin"]

    def test_stray_closing_bracket_dropped(self):
        assert _names(normalise("Parfum (Fragrance\nLimonene), Glycerin")) == ["parfum", "limonene", "glycerin"]

    def test_sentence_breaks_from_ocr(self):
        assert _names(normalise("Aqua. Glycerin. Panthenol")) == ["aqua", "glycerin", "panthenol"]

    def test_leading_codes_removed(self):
        assert clean_raw_name("2021500 - Water") == "Water"
        assert clean_raw_name("INCI: Glycerin") == "Glycerin"

    def test_numeric_names_survive(self):
        assert _names(normalise("PEG-100 Stearate, Water")) == ["peg-100 stearate", "water"]


class TestDiscards:
    def test_short_numeric_and_boilerplate_tokens_dropped(self):
        tokens = normalise("Aqua, 12, E1, **, may contain traces of nuts, Glycerin")
        assert _names(tokens) == ["aqua", "glycerin"]

    def test_duplicates_collapse(self):
        tokens = normalise("Water, water, WATER (aqua), Glycerin")
        assert _names(tokens) == ["water", "glycerin"]
        assert [t.position for t in tokens] == [0, 1]

    def test_empty_input(self):
        assert normalise("") == []
        assert normalise(None) == []
        assert count_tokens(None) == 0


class TestCap:
    def test_at_most_twenty_tokens(self):
        text = ", ".join(f"Botanical {c * 3}" for c in "ABCDEFGHIJKLMNOPQRSTUVWXY")

        tokens = normalise(text)

        assert MAX_TOKENS == 20
        assert len(tokens) == 20
        assert count_tokens(text) == 25
        assert tokens[-1].position == 19

    def test_uncapped(self):
        text = ", ".join(f"Botanical {c * 3}" for c in "ABCDEFGHIJKLMNOPQRSTUVWXY")
        assert len(normalise(text, limit=None)) == 25


class TestIdempotence:
    def test_normalising_twice_is_stable(self):
        messy = ("INGREDIENTS: Aqua/Water; Sodium Laureth Sulfate\n"
                 "• Parfum (Fragrance) | Citric Acid. Limonene")

        first = normalise(messy)
        second = normalise(", ".join(t.raw_name for t in first))

        assert [(t.raw_name, t.normalised_name) for t in first] == \
            [(t.raw_name, t.normalised_name) for t in second]
        assert _names(first) == ["aqua/water", "sodium laureth sulfate", "parfum", "citric acid", "limonene"]


class TestSimilarity:
    def test_identical_names(self):
        assert text_similarity("Shea Butter", "shea  butter") == 1.0

    def test_spelling_variant_scores_high(self):
        assert text_similarity("sodium laureth sulphate", "sodium laureth sulfate") >= 0.82

    def test_marker_tokens_block_character_similarity(self):
        assert text_similarity("vitamin a", "vitamin e") < 0.82
        assert text_similarity("ci 77891", "ci 77947") < 0.82

    def test_word_order_ignored(self):
        assert text_similarity("butter shea", "shea butter") == 1.0

    def test_empty(self):
        assert text_similarity("", "water") == 0.0

    def test_key_variants(self):
        variants = key_variants("Aqua/Water")
        assert "aqua water" in variants
        assert "aqua" in variants
        assert "water" in variants
        assert "dpanthenol" in key_variants("D-Panthenol")
