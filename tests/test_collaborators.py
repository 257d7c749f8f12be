"""
Tests for the in-memory ingredient store, product database and loaders.
"""
import asyncio

import pytest
import yaml

from scan_pipeline.collaborators import (
    InMemoryIngredientStore,
    InMemoryProductDatabase,
    load_ingredient_store,
    load_product_catalog,
)
from scan_pipeline.ingredients.scoring import band_for
from scan_pipeline.schemas import CanonicalIngredient


class TestIngredientStore:
    def test_packaged_seed_loads(self, store):
        assert len(store) >= 40
        assert store.version.startswith("ingredients@")

    def test_lookup_by_synonym(self, store):
        assert store.lookup("Aqua").id == "water"
        assert store.lookup("sodium laureth sulphate").id == "sodium_laureth_sulfate"
        assert store.lookup("unobtainium") is None

    def test_every_band_matches_base_score(self, store):
        for entry in store.entries:
            assert band_for(entry.base_score) == entry.safety_band, entry.id

    def test_version_stable_and_content_sensitive(self):
        entry = CanonicalIngredient(id="water", name="water", safety_band="very_low", base_score=0)
        changed = entry.model_copy(update={"base_score": 5})

        assert InMemoryIngredientStore([entry]).version == InMemoryIngredientStore([entry]).version
        assert InMemoryIngredientStore([entry]).version != InMemoryIngredientStore([changed]).version

    def test_fuzzy_lookup_sorted_best_first(self, store):
        hits = store.fuzzy_lookup("sodium lauryl sulfat", 0.8)

        assert hits[0][0].id == "sodium_lauryl_sulfate"
        assert [score for _, score in hits] == sorted((score for _, score in hits), reverse=True)

    def test_store_loaded_from_dict_file(self, tmp_path):
        path = tmp_path / "ingredients.yml"
        path.write_text(yaml.safe_dump({"ingredients": [
            {"id": "mica", "name": "mica", "safety_band": "very_low", "base_score": 4},
        ]}))

        loaded = load_ingredient_store(path)

        assert len(loaded) == 1
        assert loaded.lookup("MICA").id == "mica"


class TestProductDatabase:
    def test_barcode_lookup_ignores_formatting(self, fakes):
        db = InMemoryProductDatabase(fakes.products)

        record = asyncio.run(db.lookup_by_barcode("5 000000 000017"))

        assert record.id == "p_lotion"

    def test_text_search_ranked_and_limited(self, fakes):
        db = InMemoryProductDatabase(fakes.products)

        results = asyncio.run(db.search_by_text("Retinol Night Cream", 2))

        assert len(results) <= 2
        assert results[0].record.id == "p_night_cream"
        assert results[0].score == 1.0

    def test_catalog_loader(self, tmp_path):
        path = tmp_path / "products.yml"
        path.write_text(yaml.safe_dump([
            {"name": "Bubble Bath", "brand": "Splash", "barcode": 1234567890128},
        ]))

        db = load_product_catalog(path)

        assert db.records[0].id == "product_0000"
        assert db.records[0].barcode == "1234567890128"
        assert asyncio.run(db.lookup_by_barcode("1234567890128")).name == "Bubble Bath"

    def test_missing_catalog(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_product_catalog(tmp_path / "missing.yml")
