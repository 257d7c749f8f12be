"""
External collaborator contracts and in-memory implementations.

Barcode decoding, OCR and the hosted product index live outside this package;
the cascade only talks to them through the protocols below. The in-memory
implementations back the tests and the `scanid` command line tool.
"""
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

import yaml

from .feature_flags import trace
from .ingredients.normalizer import key_variants, text_similarity
from .schemas import (
    CanonicalIngredient,
    DecodedBarcode,
    OCRText,
    ProductRecord,
    ScoredProductRecord,
    VisionIdentification,
)

DEFAULT_INGREDIENTS_PATH = Path(__file__).parent / "configs" / "canonical_ingredients.yml"


class BarcodeDecoder(Protocol):
    async def decode(self, image_ref: str) -> Optional[DecodedBarcode]:
        ...


class ProductDatabase(Protocol):
    async def lookup_by_barcode(self, barcode: str) -> Optional[ProductRecord]:
        ...

    async def search_by_text(self, query: str, limit: int) -> List[ScoredProductRecord]:
        ...


class OCREngine(Protocol):
    async def extract_text(self, image_ref: str) -> OCRText:
        ...


class VisionIdentifier(Protocol):
    async def identify(self, image_ref: str) -> VisionIdentification:
        ...


class CanonicalIngredientStore(Protocol):
    """Read-only during a scan. `version` changes whenever contents change."""
    version: str

    def lookup(self, name: str) -> Optional[CanonicalIngredient]:
        ...

    def fuzzy_lookup(self, name: str, min_similarity: float) -> List[Tuple[CanonicalIngredient, float]]:
        ...


class ProgressSink(Protocol):
    def on_step_change(self, step_id: str, status: str) -> None:
        ...


@dataclass
class Collaborators:
    """Everything the cascade talks to. Optional collaborators disable their stages."""
    product_db: ProductDatabase
    ingredient_store: CanonicalIngredientStore
    barcode_decoder: Optional[BarcodeDecoder] = None
    ocr_engine: Optional[OCREngine] = None
    vision: Optional[VisionIdentifier] = None


def _content_version(prefix: str, items: Iterable[Dict[str, Any]]) -> str:
    blob = json.dumps(list(items), sort_keys=True).encode("utf-8")
    return f"{prefix}@{hashlib.sha256(blob).hexdigest()[:12]}"


class InMemoryIngredientStore:
    """
    Canonical ingredient store held in memory with a content-hash version.

    Attributes:
        entries: Canonical ingredients in file order
        version: Deterministic version string (ingredients@<hash>)
    """

    def __init__(self, entries: Iterable[CanonicalIngredient]):
        self.entries: List[CanonicalIngredient] = list(entries)
        self._index: Dict[str, CanonicalIngredient] = {}
        for entry in self.entries:
            for name in [entry.name] + list(entry.synonyms):
                for key in key_variants(name):
                    existing = self._index.setdefault(key, entry)
                    if existing.id != entry.id:
                        trace("STORE", f"key '{key}' of {entry.id} already taken by {existing.id}")
        self.version = _content_version("ingredients", (e.model_dump(mode="json") for e in self.entries))

    def lookup(self, name: str) -> Optional[CanonicalIngredient]:
        """Exact case-insensitive lookup on name and synonyms."""
        for key in key_variants(name):
            entry = self._index.get(key)
            if entry is not None:
                return entry
        return None

    def fuzzy_lookup(self, name: str, min_similarity: float) -> List[Tuple[CanonicalIngredient, float]]:
        """
        Every entry whose name or a synonym reaches `min_similarity`.

        Returns:
            (entry, similarity) pairs, best first; ties broken by higher
            base_score then id so the order never depends on dict layout
        """
        hits = []
        for entry in self.entries:
            best = max(text_similarity(name, n) for n in [entry.name] + list(entry.synonyms))
            if best >= min_similarity:
                hits.append((entry, best))
        hits.sort(key=lambda pair: (-pair[1], -pair[0].base_score, pair[0].id))
        return hits

    def __len__(self) -> int:
        return len(self.entries)


class InMemoryProductDatabase:
    """
    Product database held in memory.

    Barcode lookup is exact on digits; text search ranks records by name
    similarity against "brand name" and the bare product name.
    """

    def __init__(self, records: Iterable[ProductRecord]):
        self.records: List[ProductRecord] = list(records)
        self._by_barcode: Dict[str, ProductRecord] = {}
        for record in self.records:
            if record.barcode:
                self._by_barcode.setdefault(_digits(record.barcode), record)
        self.version = _content_version("products", (r.model_dump(mode="json") for r in self.records))

    async def lookup_by_barcode(self, barcode: str) -> Optional[ProductRecord]:
        return self._by_barcode.get(_digits(barcode))

    async def search_by_text(self, query: str, limit: int) -> List[ScoredProductRecord]:
        scored = []
        for record in self.records:
            score = max(text_similarity(query, record.display_name), text_similarity(query, record.name))
            if score > 0:
                scored.append(ScoredProductRecord(record=record, score=min(1.0, score)))
        scored.sort(key=lambda s: (-s.score, s.record.id))
        return scored[:limit]


def _digits(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit()) or value.strip()


def load_ingredient_store(path: Any = None) -> InMemoryIngredientStore:
    """
    Load the canonical ingredient store from YAML.

    Args:
        path: YAML file with a list of ingredients (default: packaged seed)

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If an entry is malformed
    """
    path = Path(path) if path is not None else DEFAULT_INGREDIENTS_PATH
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("ingredients", [])
    return InMemoryIngredientStore(CanonicalIngredient(**item) for item in data)


def load_product_catalog(path: Any) -> InMemoryProductDatabase:
    """
    Load a product catalog (list of products, or {"products": [...]}) from YAML.

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If a record is malformed
    """
    with open(Path(path), 'r') as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("products", [])
    records = []
    for idx, item in enumerate(data):
        item = dict(item)
        item.setdefault("id", f"product_{idx:04d}")
        if item.get("barcode") is not None:
            item["barcode"] = str(item["barcode"])
        records.append(ProductRecord(**item))
    return InMemoryProductDatabase(records)
