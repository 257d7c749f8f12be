"""
Pytest configuration and shared fakes for cascade tests.

Fakes count their calls so tests can assert which collaborators a scan
touched. Coroutines are driven with asyncio.run().
"""
import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add repo root to path for imports
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from scan_pipeline.collaborators import Collaborators, InMemoryProductDatabase, load_ingredient_store
from scan_pipeline.config_loader import load_cascade_config
from scan_pipeline.schemas import ChildProfile, DecodedBarcode, OCRText, ProductRecord, VisionIdentification


PRODUCTS = [
    ProductRecord(
        id="p_lotion",
        barcode="5000000000017",
        name="Gentle Baby Lotion",
        brand="Sunny Kids",
        category="lotion",
        ingredients_text=("Aqua, Glycerin, Butyrospermum Parkii Butter, Cetearyl Alcohol, "
                          "Phenoxyethanol, Fragrance (Parfum)"),
        size="200 ml",
    ),
    ProductRecord(
        id="p_face_wash",
        barcode="0036000291452",
        name="Foaming Face Wash",
        brand="Clear Teen",
        category="cleanser",
        ingredients_text="Water, Sodium Laureth Sulfate, Salicylic Acid 2%, Glycolic Acid, Fragrance",
    ),
    ProductRecord(
        id="p_sunscreen",
        name="Mineral Sunscreen SPF 50",
        brand="Beach Buddy",
        category="sunscreen",
        ingredients_text=None,
        size="100 ml",
    ),
    ProductRecord(
        id="p_night_cream",
        barcode="4006381333931",
        name="Retinol Night Cream",
        brand="Glow Lab",
        category="moisturizer",
        ingredients_text="Aqua, Retinol, Dimethicone, Tocopherol, Parfum",
    ),
]


class FakeProductDatabase(InMemoryProductDatabase):
    """In-memory database with call counters and optional latency."""

    def __init__(self, records=None, lookup_delay=0.0, lookup_error=None):
        super().__init__(records if records is not None else PRODUCTS)
        self.lookup_calls = []
        self.search_calls = []
        self.lookup_delay = lookup_delay
        self.lookup_error = lookup_error

    async def lookup_by_barcode(self, barcode):
        self.lookup_calls.append(barcode)
        if self.lookup_delay:
            await asyncio.sleep(self.lookup_delay)
        if self.lookup_error is not None:
            raise self.lookup_error
        return await super().lookup_by_barcode(barcode)

    async def search_by_text(self, query, limit):
        self.search_calls.append((query, limit))
        return await super().search_by_text(query, limit)


class FakeBarcodeDecoder:
    def __init__(self, value=None):
        self.value = value
        self.calls = 0

    async def decode(self, image_ref):
        self.calls += 1
        return DecodedBarcode(value=self.value, format="ean13") if self.value else None


class FakeOCR:
    def __init__(self, text="", success=True, error=None, delay=0.0, exc=None):
        self.result = OCRText(text=text, success=success, error=error)
        self.delay = delay
        self.exc = exc
        self.calls = 0

    async def extract_text(self, image_ref):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


class FakeVision:
    def __init__(self, delay=0.0, exc=None, **fields):
        fields.setdefault("success", True)
        self.identification = VisionIdentification(**fields)
        self.delay = delay
        self.exc = exc
        self.calls = 0

    async def identify(self, image_ref):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.identification


class RecordingSink:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def on_step_change(self, step_id, status):
        self.events.append((step_id, status))
        if self.fail:
            raise RuntimeError("observer crashed")


class FixedClock:
    """Deterministic clock: advances one millisecond per reading."""

    def __init__(self, start=100.0, step=0.001):
        self.now = start
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def fakes():
    return SimpleNamespace(
        ProductDB=FakeProductDatabase,
        Decoder=FakeBarcodeDecoder,
        OCR=FakeOCR,
        Vision=FakeVision,
        Sink=RecordingSink,
        Clock=FixedClock,
        products=PRODUCTS,
    )


@pytest.fixture(scope="session")
def store():
    return load_ingredient_store()


@pytest.fixture
def cfg():
    return load_cascade_config()


@pytest.fixture
def child():
    return ChildProfile(name="Mia", age_years=8)


@pytest.fixture
def make_collaborators(store):
    def _make(product_db=None, decoder=None, ocr=None, vision=None):
        return Collaborators(
            product_db=product_db if product_db is not None else FakeProductDatabase(),
            ingredient_store=store,
            barcode_decoder=decoder,
            ocr_engine=ocr,
            vision=vision,
        )
    return _make
