"""
Barcode stages: direct lookup of a supplied barcode, then image decoding
and GTIN variant lookups.
"""
from typing import Iterable, List, Optional

from ..collaborators import BarcodeDecoder, ProductDatabase
from ..schemas import CandidateSource, ErrorKind, Evidence, ScanInput, StageName, StageOutcome, StageStatus
from .base import IdentificationStage, candidate_from_record


def gtin_digits(value: str) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def gtin_variants(value: str) -> List[str]:
    """
    Equivalent spellings of one product code, original first.

    UPC-A (12) <-> EAN-13 with a leading zero; GTIN-14 with a leading zero
    reduces to EAN-13.
    """
    digits = gtin_digits(value)
    if not digits:
        return []
    variants = [digits]
    if len(digits) == 12:
        variants.append("0" + digits)
    elif len(digits) == 13 and digits.startswith("0"):
        variants.append(digits[1:])
    elif len(digits) == 14 and digits.startswith("0"):
        variants.append(digits[1:])
        if digits[1] == "0":
            variants.append(digits[2:])
    return variants


def _unique(values: Iterable[str], exclude: Iterable[str]) -> List[str]:
    excluded = set(exclude)
    result = []
    for value in values:
        if value and value not in excluded and value not in result:
            result.append(value)
    return result


class BarcodeLookupStage(IdentificationStage):
    """Query the product database with the barcode the caller supplied."""
    name = StageName.BARCODE_LOOKUP

    def __init__(self, product_db: ProductDatabase, settings=None, **kwargs):
        super().__init__(settings, **kwargs)
        self.product_db = product_db
        self.confidence = float(self.settings.get("confidence", 0.95))

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        if scan_input.barcode_value is None:
            return "no barcode supplied"
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        barcode = scan_input.barcode_value
        tried = gtin_digits(barcode) or barcode
        record = await self.product_db.lookup_by_barcode(barcode)
        if record is None:
            return self.outcome(StageStatus.NO_MATCH, error=ErrorKind.STAGE_NO_MATCH,
                                reason="barcode not found", barcodes_tried=tried)
        candidate = candidate_from_record(record, CandidateSource.DATABASE, self.confidence,
                                          barcode_value=record.barcode or barcode)
        return self.outcome(StageStatus.MATCHED, candidate=candidate,
                            reason="barcode found in database", barcodes_tried=tried)


class DatabaseMatchStage(IdentificationStage):
    """
    Retry the database with every barcode not tried yet: one decoded from the
    image, and the GTIN variants of all known codes.
    """
    name = StageName.DATABASE_MATCH

    def __init__(self, product_db: ProductDatabase, barcode_decoder: Optional[BarcodeDecoder] = None,
                 settings=None, **kwargs):
        super().__init__(settings, **kwargs)
        self.product_db = product_db
        self.barcode_decoder = barcode_decoder
        self.confidence = float(self.settings.get("confidence", 0.92))

    def skip_reason(self, scan_input: ScanInput, evidence: Evidence) -> Optional[str]:
        can_decode = scan_input.image is not None and self.barcode_decoder is not None
        if not can_decode and scan_input.barcode_value is None:
            return "no barcode available"
        return None

    async def _execute(self, scan_input: ScanInput, evidence: Evidence) -> StageOutcome:
        known: List[str] = []
        decoded_value = None
        if scan_input.image is not None and self.barcode_decoder is not None:
            decoded = await self.barcode_decoder.decode(scan_input.image)
            if decoded is not None and decoded.value.strip():
                decoded_value = decoded.value.strip()
                known.append(decoded_value)
        if scan_input.barcode_value is not None:
            known.append(scan_input.barcode_value)

        tried = evidence.barcodes_tried
        to_try = _unique((v for code in known for v in gtin_variants(code)), exclude=tried)
        if not to_try:
            reason = "no barcode on image" if decoded_value is None else "no new barcode to try"
            return self.outcome(StageStatus.SKIPPED, reason=reason, decoded_barcode=decoded_value)

        for idx, code in enumerate(to_try):
            record = await self.product_db.lookup_by_barcode(code)
            if record is not None:
                candidate = candidate_from_record(record, CandidateSource.DATABASE, self.confidence,
                                                  barcode_value=record.barcode or code)
                return self.outcome(StageStatus.MATCHED, candidate=candidate,
                                    reason=f"barcode {code} found in database",
                                    barcodes_tried=",".join(to_try[:idx + 1]),
                                    decoded_barcode=decoded_value)

        return self.outcome(StageStatus.NO_MATCH, error=ErrorKind.STAGE_NO_MATCH,
                            reason="no database match for barcode",
                            barcodes_tried=",".join(to_try), decoded_barcode=decoded_value)
