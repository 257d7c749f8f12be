"""
Ingredient text normalisation.

Turns a raw ingredient list (printed label, OCR output, database column) into
clean `IngredientToken`s, and provides the comparison keys and similarity
measure used by the matcher and by the text search of the in-memory product
database.
"""
import re
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Set

from ..schemas import IngredientToken

MAX_TOKENS = 20

BULLET_CHARS = "•·●■▪◦‣⁃|"

LABEL_PATTERN = re.compile(
    r"^\s*(?:\d+\s*[-–]\s*)?(?:ingredients?|inci|composition|contains?)(?=[\s:]|$)\s*:?\s*",
    re.IGNORECASE,
)
LEADING_CODE_PATTERN = re.compile(r"^\s*(?:[-–*]+\s*|\d+\s*[-–]\s+)")
PARENTHETICAL_PATTERN = re.compile(r"\([^()]*\)|\[[^\[\]]*\]")
UNCLOSED_ASIDE_PATTERN = re.compile(r"[(\[][^()\[\]]*$")
STRAY_CLOSER_PATTERN = re.compile(r"[)\]]")
PLAIN_SEPARATOR_PATTERN = re.compile(r"[,;]")
PERCENT_PATTERN =re.compile(r"\d+(?:[.,]\d+)?\s*%")
BOILERPLATE_PATTERN = re.compile(r"^(?:may contain|see package|see packaging|\+/-|f\.i\.l\.)", re.IGNORECASE)
SENTENCE_BREAK_PATTERN = re.compile(r"\.\s+(?=[A-Z])")

# Tokens too generic to carry meaning when comparing names
STOP_TOKENS = {"and", "or", "of", "the", "with", "extract", "oil"}


def _has_letters(text: str) -> bool:
    return any(ch.isalpha() for ch in text)


def _is_discardable(text: str) -> bool:
    stripped = text.strip()
    if len(stripped) < 3:
        return True
    if not _has_letters(stripped):
        return True  # covers purely numeric tokens too
    return bool(BOILERPLATE_PATTERN.match(stripped))


def _split_line(line: str) -> List[str]:
    parts = []
    depth = 0
    current = []
    for ch in line:
        if ch in "([":
            depth += 1
        elif ch in ")]" and depth > 0:
            depth -= 1
        if ch in ",;" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    tail = "".join(current)
    if depth > 0:
        # Bracket never closed on this line: plain separators apply to the rest
        parts.extend(PLAIN_SEPARATOR_PATTERN.split(tail))
    else:
        parts.append(tail)
    return parts


def split_top_level(text: str) -> List[str]:
    """
    Split on commas, semicolons and newlines outside parentheses.

    "Fragrance (Parfum, Limonene), Water" -> ["Fragrance (Parfum, Limonene)", " Water"]

    A newline always closes an open bracket, and a bracket still open at the
    end of its line protects nothing (OCR often drops the closer).
    """
    parts = []
    for line in text.split("\n"):
        parts.extend(_split_line(line))
    return parts


def clean_raw_name(token: str) -> str:
    """Strip leading labels, bullets and numeric codes; keep the display text."""
    cleaned = token.strip()
    previous = None
    while cleaned != previous:
        previous = cleaned
        cleaned = LABEL_PATTERN.sub("", cleaned, count=1)
        cleaned = LEADING_CODE_PATTERN.sub("", cleaned, count=1).strip()
    return cleaned.strip(" .:*-–\t")


def search_variant(raw_name: str) -> str:
    """
    Search-friendly variant of a raw token.

    Lower-case, parenthetical and bracketed asides removed, percentage
    annotations removed, whitespace collapsed, edge punctuation stripped.
    """
    text = raw_name
    previous = None
    while text != previous:  # nested asides
        previous = text
        text = PARENTHETICAL_PATTERN.sub(" ", text)
    # "Aqua (Water" / "Limonene)" left by a bracket the OCR lost
    text = UNCLOSED_ASIDE_PATTERN.sub(" ", text)
    text = STRAY_CLOSER_PATTERN.sub(" ", text)
    text = PERCENT_PATTERN.sub(" ", text)
    text = re.sub(r"\s+", " ", text).strip().lower()
    return text.strip(" .,:;*-–/")


def _prepare(raw_text: str) -> str:
    text = raw_text or ""
    for ch in BULLET_CHARS:
        text = text.replace(ch, ",")
    # "Water. Glycerin" on labels read by OCR
    return SENTENCE_BREAK_PATTERN.sub(", ", text)


def _iter_tokens(raw_text: str) -> Iterable[IngredientToken]:
    seen: Set[str] = set()
    position = 0
    for part in split_top_level(_prepare(raw_text)):
        raw = clean_raw_name(part)
        if _is_discardable(raw):
            continue
        normalised = search_variant(raw)
        if _is_discardable(normalised) or normalised in seen:
            continue
        seen.add(normalised)
        yield IngredientToken(raw_name=raw, normalised_name=normalised, position=position)
        position += 1


def normalise(raw_text: Optional[str], limit: Optional[int] = MAX_TOKENS) -> List[IngredientToken]:
    """
    Normalise a raw ingredient list into tokens.

    Args:
        raw_text: Ingredient text as printed or recognised
        limit: Keep at most this many tokens (None for all)

    Returns:
        Tokens in label order, positions renumbered from 0
    """
    tokens = []
    for token in _iter_tokens(raw_text or ""):
        if limit is not None and len(tokens) >= limit:
            break
        tokens.append(token)
    return tokens


def count_tokens(raw_text: Optional[str]) -> int:
    """Uncapped token count, used to report truncation."""
    return sum(1 for _ in _iter_tokens(raw_text or ""))


def name_key(name: str) -> str:
    """Comparison key: lower-case alphanumerics separated by single spaces."""
    return re.sub(r"[^a-z0-9]+", " ", (name or "").lower()).strip()


def _singular(word: str) -> str:
    if len(word) > 4 and word.endswith("es") and not word.endswith("ses"):
        return word[:-2]
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def key_variants(name: str) -> List[str]:
    """
    Near-exact variants of a name, most specific first.

    Covers the plain key, its compact form ("d panthenol" -> "dpanthenol"),
    each side of a slash alternative ("aqua/water") and a singular form.
    """
    variants: List[str] = []

    def add(value: str) -> None:
        if value and value not in variants:
            variants.append(value)

    base = search_variant(name)
    for candidate in [base] + [p for p in base.split("/") if "/" in base]:
        key = name_key(candidate)
        add(key)
        add(key.replace(" ", ""))
        add(" ".join(_singular(w) for w in key.split()))
    return variants


def _norm_token(token: str) -> str:
    return _singular(token.strip().lower())


def token_set(name: str) -> Set[str]:
    """Content tokens of a name with stop tokens and plurals folded."""
    return {_norm_token(t) for t in name_key(name).split() if t and t not in STOP_TOKENS}


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def _marker_tokens(key: str) -> Set[str]:
    # "b5", "77891", "a": one character apart yet a different substance
    return {t for t in key.split() if len(t) <= 2 or any(c.isdigit() for c in t)}


def text_similarity(a: str, b: str) -> float:
    """
    Similarity of two names in [0, 1].

    Max of token Jaccard (word order and plurals ignored) and character
    sequence ratio on the compact keys (spelling variants such as
    sulphate/sulfate). The character ratio is not used when the names differ
    in a short or numeric marker token ("vitamin a" vs "vitamin e").
    """
    key_a = name_key(a)
    key_b = name_key(b)
    if not key_a or not key_b:
        return 0.0
    if key_a == key_b:
        return 1.0
    token_score = jaccard(token_set(a), token_set(b))
    if _marker_tokens(key_a) != _marker_tokens(key_b):
        return round(token_score, 6)
    char_score = SequenceMatcher(None, key_a.replace(" ", ""), key_b.replace(" ", "")).ratio()
    return round(max(token_score, char_score), 6)
