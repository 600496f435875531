"""Canonicalisation of free-text product descriptions.

The normaliser turns receipt descriptions such as ``"LEITE UHT ITALAC INT 1L"``
into a stable display name (``"Leite Integral"``) used for catalogue matching.
The steps run in a fixed order:

1. lower-case the description;
2. capture a pharmacy pill count (``"C/ 10 CPR"``, ``"20 CAPS"``) and remove it;
3. expand receipt abbreviations (whole words only);
4. remove every brand of the lexicon, remembering the first one found;
5. strip punctuation, keeping accented letters, and drop digits unless a pill
   count was captured;
6. drop noise words and single letters;
7. remove repeated words, keeping the first occurrence;
8. capitalise each word;
9. append ``"<N> Comprimidos"`` when a pill count was captured.

Every brand occurrence is removed (not only the first), and the brand sweep is
repeated once noise words are gone, so normalising an already normalised name
is a no-op.  There is no fallback brand guess from
capitalised words: receipts are usually all upper-case and the guess would
remove product words.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .lexicon.abbreviations import ABBREVIATIONS
from .lexicon.brands import BRANDS
from .lexicon.noise import NOISE_WORDS
from .lexicon.promotions import PROMOTION_KEYWORDS
from .models import NormalizedProduct
from .utils import strip_accents


LOGGER = logging.getLogger(__name__)

# Characters that form words.  Everything else is a separator.
LETTERS = "a-záàâãäéèêëíìîïóòôõöúùûüçñ"
WORD_CHARS = LETTERS + "0-9"
_BEFORE = rf"(?<![{WORD_CHARS}])"
_AFTER = rf"(?![{WORD_CHARS}])"
# Abbreviations and brands may touch digits ("INT1L", "ITALAC1L").
_LETTER_BEFORE = rf"(?<![{LETTERS}])"
_LETTER_AFTER = rf"(?![{LETTERS}])"
_SEPARATORS = re.compile(rf"[^{WORD_CHARS}]+")

_PILL_UNITS = r"(?:comprimidos?|comp|cpr|caps|c[áa]psulas?)"
_PILL_PATTERNS = (
    re.compile(rf"{_BEFORE}c/\s*(\d+)\s*{_PILL_UNITS}{_AFTER}"),
    re.compile(rf"{_BEFORE}(\d+)\s*{_PILL_UNITS}{_AFTER}"),
)
PILL_SUFFIX = "Comprimidos"


def _compile_abbreviations(table: Dict[str, str]) -> "re.Pattern[str]":
    keys = sorted(table, key=len, reverse=True)
    return re.compile(_LETTER_BEFORE + "(" + "|".join(re.escape(key) for key in keys) + ")" + _LETTER_AFTER)


def _brand_key(text: str) -> str:
    return " ".join(word for word in _SEPARATORS.split(strip_accents(text.lower())) if word)


def _compile_brands(brands) -> Tuple["re.Pattern[str]", Dict[str, str]]:
    display: Dict[str, str] = {}
    variants = set()
    for brand in brands:
        lowered = brand.lower()
        for variant in {lowered, strip_accents(lowered)}:
            words = [word for word in _SEPARATORS.split(variant) if word]
            if words:
                variants.add(tuple(words))
        display.setdefault(_brand_key(brand), brand)

    ordered = sorted(variants, key=lambda words: len(" ".join(words)), reverse=True)
    alternatives = [rf"[^{WORD_CHARS}]+".join(re.escape(word) for word in words) for words in ordered]
    pattern = re.compile(_LETTER_BEFORE + "(?:" + "|".join(alternatives) + ")" + _LETTER_AFTER)
    return pattern, display


_ABBREVIATION_PATTERN = _compile_abbreviations(ABBREVIATIONS)
_BRAND_PATTERN, _BRAND_DISPLAY = _compile_brands(BRANDS)


def detect_promotion(text: Optional[str]) -> bool:
    """Return ``True`` when ``text`` contains a promotional keyword."""

    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in PROMOTION_KEYWORDS)


def extract_pill_count(text: str) -> Tuple[Optional[int], str]:
    """Return the pill count found in lower-cased ``text`` and the text without it."""

    for pattern in _PILL_PATTERNS:
        match = pattern.search(text)
        if match:
            remaining = text[: match.start()] + " " + text[match.end():]
            return int(match.group(1)), remaining
    return None, text


def expand_abbreviations(text: str) -> str:
    return _ABBREVIATION_PATTERN.sub(lambda match: ABBREVIATIONS[match.group(1)], text)


def extract_brand(text: str) -> Tuple[Optional[str], str]:
    """Remove all lexicon brands from ``text`` and return the first one found."""

    brand: Optional[str] = None
    match = _BRAND_PATTERN.search(text)
    while match:
        if brand is None:
            brand = _BRAND_DISPLAY.get(_brand_key(match.group(0)))
        text = _BRAND_PATTERN.sub(" ", text)
        match = _BRAND_PATTERN.search(text)
    return brand, text


class ProductNormalizer:
    """Pure normaliser over the static lexicons."""

    def normalize_name(self, raw_name: Optional[str]) -> Tuple[str, Optional[str]]:
        """Return the normalised name and the extracted brand."""

        if not raw_name or not raw_name.strip():
            return "", None

        text = raw_name.lower()
        pill_count, text = extract_pill_count(text)
        text = expand_abbreviations(text)
        brand, text = extract_brand(text)

        text = re.sub(rf"[^{WORD_CHARS}\s]", " ", text)
        if pill_count is None:
            text = re.sub(r"\d+", " ", text)

        words: List[str] = []
        for word in text.split():
            if len(word) <= 1 or word in NOISE_WORDS or word in words:
                continue
            words.append(word)

        # Dropping noise words can join the halves of a multi-word brand.
        late_brand, remaining = extract_brand(" ".join(words))
        brand = brand or late_brand
        words = remaining.split()

        name = " ".join(word.capitalize() for word in words)
        if pill_count is not None:
            name = f"{name} {pill_count} {PILL_SUFFIX}".strip()
        return name, brand

    def normalize(
        self,
        raw_name: Optional[str],
        product_code: Optional[str] = None,
        ncm_code: Optional[str] = None,
    ) -> NormalizedProduct:
        name, brand = self.normalize_name(raw_name)
        return NormalizedProduct(
            normalized_name=name,
            original_name=raw_name or "",
            product_code=(product_code or "").strip() or None,
            ncm_code=(ncm_code or "").strip() or None,
            brand=brand,
            is_promotion=detect_promotion(raw_name),
        )


__all__ = [
    "ProductNormalizer",
    "detect_promotion",
    "extract_pill_count",
    "expand_abbreviations",
    "extract_brand",
    "PILL_SUFFIX",
]
