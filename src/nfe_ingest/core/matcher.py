"""Matching logic between normalised line items and catalogue products."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .models import MatchResult, NormalizedProduct


LOGGER = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.75
NCM_SIMILARITY_THRESHOLD = 0.6
NCM_MATCH_CONFIDENCE = 0.9


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost for deletion, insertion and substitution."""

    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
        previous = current
    return previous[len(b)]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Return ``1 - distance / longest`` in the ``[0, 1]`` interval.

    Empty strings never resemble anything, including another empty string.
    """

    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


@dataclass(frozen=True)
class CatalogCandidate:
    """Existing catalogue entry offered to :meth:`ProductMatcher.find_best_match`."""

    product_id: str
    product: NormalizedProduct


class ProductMatcher:
    """Decide whether two normalised products name the same physical product."""

    def __init__(
        self,
        *,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        ncm_similarity_threshold: float = NCM_SIMILARITY_THRESHOLD,
    ) -> None:
        self.similarity_threshold = similarity_threshold
        self.ncm_similarity_threshold = ncm_similarity_threshold

    def match(self, a: NormalizedProduct, b: NormalizedProduct) -> MatchResult:
        # 1) Exact product code (EAN/GTIN)
        if a.product_code and b.product_code and a.product_code == b.product_code:
            return MatchResult(is_match=True, confidence=1.0)

        score = similarity(a.normalized_name, b.normalized_name)

        # 2) Same NCM and reasonably similar names
        if a.ncm_code and b.ncm_code and a.ncm_code == b.ncm_code and score >= self.ncm_similarity_threshold:
            return MatchResult(is_match=True, confidence=NCM_MATCH_CONFIDENCE)

        # 3) Fuzzy name match
        if score >= self.similarity_threshold:
            return MatchResult(is_match=True, confidence=score)

        return MatchResult(is_match=False, confidence=score)

    def find_best_match(
        self,
        candidate: NormalizedProduct,
        existing: Iterable[CatalogCandidate],
    ) -> Optional[Tuple[CatalogCandidate, MatchResult]]:
        """Return the highest-confidence match, stopping at the first product-code match."""

        best: Optional[Tuple[CatalogCandidate, MatchResult]] = None
        for entry in existing:
            result = self.match(candidate, entry.product)
            if not result.is_match:
                continue
            if candidate.product_code and candidate.product_code == entry.product.product_code:
                best = (entry, result)
                break
            if best is None or result.confidence > best[1].confidence:
                best = (entry, result)

        if best:
            LOGGER.debug(
                "Matched '%s' -> product %s (confidence %.2f)",
                candidate.normalized_name,
                best[0].product_id,
                best[1].confidence,
            )
        return best


__all__ = [
    "ProductMatcher",
    "CatalogCandidate",
    "levenshtein",
    "similarity",
    "SIMILARITY_THRESHOLD",
    "NCM_SIMILARITY_THRESHOLD",
]
