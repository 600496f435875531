"""Keyword and NCM based category inference."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .lexicon.categories import MERCHANT_KEYWORDS, NCM_CATEGORIES, PRODUCT_KEYWORDS
from .models import Category, MerchantInfo, ParsedInvoiceItem
from .utils import only_digits, strip_accents


LOGGER = logging.getLogger(__name__)


def category_from_ncm(ncm_code: Optional[str]) -> Optional[Category]:
    digits = only_digits(ncm_code)
    if len(digits) < 2:
        return None
    return NCM_CATEGORIES.get(digits[:2])


class CategoryClassifier:
    """Pure classifier over the static category tables.

    Merchant names are tested against the keyword table in declaration order,
    then item NCM prefixes are consulted, and :attr:`Category.OTHER` is the
    fallback.
    """

    def classify(self, merchant: MerchantInfo, items: Optional[Iterable[ParsedInvoiceItem]] = None) -> Category:
        text = f"{merchant.name or ''} {merchant.trade_name or ''}".lower()
        for category, keywords in MERCHANT_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return category

        for item in items or ():
            category = category_from_ncm(item.ncm_code)
            if category is not None:
                return category

        return Category.OTHER

    def classify_product(self, description: Optional[str], ncm_code: Optional[str] = None) -> Category:
        """Category for a single catalogue product."""

        category = category_from_ncm(ncm_code)
        if category is not None:
            return category

        text = strip_accents((description or "").lower())
        for category, keywords in PRODUCT_KEYWORDS:
            for keyword in keywords:
                if re.search(rf"\b{re.escape(keyword)}", text):
                    return category
        return Category.OTHER


__all__ = ["CategoryClassifier", "category_from_ncm"]
