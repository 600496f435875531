"""Keywords that flag a line item as promotional."""

from __future__ import annotations

from typing import Tuple


PROMOTION_KEYWORDS: Tuple[str, ...] = (
    "promocao",
    "promoção",
    "promo",
    "oferta",
    "pague",
    "gratis",
    "grátis",
    "brinde",
    "desconto",
    "liquidacao",
    "liquidação",
    "leve ",
)


__all__ = ["PROMOTION_KEYWORDS"]
