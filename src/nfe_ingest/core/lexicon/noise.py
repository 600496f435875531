"""Words dropped from product names before matching."""

from __future__ import annotations

from typing import FrozenSet


UNITS = {
    "un", "und", "unid", "unidade", "unidades", "pc", "pcs", "pç", "pct",
    "kg", "kgs", "g", "gr", "grs", "mg", "l", "ml", "lt", "lts", "litro",
    "litros", "cm", "mm", "mts", "dz", "duzia", "dúzia", "uht",
}

PACKAGING = {
    "pacote", "cx", "caixa", "lata", "garrafa", "pet", "vidro", "emb",
    "embalagem", "sache", "sachê", "saco", "sc", "pote", "frasco", "fr",
    "bandeja", "bdj", "tetra", "pack", "refil", "fardo", "fd", "gfa", "ln",
}

DOSAGE_FORMS = {
    "cpr", "comp", "comprimido", "comprimidos", "caps", "capsula", "capsulas",
    "cápsula", "cápsulas",
}

PROMOTIONAL = {
    "promocao", "promoção", "promo", "oferta", "leve", "pague", "gratis",
    "grátis", "brinde", "desconto", "liquidacao", "liquidação",
}

STOP_WORDS = {
    "de", "da", "do", "das", "dos", "para", "p", "com", "c", "em", "sem",
    "e", "ou", "a", "o", "as", "os", "na", "no",
}


NOISE_WORDS: FrozenSet[str] = frozenset(UNITS | PACKAGING | DOSAGE_FORMS | PROMOTIONAL | STOP_WORDS)


__all__ = ["NOISE_WORDS"]
