"""Short forms commonly printed on receipts and their expansions.

No expansion may itself be a key of the table, otherwise normalising an
already normalised name would expand it again.
"""

from __future__ import annotations

from typing import Dict


ABBREVIATIONS: Dict[str, str] = {
    "refrig": "refrigerante",
    "refri": "refrigerante",
    "choc": "chocolate",
    "achoc": "achocolatado",
    "desc": "descartavel",
    "desod": "desodorante",
    "shamp": "shampoo",
    "cond": "condicionador",
    "sab": "sabonete",
    "sabao": "sabão",
    "deterg": "detergente",
    "amac": "amaciante",
    "limp": "limpeza",
    "desinf": "desinfetante",
    "alcool": "álcool",
    "alc": "álcool",
    "int": "integral",
    "desn": "desnatado",
    "semi": "semidesnatado",
    "parb": "parboilizado",
    "t1": "tipo 1",
    "bisc": "biscoito",
    "mant": "manteiga",
    "marg": "margarina",
    "req": "requeijão",
    "hig": "higiênico",
    "cerv": "cerveja",
    "beb": "bebida",
    "frgo": "frango",
    "cong": "congelado",
    "trad": "tradicional",
    "bco": "branco",
    "liq": "líquido",
    "ext": "extrato",
    "mac": "macarrão",
    "acuc": "açúcar",
    "queij": "queijo",
    "morang": "morango",
}


__all__ = ["ABBREVIATIONS"]
