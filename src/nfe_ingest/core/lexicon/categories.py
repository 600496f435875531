"""Keyword and NCM tables used by the category classifier.

The merchant table is ordered: the first category with a keyword contained in
the merchant name wins, so narrower categories are declared before broader
ones.
"""

from __future__ import annotations

from typing import Dict, Tuple

from ..models import Category


MERCHANT_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.PHARMACY, ("farmacia", "farmácia", "drogaria", "farma", "droga", "medicamento")),
    (Category.GROCERIES, ("hortifruti", "hortifrutti", "sacolao", "sacolão", "feira", "verdura", "fruta")),
    (Category.SUPERMARKET, ("supermercado", "mercado", "super", "hipermercado", "atacadao", "atacadão", "atacado")),
    (
        Category.RESTAURANT,
        (
            "restaurante", "lanchonete", "bar", "cafe", "café", "pizzaria", "hamburgueria", "padaria",
            "confeitaria", "sorveteria",
        ),
    ),
    (
        Category.FUEL,
        ("posto", "combustivel", "combustível", "gasolina", "etanol", "diesel", "gnv", "petrobras", "ipiranga", "shell"),
    ),
    (Category.PETS, ("petshop", "pet shop", "agropet", "veterinaria", "veterinária", "racoes", "rações")),
    (
        Category.ELECTRONICS,
        ("eletronicos", "eletrônicos", "informatica", "informática", "celulares", "eletrodomesticos", "eletrodomésticos"),
    ),
    (
        Category.CLOTHING,
        ("roupas", "moda", "vestuario", "vestuário", "calcados", "calçados", "confeccoes", "confecções", "boutique"),
    ),
    (
        Category.HOME,
        (
            "moveis", "móveis", "decoracao", "decoração", "construcao", "construção", "home center",
            "utilidades", "ferragens", "madeireira",
        ),
    ),
    (
        Category.HEALTH,
        ("hospital", "clinica", "clínica", "laboratorio", "laboratório", "odonto", "otica", "ótica"),
    ),
    (
        Category.EDUCATION,
        ("escola", "colegio", "colégio", "faculdade", "universidade", "livraria", "papelaria", "curso"),
    ),
    (Category.ENTERTAINMENT, ("cinema", "teatro", "ingressos", "boliche", "games")),
    (
        Category.TRANSPORT,
        ("transporte", "taxi", "táxi", "estacionamento", "pedagio", "pedágio", "viacao", "viação", "rodoviaria"),
    ),
    (Category.RETAIL, ("loja", "magazine", "varejo", "comercio", "comércio")),
    (
        Category.SERVICES,
        ("servico", "serviço", "manutencao", "manutenção", "conserto", "reparo"),
    ),
)


def _ncm_range(start: int, end: int, category: Category) -> Dict[str, Category]:
    return {f"{prefix:02d}": category for prefix in range(start, end + 1)}


NCM_CATEGORIES: Dict[str, Category] = {
    "30": Category.PHARMACY,
    "27": Category.FUEL,
    "23": Category.PETS,
    "33": Category.HEALTH,
    "49": Category.EDUCATION,
    "84": Category.ELECTRONICS,
    "85": Category.ELECTRONICS,
    "87": Category.TRANSPORT,
    "94": Category.HOME,
    "95": Category.ENTERTAINMENT,
    **_ncm_range(1, 4, Category.GROCERIES),
    **_ncm_range(7, 12, Category.GROCERIES),
    **_ncm_range(15, 22, Category.GROCERIES),
    **_ncm_range(61, 64, Category.CLOTHING),
}


# Matched as word prefixes against the accent-free, lower-cased description.
PRODUCT_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (
        Category.PHARMACY,
        (
            "dipirona", "paracetamol", "ibuprofeno", "amoxicilina", "omeprazol", "losartana", "comprimido",
            "capsula", "xarope", "pomada", "dorflex", "neosaldina", "vitamina", "curativo", "medicamento",
        ),
    ),
    (Category.FUEL, ("gasolina", "etanol", "diesel", "gnv", "combustivel")),
    (Category.PETS, ("racao", "petisco pet", "areia sanitaria", "antipulgas")),
    (
        Category.GROCERIES,
        (
            "leite", "arroz", "feijao", "carne", "frango", "pao", "fruta", "banana", "tomate", "batata",
            "cebola", "ovo", "queijo", "cafe", "acucar", "oleo", "macarrao", "biscoito", "refrigerante",
            "cerveja", "suco", "agua mineral", "manteiga", "margarina", "iogurte", "farinha", "sal",
            "chocolate", "achocolatado", "requeijao", "presunto", "linguica", "alface", "maca", "laranja",
        ),
    ),
    (
        Category.HOME,
        (
            "detergente", "sabao", "amaciante", "desinfetante", "limpeza", "esponja", "vassoura",
            "agua sanitaria", "multiuso", "saco de lixo", "lampada", "papel aluminio",
        ),
    ),
    (
        Category.HEALTH,
        (
            "shampoo", "condicionador", "sabonete", "creme dental", "escova dental", "desodorante",
            "papel higienico", "fralda", "absorvente", "protetor solar", "fio dental",
        ),
    ),
    (Category.ELECTRONICS, ("carregador", "fone", "cabo usb", "pilha", "bateria", "mouse", "teclado")),
    (Category.CLOTHING, ("camiseta", "calca", "bermuda", "meia", "cueca", "vestido", "tenis", "sandalia")),
    (Category.EDUCATION, ("caderno", "caneta", "lapis", "livro", "borracha escolar")),
)


__all__ = ["MERCHANT_KEYWORDS", "NCM_CATEGORIES", "PRODUCT_KEYWORDS"]
