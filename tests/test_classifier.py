import pytest

from nfe_ingest.core.classifier import CategoryClassifier, category_from_ncm
from nfe_ingest.core.models import Category, MerchantInfo, ParsedInvoiceItem


def make_merchant(name, trade_name=None):
    return MerchantInfo(cnpj="12345678000190", name=name, trade_name=trade_name)


def make_item(**overrides):
    data = {"description": "ITEM", "quantity": 1.0, "unit_price": 1.0, "total_price": 1.0}
    data.update(overrides)
    return ParsedInvoiceItem(**data)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("FARMACIA EXEMPLO LTDA", Category.PHARMACY),
        ("Drogaria Sao Paulo S.A.", Category.PHARMACY),
        ("SUPERMERCADO BOM PRECO LTDA", Category.SUPERMARKET),
        ("AUTO POSTO CENTRAL", Category.FUEL),
        ("PIZZARIA DO ZE", Category.RESTAURANT),
        ("XYZ COMERCIAL EIRELI", Category.OTHER),
    ],
)
def test_merchant_keywords(name, expected):
    assert CategoryClassifier().classify(make_merchant(name)) == expected


def test_trade_name_is_considered():
    merchant = make_merchant("XYZ EIRELI", trade_name="Drogaria Popular")

    assert CategoryClassifier().classify(merchant) == Category.PHARMACY


def test_declared_order_breaks_ties():
    # "farma" (pharmacy) is declared before "mercado" (supermarket)
    merchant = make_merchant("FARMA MERCADO LTDA")

    assert CategoryClassifier().classify(merchant) == Category.PHARMACY


def test_item_ncm_is_used_when_merchant_name_has_no_keyword():
    classifier = CategoryClassifier()
    merchant = make_merchant("XYZ EIRELI")
    items = [make_item(ncm_code=None), make_item(ncm_code="96032100"), make_item(ncm_code="27101259")]

    assert classifier.classify(merchant, items) == Category.FUEL


def test_classification_is_deterministic():
    classifier = CategoryClassifier()
    merchant = make_merchant("SUPERMERCADO E FARMACIA")
    results = {classifier.classify(merchant) for _ in range(5)}

    assert results == {Category.PHARMACY}


@pytest.mark.parametrize(
    "ncm, expected",
    [
        ("30049099", Category.PHARMACY),
        ("0401.10.10", Category.GROCERIES),
        ("27101259", Category.FUEL),
        ("96032100", None),
        ("3", None),
        (None, None),
    ],
)
def test_category_from_ncm(ncm, expected):
    assert category_from_ncm(ncm) == expected


def test_classify_product_prefers_ncm_then_keywords():
    classifier = CategoryClassifier()

    assert classifier.classify_product("QUALQUER COISA", "30049099") == Category.PHARMACY
    assert classifier.classify_product("XPTO 123") == Category.OTHER
