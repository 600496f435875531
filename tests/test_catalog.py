from datetime import datetime, timedelta

import pytest

from nfe_ingest.core.catalog import ProductCatalog
from nfe_ingest.core.errors import NotFoundError
from nfe_ingest.core.models import Category, PriceHistoryEntry
from nfe_ingest.core.repository import Repository
from nfe_ingest.core.store import InMemoryDocumentStore
from nfe_ingest.core.utils import new_id


def make_catalog():
    repository = Repository(InMemoryDocumentStore())
    return ProductCatalog(repository), repository


NOW = datetime.utcnow().replace(microsecond=0)


def days_ago(days):
    return NOW - timedelta(days=days)


def add_price(repository, product_id, price, days, merchant=("11111111000111", "Mercado A"), invoice_id=None):
    return repository.add_price_entry(
        PriceHistoryEntry(
            id=new_id(),
            user_id="u1",
            product_id=product_id,
            invoice_id=invoice_id or new_id(),
            merchant_cnpj=merchant[0],
            merchant_name=merchant[1],
            purchase_date=days_ago(days),
            unit_price=price,
            quantity=1.0,
        )
    )


def test_same_product_from_different_brands_is_reused():
    catalog, repository = make_catalog()

    first = catalog.resolve_product("u1", "LEITE UHT ITALAC INT 1L")
    second = catalog.resolve_product("u1", "LEITE TIROL INT 1L")

    assert first.id == second.id
    assert first.name == "Leite Integral"
    assert first.category == Category.GROCERIES
    assert len(repository.list_products("u1")) == 1


def test_products_are_scoped_per_user():
    catalog, _ = make_catalog()

    mine = catalog.resolve_product("u1", "LEITE TIROL INT 1L")
    theirs = catalog.resolve_product("u2", "LEITE TIROL INT 1L")

    assert mine.id != theirs.id


def test_barcode_identifies_the_product():
    catalog, _ = make_catalog()

    first = catalog.resolve_product("u1", "REFRIG COCA COLA 2L", product_code="7894900011517")
    renamed = catalog.resolve_product("u1", "COCA-COLA ORIGINAL PET 2 LITROS", product_code="7894900011517")
    other_code = catalog.resolve_product("u1", "REFRIG COCA COLA 2L", product_code="7894900011999")

    assert renamed.id == first.id
    assert other_code.id != first.id


def test_category_is_upgraded_from_other():
    catalog, _ = make_catalog()

    created = catalog.resolve_product("u1", "XPTO ESPECIAL")
    assert created.category == Category.OTHER

    upgraded = catalog.resolve_product("u1", "XPTO ESPECIAL", ncm_code="30049099")

    assert upgraded.id == created.id
    assert upgraded.category == Category.PHARMACY


def test_record_purchase_keeps_an_unweighted_running_mean():
    catalog, _ = make_catalog()
    product = catalog.resolve_product("u1", "ARROZ BRANCO 5KG")

    catalog.record_purchase(product.id, 4.0, days_ago(5))
    updated = catalog.record_purchase(product.id, 6.0, days_ago(10))

    assert updated.total_purchases == 2
    assert updated.average_price == pytest.approx(5.0)
    assert updated.last_purchase_date == days_ago(5)


def test_reverse_purchase_recomputes_from_remaining_history():
    catalog, repository = make_catalog()
    product = catalog.resolve_product("u1", "ARROZ BRANCO 5KG")
    catalog.record_purchase(product.id, 4.0, days_ago(5))
    catalog.record_purchase(product.id, 6.0, days_ago(2))
    add_price(repository, product.id, 4.0, 5, invoice_id="inv-1")
    add_price(repository, product.id, 6.0, 2, invoice_id="inv-2")

    reversed_product = catalog.reverse_purchase(product.id, "inv-2")

    assert reversed_product.total_purchases == 1
    assert reversed_product.average_price == pytest.approx(4.0)
    assert reversed_product.last_purchase_date == days_ago(5)


def test_reverse_last_purchase_resets_statistics():
    catalog, _ = make_catalog()
    product = catalog.resolve_product("u1", "ARROZ BRANCO 5KG")
    catalog.record_purchase(product.id, 4.0, days_ago(5))

    reset = catalog.reverse_purchase(product.id, "inv-1")
    floored = catalog.reverse_purchase(product.id, "inv-1")

    assert (reset.total_purchases, reset.average_price, reset.last_purchase_date) == (0, 0.0, None)
    assert floored.total_purchases == 0


def test_price_history_summary():
    catalog, repository = make_catalog()
    product = catalog.resolve_product("u1", "CAFE TORRADO 500G")
    add_price(repository, product.id, 18.0, 30)
    add_price(repository, product.id, 15.0, 3)
    add_price(repository, product.id, 99.0, 200)

    history = catalog.price_history("u1", product.id, days=90)

    assert [entry["price"] for entry in history["prices"]] == [15.0, 18.0]
    assert history["lowest_price"] == 15.0
    assert history["highest_price"] == 18.0
    assert history["average_price"] == pytest.approx(16.5)
    assert history["price_range"] == pytest.approx(3.0)


def test_compare_price_ranks_merchants():
    catalog, repository = make_catalog()
    product = catalog.resolve_product("u1", "CAFE TORRADO 500G")
    add_price(repository, product.id, 5.0, 10, merchant=("11111111000111", "Mercado A"))
    add_price(repository, product.id, 6.0, 5, merchant=("11111111000111", "Mercado A"))
    add_price(repository, product.id, 4.0, 1, merchant=("22222222000122", "Mercado B"))

    comparison = catalog.compare_price("u1", product.id)

    assert [merchant["merchant_name"] for merchant in comparison["merchants"]] == ["Mercado B", "Mercado A"]
    assert comparison["merchants"][1]["average_price"] == pytest.approx(5.5)
    assert comparison["merchants"][1]["purchase_count"] == 2
    assert comparison["current_price"] == 4.0
    assert comparison["overall_average_price"] == pytest.approx(5.0)
    assert comparison["difference_percent"] == pytest.approx(-20.0)
    assert comparison["best_merchant"] == "Mercado B"
    assert comparison["savings_potential"] == pytest.approx(1.5)


def test_compare_price_without_history():
    catalog, _ = make_catalog()
    product = catalog.resolve_product("u1", "CAFE TORRADO 500G")

    with pytest.raises(NotFoundError) as excinfo:
        catalog.compare_price("u1", product.id)
    assert excinfo.value.code == "NO_PRICE_DATA"


def test_other_users_products_are_not_found():
    catalog, _ = make_catalog()
    product = catalog.resolve_product("u1", "CAFE TORRADO 500G")

    with pytest.raises(NotFoundError) as excinfo:
        catalog.price_history("u2", product.id)
    assert excinfo.value.code == "PRODUCT_NOT_FOUND"
