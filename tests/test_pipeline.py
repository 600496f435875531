import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from nfe_ingest.config import Settings
from nfe_ingest.core.errors import DuplicateInvoiceError, NotFoundError, PartialWriteError
from nfe_ingest.core.models import (
    Category,
    ExtractionMetadata,
    ExtractionMethod,
    InvoiceTotals,
    MerchantInfo,
    ParsedInvoice,
    ParsedInvoiceItem,
)
from nfe_ingest.core.pipeline import InvoicePipeline
from nfe_ingest.core.repository import INVOICE_ITEMS, INVOICES, PRICE_HISTORY, PRODUCTS
from nfe_ingest.core.store import InMemoryDocumentStore


EXAMPLES = Path(__file__).resolve().parents[1] / "example_docs"
XML_KEY = "35240112345678000190650010000012341000012345"
NOW = datetime.utcnow().replace(microsecond=0)


class OfflineFetcher:
    def fetch_text(self, url, timeout=None):
        raise AssertionError(f"unexpected fetch of {url}")


def make_pipeline(settings=None, store=None):
    return InvoicePipeline(
        settings or Settings.parse_obj({}),
        store=store if store is not None else InMemoryDocumentStore(),
        fetcher=OfflineFetcher(),
    )


def make_parsed(key, descriptions, *, price=5.0, cnpj="98765432000110", name="SUPERMERCADO BOM PRECO LTDA", days=1):
    items = [
        ParsedInvoiceItem(description=description, quantity=1.0, unit_price=price, total_price=price)
        for description in descriptions
    ]
    total = price * len(items)
    return ParsedInvoice(
        invoice_key=key,
        number="1",
        series="1",
        issue_date=NOW - timedelta(days=days),
        merchant=MerchantInfo(cnpj=cnpj, name=name),
        items=items,
        totals=InvoiceTotals(subtotal=total, total=total),
        metadata=ExtractionMetadata(method=ExtractionMethod.HTML, parsed_at=NOW),
        category=Category.SUPERMARKET,
    )


def key(n):
    return f"{n:044d}"


def parse_fixture(pipeline):
    return pipeline.parse((EXAMPLES / f"{XML_KEY}-nfe.xml").read_text(encoding="utf-8"), kind="xml")


def test_xml_invoice_is_assembled_and_classified():
    pipeline = make_pipeline()

    result = pipeline.ingest("u1", parse_fixture(pipeline))

    assert result.invoice.total_amount == pytest.approx(19.40)
    assert result.invoice.category == Category.PHARMACY
    assert result.invoice.invoice_key == XML_KEY
    assert len(result.items) == 2
    assert [item.line_number for item in result.items] == [1, 2]
    assert result.items[1].discount_amount == pytest.approx(0.5)


def test_resubmission_is_a_duplicate_only_for_the_same_user():
    pipeline = make_pipeline()
    first = pipeline.ingest("u1", parse_fixture(pipeline))

    with pytest.raises(DuplicateInvoiceError) as excinfo:
        pipeline.ingest("u1", parse_fixture(pipeline))
    assert excinfo.value.existing_id == first.invoice.id
    assert excinfo.value.details["existing_invoice_id"] == first.invoice.id

    other = pipeline.ingest("u2", parse_fixture(pipeline))
    assert other.invoice.id != first.invoice.id


def test_milk_from_two_brands_resolves_to_one_product():
    pipeline = make_pipeline()

    first = pipeline.ingest("u1", make_parsed(key(1), ["LEITE UHT ITALAC INT 1L"]))
    second = pipeline.ingest("u1", make_parsed(key(2), ["LEITE TIROL INT 1L"], price=6.0))

    assert first.items[0].product_id == second.items[0].product_id
    product = pipeline.catalog.get_product("u1", first.items[0].product_id)
    assert product.total_purchases == 2
    assert product.average_price == pytest.approx(5.5)


def test_two_lines_of_the_same_product_count_twice():
    pipeline = make_pipeline()

    result = pipeline.ingest("u1", make_parsed(key(3), ["ARROZ BRANCO 5KG", "ARROZ BRANCO 5KG"]))

    assert result.items[0].product_id == result.items[1].product_id
    assert pipeline.catalog.get_product("u1", result.items[0].product_id).total_purchases == 2
    assert len(pipeline.store.list(PRICE_HISTORY)) == 2


def test_deleting_the_only_purchase_resets_the_product():
    pipeline = make_pipeline()
    result = pipeline.ingest("u1", make_parsed(key(4), ["CAFE TORRADO 500G"]))
    product_id = result.items[0].product_id

    pipeline.delete_invoice(result.invoice.id, "u1")

    product = pipeline.catalog.get_product("u1", product_id)
    assert product.total_purchases == 0
    assert product.average_price == 0.0
    assert product.last_purchase_date is None
    assert pipeline.store.list(PRICE_HISTORY) == []
    with pytest.raises(NotFoundError):
        pipeline.get_invoice(result.invoice.id, "u1")


def test_delete_then_recreate_restores_the_same_statistics():
    pipeline = make_pipeline()
    pipeline.ingest("u1", make_parsed(key(5), ["CAFE TORRADO 500G"], price=10.0, days=3))
    parsed = make_parsed(key(6), ["CAFE TORRADO 500G"], price=14.0, days=1)
    created = pipeline.ingest("u1", parsed)
    product_id = created.items[0].product_id
    before = pipeline.catalog.get_product("u1", product_id)

    pipeline.delete_invoice(created.invoice.id, "u1")
    after_delete = pipeline.catalog.get_product("u1", product_id)
    pipeline.ingest("u1", parsed)
    after = pipeline.catalog.get_product("u1", product_id)

    assert (after_delete.total_purchases, after_delete.average_price) == (1, 10.0)
    assert after_delete.last_purchase_date == NOW - timedelta(days=3)
    assert (after.total_purchases, after.average_price) == (before.total_purchases, before.average_price)
    assert after.last_purchase_date == before.last_purchase_date


def test_delete_restores_the_average_of_fractional_prices():
    pipeline = make_pipeline()
    for n, price in enumerate([1.00, 1.01, 1.01], start=10):
        pipeline.ingest("u1", make_parsed(key(n), ["SAL REFINADO 1KG"], price=price, days=5))
    product_id = pipeline.catalog.list_products("u1")[0].id
    before = pipeline.catalog.get_product("u1", product_id)

    parsed = make_parsed(key(20), ["SAL REFINADO 1KG"], price=1.00, days=1)
    created = pipeline.ingest("u1", parsed)
    pipeline.delete_invoice(created.invoice.id, "u1")
    after_delete = pipeline.catalog.get_product("u1", product_id)
    recreated = pipeline.ingest("u1", parsed)
    after = pipeline.catalog.get_product("u1", recreated.items[0].product_id)

    assert before.average_price == pytest.approx(3.02 / 3)
    assert after_delete.total_purchases == 3
    assert after_delete.average_price == pytest.approx(before.average_price)
    assert after.total_purchases == 4
    assert after.average_price == pytest.approx(4.02 / 4)


def test_other_users_cannot_see_or_delete_an_invoice():
    pipeline = make_pipeline()
    result = pipeline.ingest("u1", make_parsed(key(7), ["CAFE TORRADO 500G"]))

    with pytest.raises(NotFoundError):
        pipeline.get_invoice(result.invoice.id, "u2")
    with pytest.raises(NotFoundError):
        pipeline.delete_invoice(result.invoice.id, "u2")
    assert pipeline.get_invoice(result.invoice.id, "u1").invoice.id == result.invoice.id


def test_failed_item_write_removes_partial_data(monkeypatch):
    pipeline = make_pipeline()
    calls = []
    original = pipeline.catalog.append_price_history

    def failing_append(invoice, item):
        calls.append(item.line_number)
        if item.line_number == 2:
            raise RuntimeError("storage offline")
        return original(invoice, item)

    monkeypatch.setattr(pipeline.catalog, "append_price_history", failing_append)

    with pytest.raises(RuntimeError, match="storage offline"):
        pipeline.ingest("u1", make_parsed(key(8), ["CAFE TORRADO 500G", "ARROZ BRANCO 5KG"]))

    assert calls == [1, 2]
    assert pipeline.list_invoices("u1") == []
    assert pipeline.store.list("invoice_items") == []
    assert pipeline.store.list(PRICE_HISTORY) == []
    assert all(product.total_purchases == 0 for product in pipeline.list_products("u1"))


def test_failed_cleanup_is_reported_as_partial_write(monkeypatch):
    pipeline = make_pipeline()

    def failing_purchase(product_id, unit_price, purchase_date):
        raise RuntimeError("stats offline")

    def failing_delete(invoice_id):
        raise RuntimeError("delete offline")

    monkeypatch.setattr(pipeline.catalog, "record_purchase", failing_purchase)
    monkeypatch.setattr(pipeline.repository, "delete_invoice", failing_delete)

    with pytest.raises(PartialWriteError) as excinfo:
        pipeline.ingest("u1", make_parsed(key(9), ["CAFE TORRADO 500G"]))
    assert "stats offline" in excinfo.value.details["original_error"]
    assert "delete offline" in excinfo.value.details["cleanup_error"]


def test_list_invoices_filters_and_sees_new_invoices():
    pipeline = make_pipeline()
    pipeline.ingest("u1", make_parsed(key(10), ["CAFE TORRADO 500G"], price=10.0, days=10))
    assert len(pipeline.list_invoices("u1")) == 1

    pipeline.ingest("u1", make_parsed(key(11), ["CAFE TORRADO 500G"], price=30.0, days=2, name="POSTO CENTRAL"))

    newest_first = pipeline.list_invoices("u1")
    assert [invoice.invoice_key for invoice in newest_first] == [key(11), key(10)]
    assert [i.invoice_key for i in pipeline.list_invoices("u1", min_amount=20)] == [key(11)]
    assert [i.invoice_key for i in pipeline.list_invoices("u1", merchant="posto")] == [key(11)]
    assert [i.invoice_key for i in pipeline.list_invoices("u1", start_date=NOW - timedelta(days=5))] == [key(11)]
    assert [i.invoice_key for i in pipeline.list_invoices("u1", limit=1, offset=1)] == [key(10)]
    assert pipeline.list_invoices("u2") == []


def test_custom_category_and_update():
    pipeline = make_pipeline()
    result = pipeline.ingest(
        "u1", make_parsed(key(12), ["CAFE TORRADO 500G"]), custom_category="restaurant", transaction_id="tx-1"
    )
    assert result.invoice.category == Category.RESTAURANT
    assert result.invoice.custom_category == "restaurant"
    assert result.invoice.transaction_id == "tx-1"

    updated = pipeline.update_invoice(result.invoice.id, "u1", category="groceries", account_id="acc-9")

    assert updated.category == Category.GROCERIES
    assert updated.account_id == "acc-9"
    assert [i.category for i in pipeline.list_invoices("u1", category="groceries")] == [Category.GROCERIES]


def test_price_history_through_the_pipeline():
    pipeline = make_pipeline()
    first = pipeline.ingest("u1", make_parsed(key(13), ["CAFE TORRADO 500G"], price=12.0, days=4))
    pipeline.ingest("u1", make_parsed(key(14), ["CAFE TORRADO 500G"], price=10.0, days=1, cnpj="11111111000111",
                                      name="MERCADO VIZINHO"))
    product_id = first.items[0].product_id

    history = pipeline.price_history("u1", product_id)
    comparison = pipeline.compare_price("u1", product_id)

    assert [entry["price"] for entry in history["prices"]] == [10.0, 12.0]
    assert comparison["best_merchant"] == "MERCADO VIZINHO"
    assert comparison["savings_potential"] == pytest.approx(2.0)


def test_ingestion_writes_a_log_and_json_store_persists(tmp_path):
    settings = Settings.parse_obj(
        {"paths": {"store_file": str(tmp_path / "store.json"), "log_folder": str(tmp_path / "logs")}}
    )
    pipeline = InvoicePipeline(settings, fetcher=OfflineFetcher())

    result = pipeline.ingest("u1", parse_fixture(pipeline))

    logs = list((tmp_path / "logs").glob("ingest_*.json"))
    assert len(logs) == 1
    entry = json.loads(logs[0].read_text(encoding="utf-8"))
    assert entry["invoice_id"] == result.invoice.id
    assert entry["method"] == "xml"
    assert entry["items"] == 2

    reloaded = InvoicePipeline(settings, fetcher=OfflineFetcher())
    assert reloaded.get_invoice(result.invoice.id, "u1").invoice.invoice_key == XML_KEY


def test_parse_rejects_unknown_kind():
    with pytest.raises(ValueError):
        make_pipeline().parse("x", kind="csv")


class RacingStore(InMemoryDocumentStore):
    """Writes a competing copy of the first record created in ``collection`` just before it."""

    def __init__(self, collection):
        super().__init__()
        self.collection = collection
        self.rival_id = None

    def create(self, collection, record_id, fields):
        if collection == self.collection and self.rival_id is None:
            self.rival_id = "rival"
            super().create(collection, self.rival_id, fields)
        return super().create(collection, record_id, fields)


def test_concurrent_insert_of_the_same_key_is_reported_as_duplicate():
    store = RacingStore(INVOICES)
    pipeline = make_pipeline(store=store)

    with pytest.raises(DuplicateInvoiceError) as excinfo:
        pipeline.ingest("u1", make_parsed(key(30), ["CAFE TORRADO 500G"]))

    assert excinfo.value.existing_id == "rival"
    assert [record["id"] for record in store.list(INVOICES)] == ["rival"]
    assert store.list(INVOICE_ITEMS) == []
    assert store.list(PRICE_HISTORY) == []


def test_concurrent_product_creation_reuses_the_existing_product():
    store = RacingStore(PRODUCTS)
    pipeline = make_pipeline(store=store)
    parsed = make_parsed(key(31), ["LEITE INTEGRAL 1L"])
    parsed.items[0].product_code = "7891000100103"

    result = pipeline.ingest("u1", parsed)

    assert result.items[0].product_id == "rival"
    assert [record["id"] for record in store.list(PRODUCTS)] == ["rival"]
    assert pipeline.catalog.get_product("u1", "rival").total_purchases == 1
