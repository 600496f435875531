"""Typed access to the document store.

Loose store records are converted into the dataclasses of
:mod:`nfe_ingest.core.models` here, so the rest of the pipeline never handles
raw dictionaries.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from .models import Category, Invoice, InvoiceItem, PriceHistoryEntry, Product
from .store import DocumentStore, RecordNotFoundError
from .utils import parse_datetime, safe_float


LOGGER = logging.getLogger(__name__)

INVOICES = "invoices"
INVOICE_ITEMS = "invoice_items"
PRODUCTS = "products"
PRICE_HISTORY = "price_history"

_DATETIME_FIELDS = {"issue_date", "created_at", "updated_at", "last_purchase_date", "purchase_date"}
_FLOAT_FIELDS = {
    "total_amount",
    "discount_amount",
    "tax_amount",
    "quantity",
    "unit_price",
    "total_price",
    "average_price",
}

T = TypeVar("T")


def from_record(cls: Type[T], record: Mapping[str, Any]) -> T:
    """Build ``cls`` from ``record``, coercing dates, numbers and categories."""

    values: Dict[str, Any] = {}
    for field in fields(cls):
        if field.name not in record:
            continue
        value = record[field.name]
        if field.name in _DATETIME_FIELDS:
            value = value if isinstance(value, datetime) else parse_datetime(value)
        elif field.name in _FLOAT_FIELDS:
            value = safe_float(value, default=0.0)
        elif field.name == "category":
            value = Category.parse(value)
        elif field.name in {"total_purchases", "line_number"}:
            value = int(value or 0)
        values[field.name] = value
    return cls(**values)


def to_fields(instance) -> Dict[str, Any]:
    data = asdict(instance)
    data.pop("id", None)
    return data


class Repository:
    """Entity level operations over a :class:`DocumentStore`."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # Invoices
    def create_invoice(self, invoice: Invoice) -> Invoice:
        return from_record(Invoice, self.store.create(INVOICES, invoice.id, to_fields(invoice)))

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        try:
            return from_record(Invoice, self.store.get(INVOICES, invoice_id))
        except RecordNotFoundError:
            return None

    def find_invoice_by_key(self, user_id: str, invoice_key: str) -> Optional[Invoice]:
        records = self.store.list(INVOICES, {"user_id": user_id, "invoice_key": invoice_key}, limit=1)
        return from_record(Invoice, records[0]) if records else None

    def list_invoices(
        self,
        filters: Mapping[str, Any],
        *,
        sort: str = "-issue_date",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Invoice]:
        records = self.store.list(INVOICES, filters, sort=sort, limit=limit, offset=offset)
        return [from_record(Invoice, record) for record in records]

    def update_invoice(self, invoice_id: str, changes: Mapping[str, Any]) -> Invoice:
        return from_record(Invoice, self.store.update(INVOICES, invoice_id, changes))

    def delete_invoice(self, invoice_id: str) -> None:
        self.store.delete(INVOICES, invoice_id)

    # Items
    def create_item(self, item: InvoiceItem) -> InvoiceItem:
        return from_record(InvoiceItem, self.store.create(INVOICE_ITEMS, item.id, to_fields(item)))

    def items_for_invoice(self, invoice_id: str) -> List[InvoiceItem]:
        records = self.store.list(INVOICE_ITEMS, {"invoice_id": invoice_id}, sort="line_number")
        return [from_record(InvoiceItem, record) for record in records]

    def delete_item(self, item_id: str) -> None:
        self.store.delete(INVOICE_ITEMS, item_id)

    # Products
    def create_product(self, product: Product) -> Product:
        return from_record(Product, self.store.create(PRODUCTS, product.id, to_fields(product)))

    def get_product(self, product_id: str) -> Optional[Product]:
        try:
            return from_record(Product, self.store.get(PRODUCTS, product_id))
        except RecordNotFoundError:
            return None

    def find_product_by_code(self, user_id: str, product_code: str) -> Optional[Product]:
        records = self.store.list(PRODUCTS, {"user_id": user_id, "product_code": product_code}, limit=1)
        return from_record(Product, records[0]) if records else None

    def list_products(self, user_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Product]:
        query = dict(filters or {})
        query["user_id"] = user_id
        return [from_record(Product, record) for record in self.store.list(PRODUCTS, query, sort="created_at")]

    def update_product(self, product_id: str, changes: Mapping[str, Any]) -> Product:
        return from_record(Product, self.store.update(PRODUCTS, product_id, changes))

    # Price history
    def add_price_entry(self, entry: PriceHistoryEntry) -> PriceHistoryEntry:
        return from_record(PriceHistoryEntry, self.store.create(PRICE_HISTORY, entry.id, to_fields(entry)))

    def price_entries(
        self,
        product_id: str,
        *,
        user_id: Optional[str] = None,
        exclude_invoice_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[PriceHistoryEntry]:
        filters: Dict[str, Any] = {"product_id": product_id}
        if user_id is not None:
            filters["user_id"] = user_id
        if exclude_invoice_id is not None:
            filters["invoice_id__ne"] = exclude_invoice_id
        if since is not None:
            filters["purchase_date__gte"] = since
        records = self.store.list(PRICE_HISTORY, filters, sort="-purchase_date")
        return [from_record(PriceHistoryEntry, record) for record in records]

    def delete_price_entries_for_invoice(self, invoice_id: str) -> int:
        records = self.store.list(PRICE_HISTORY, {"invoice_id": invoice_id})
        for record in records:
            self.store.delete(PRICE_HISTORY, record["id"])
        return len(records)


__all__ = ["Repository", "from_record", "to_fields", "INVOICES", "INVOICE_ITEMS", "PRODUCTS", "PRICE_HISTORY"]
