"""Turn parsed invoices into stored invoices, items, products and price history."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cache import MemoryCache, invoice_list_prefix
from .catalog import ProductCatalog
from .errors import DuplicateInvoiceError, NotFoundError, PartialWriteError
from .models import Category, Invoice, InvoiceItem, InvoiceWithItems, ParsedInvoice
from .repository import Repository
from .store import UniqueConstraintError
from .utils import new_id, utcnow


LOGGER = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 25


class InvoiceAssembler:
    """Persist :class:`ParsedInvoice` objects for a user.

    ``create_invoice`` either stores the invoice with all of its items, product
    statistics and price history, or removes whatever it wrote before
    re-raising the original error.
    """

    def __init__(self, repository: Repository, catalog: ProductCatalog, cache: Optional[MemoryCache] = None) -> None:
        self.repository = repository
        self.catalog = catalog
        self.cache = cache

    def create_invoice(
        self,
        user_id: str,
        parsed: ParsedInvoice,
        custom_category: Optional[str] = None,
        transaction_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> InvoiceWithItems:
        existing = self.repository.find_invoice_by_key(user_id, parsed.invoice_key)
        if existing is not None:
            LOGGER.info("Invoice %s already registered for user %s as %s", parsed.invoice_key, user_id, existing.id)
            raise DuplicateInvoiceError(existing.id, existing.created_at)

        now = utcnow()
        invoice = Invoice(
            id=new_id(),
            user_id=user_id,
            invoice_key=parsed.invoice_key,
            invoice_number=parsed.number,
            series=parsed.series,
            issue_date=parsed.issue_date,
            merchant_cnpj=parsed.merchant.cnpj,
            merchant_name=parsed.merchant.name,
            merchant_address=parsed.merchant.address,
            total_amount=parsed.totals.total,
            discount_amount=parsed.totals.discount,
            tax_amount=parsed.totals.tax,
            category=Category.parse(custom_category) if custom_category else parsed.category,
            custom_category=custom_category,
            transaction_id=transaction_id,
            account_id=account_id,
            created_at=now,
            updated_at=now,
        )
        try:
            invoice = self.repository.create_invoice(invoice)
        except UniqueConstraintError as exc:
            # Lost the race against a concurrent ingestion of the same key.
            winner = self.repository.find_invoice_by_key(user_id, parsed.invoice_key)
            if winner is None:
                raise
            raise DuplicateInvoiceError(winner.id, winner.created_at) from exc

        items: List[InvoiceItem] = []
        purchased: List[str] = []
        try:
            for line_number, parsed_item in enumerate(parsed.items, start=1):
                product = self.catalog.resolve_product(
                    user_id, parsed_item.description, parsed_item.product_code, parsed_item.ncm_code
                )
                items.append(
                    self.repository.create_item(
                        InvoiceItem(
                            id=new_id(),
                            invoice_id=invoice.id,
                            user_id=user_id,
                            product_id=product.id,
                            description=parsed_item.description,
                            quantity=parsed_item.quantity,
                            unit_price=parsed_item.unit_price,
                            total_price=parsed_item.total_price,
                            discount_amount=parsed_item.discount_amount,
                            line_number=line_number,
                            product_code=parsed_item.product_code,
                            ncm_code=parsed_item.ncm_code,
                            created_at=now,
                        )
                    )
                )

            for item in items:
                self.catalog.record_purchase(item.product_id, item.unit_price, invoice.issue_date)
                purchased.append(item.product_id)
                self.catalog.append_price_history(invoice, item)
        except Exception as exc:
            LOGGER.error("Creating invoice %s failed (%s); removing partial writes", invoice.id, exc)
            try:
                self._rollback(invoice, items, purchased)
            except Exception as cleanup_exc:
                LOGGER.error("Cleanup of invoice %s failed: %s", invoice.id, cleanup_exc)
                raise PartialWriteError(exc, cleanup_exc) from exc
            raise

        self._invalidate_listings(user_id)
        LOGGER.info(
            "Created invoice %s (%s) for user %s with %s items",
            invoice.id,
            invoice.invoice_key,
            user_id,
            len(items),
        )
        return InvoiceWithItems(invoice=invoice, items=items)

    def _rollback(self, invoice: Invoice, items: List[InvoiceItem], purchased: List[str]) -> None:
        for product_id in purchased:
            self.catalog.reverse_purchase(product_id, invoice.id)
        self.catalog.delete_price_history(invoice.id)
        for item in items:
            self.repository.delete_item(item.id)
        self.repository.delete_invoice(invoice.id)

    def delete_invoice(self, invoice_id: str, user_id: str) -> None:
        invoice = self._owned_invoice(invoice_id, user_id)
        items = self.repository.items_for_invoice(invoice.id)
        for item in items:
            self.repository.delete_item(item.id)
        self.repository.delete_invoice(invoice.id)

        for item in items:
            self.catalog.reverse_purchase(item.product_id, invoice.id)
        self.catalog.delete_price_history(invoice.id)

        self._invalidate_listings(user_id)
        LOGGER.info("Deleted invoice %s (%s items) of user %s", invoice.id, len(items), user_id)

    def get_invoice(self, invoice_id: str, user_id: str) -> InvoiceWithItems:
        invoice = self._owned_invoice(invoice_id, user_id)
        return InvoiceWithItems(invoice=invoice, items=self.repository.items_for_invoice(invoice.id))

    def list_invoices(
        self,
        user_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        category: Optional[str] = None,
        merchant: Optional[str] = None,
        min_amount: Optional[float] = None,
        max_amount: Optional[float] = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> List[Invoice]:
        filters: Dict[str, Any] = {"user_id": user_id}
        if start_date is not None:
            filters["issue_date__gte"] = start_date
        if end_date is not None:
            filters["issue_date__lte"] = end_date
        if category:
            filters["category"] = Category.parse(category)
        if merchant:
            filters["merchant_name__contains"] = merchant
        if min_amount is not None:
            filters["total_amount__gte"] = min_amount
        if max_amount is not None:
            filters["total_amount__lte"] = max_amount

        cache_key = invoice_list_prefix(user_id) + "|".join(
            f"{name}={value}" for name, value in sorted(filters.items())
        ) + f"|limit={limit}|offset={offset}"
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return [replace(invoice) for invoice in cached]

        invoices = self.repository.list_invoices(filters, limit=limit, offset=offset)
        if self.cache is not None:
            self.cache.set(cache_key, invoices)
        return [replace(invoice) for invoice in invoices]

    def update_invoice(
        self,
        invoice_id: str,
        user_id: str,
        *,
        category: Optional[str] = None,
        custom_category: Optional[str] = None,
        transaction_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Invoice:
        self._owned_invoice(invoice_id, user_id)
        changes: Dict[str, Any] = {}
        if category is not None:
            changes["category"] = Category.parse(category)
        if custom_category is not None:
            changes["custom_category"] = custom_category
        if transaction_id is not None:
            changes["transaction_id"] = transaction_id
        if account_id is not None:
            changes["account_id"] = account_id
        changes["updated_at"] = utcnow()

        invoice = self.repository.update_invoice(invoice_id, changes)
        self._invalidate_listings(user_id)
        return invoice

    def _owned_invoice(self, invoice_id: str, user_id: str) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        # Another user's invoice is reported exactly like a missing one.
        if invoice is None or invoice.user_id != user_id:
            raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
        return invoice

    def _invalidate_listings(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_prefix(invoice_list_prefix(user_id))


__all__ = ["InvoiceAssembler", "DEFAULT_LIST_LIMIT"]
