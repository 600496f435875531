"""High level orchestration of the invoice ingestion pipeline."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..config import Settings
from .assembler import InvoiceAssembler
from .cache import MemoryCache
from .catalog import ProductCatalog
from .classifier import CategoryClassifier
from .extraction import InvoiceExtractionService
from .fetcher import HttpFetcher
from .keys import InvoiceKeyResolver
from .matcher import ProductMatcher
from .models import InvoiceWithItems, ParsedInvoice
from .normalizer import ProductNormalizer
from .oracle import ExtractionOracle, GeminiOracle
from .parser import HTMLExtractor, XMLExtractor
from .pdf_parser import PDFExtractor
from .repository import Repository
from .store import DocumentStore, InMemoryDocumentStore, JsonFileDocumentStore
from .utils import dump_json, utcnow


LOGGER = logging.getLogger(__name__)


class InvoicePipeline:
    """Wires extractors, classifier, catalogue and assembler from the settings.

    Collaborators with side effects (store, fetcher, oracle, cache) can be
    injected; otherwise they are built from the configuration.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: Optional[DocumentStore] = None,
        fetcher=None,
        oracle: Optional[ExtractionOracle] = None,
        cache: Optional[MemoryCache] = None,
    ) -> None:
        self.settings = settings
        self.settings.ensure_folders()

        if store is None:
            store_file = settings.paths.store_file
            store = JsonFileDocumentStore(store_file) if store_file else InMemoryDocumentStore()
        self.store = store
        self.fetcher = fetcher or HttpFetcher.from_settings(settings.fetch)
        self.oracle = oracle if oracle is not None else GeminiOracle.from_settings(settings.ai)
        self.cache = cache or MemoryCache.from_settings(settings.cache)

        self.normalizer = ProductNormalizer()
        self.matcher = ProductMatcher(
            similarity_threshold=settings.matching.similarity_threshold,
            ncm_similarity_threshold=settings.matching.ncm_similarity_threshold,
        )
        self.classifier = CategoryClassifier()

        html_extractor = HTMLExtractor()
        self.extraction = InvoiceExtractionService(
            fetcher=self.fetcher,
            key_resolver=InvoiceKeyResolver(
                self.fetcher,
                allowed_portals=settings.fetch.allowed_portals,
                url_template=settings.fetch.portal_url_template,
            ),
            classifier=self.classifier,
            html_extractor=html_extractor,
            xml_extractor=XMLExtractor(html_extractor),
            pdf_extractor=PDFExtractor(
                oracle=self.oracle,
                tolerance=settings.pdf.total_tolerance,
                batch_size=settings.ai.batch_size,
                max_workers=settings.ai.max_workers,
            ),
            oracle=self.oracle,
            cache=self.cache,
        )

        self.repository = Repository(self.store)
        self.catalog = ProductCatalog(
            self.repository,
            normalizer=self.normalizer,
            matcher=self.matcher,
            classifier=self.classifier,
        )
        self.assembler = InvoiceAssembler(self.repository, self.catalog, cache=self.cache)

    def parse(self, source: str, *, kind: str = "auto", force_refresh: bool = False) -> ParsedInvoice:
        """Parse ``source`` without persisting it.

        ``kind`` is one of ``url``, ``qr``, ``xml``, ``html`` or ``auto``, which
        treats http(s) strings as URLs and anything else as a QR payload.
        """

        if kind == "auto":
            kind = "url" if source.strip().lower().startswith(("http://", "https://")) else "qr"
        if kind == "url":
            return self.extraction.parse_from_url(source, force_refresh=force_refresh)
        if kind == "qr":
            return self.extraction.parse_from_qr(source, force_refresh=force_refresh)
        if kind == "xml":
            return self.extraction.parse_xml(source)
        if kind == "html":
            return self.extraction.parse_html(source)
        raise ValueError(f"Unknown source kind: {kind}")

    def parse_pdf(self, data: bytes) -> ParsedInvoice:
        return self.extraction.parse_pdf(data)

    def ingest(
        self,
        user_id: str,
        parsed: ParsedInvoice,
        *,
        custom_category: Optional[str] = None,
        transaction_id: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> InvoiceWithItems:
        result = self.assembler.create_invoice(
            user_id,
            parsed,
            custom_category=custom_category,
            transaction_id=transaction_id,
            account_id=account_id,
        )
        self._persist_ingestion_log(user_id, parsed, result)
        return result

    def delete_invoice(self, invoice_id: str, user_id: str) -> None:
        self.assembler.delete_invoice(invoice_id, user_id)

    def get_invoice(self, invoice_id: str, user_id: str) -> InvoiceWithItems:
        return self.assembler.get_invoice(invoice_id, user_id)

    def list_invoices(self, user_id: str, **filters: Any):
        return self.assembler.list_invoices(user_id, **filters)

    def update_invoice(self, invoice_id: str, user_id: str, **changes: Any):
        return self.assembler.update_invoice(invoice_id, user_id, **changes)

    def price_history(self, user_id: str, product_id: str, days: int = 90) -> Dict[str, Any]:
        return self.catalog.price_history(user_id, product_id, days)

    def compare_price(self, user_id: str, product_id: str, days: int = 90) -> Dict[str, Any]:
        return self.catalog.compare_price(user_id, product_id, days)

    def list_products(self, user_id: str) -> List[Any]:
        return self.catalog.list_products(user_id)

    def _persist_ingestion_log(self, user_id: str, parsed: ParsedInvoice, result: InvoiceWithItems) -> None:
        log_folder = self.settings.paths.log_folder
        if not log_folder:
            return
        created_at = utcnow()
        payload = {
            "created_at": created_at.isoformat(),
            "user_id": user_id,
            "invoice_id": result.invoice.id,
            "invoice_key": parsed.invoice_key,
            "key_source": parsed.metadata.key_source.value,
            "method": parsed.metadata.method.value,
            "from_cache": parsed.metadata.from_cache,
            "merchant_cnpj": parsed.merchant.cnpj,
            "merchant_name": parsed.merchant.name,
            "category": result.invoice.category.value,
            "items": len(result.items),
            "total": parsed.totals.total,
        }
        dump_json(log_folder / f"ingest_{created_at:%Y%m%d%H%M%S%f}_{result.invoice.id}.json", payload)


__all__ = ["InvoicePipeline"]
