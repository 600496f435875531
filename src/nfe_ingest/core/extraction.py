"""Invoice extraction service: URL/QR resolution, strategy chain and caching."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from .cache import MemoryCache, parsed_invoice_key
from .classifier import CategoryClassifier
from .errors import InvalidFormatError, InvoiceError, InvoiceParseError
from .keys import InvoiceKeyResolver, InvoiceReference
from .models import Category, ExtractionMethod, ParsedInvoice
from .oracle import ExtractionOracle
from .parser import HTMLExtractor, XMLExtractor, looks_like_html, looks_like_nfe_xml
from .pdf_parser import PDFExtractor
from .utils import sanitize_url
from .validator import payload_to_invoice


LOGGER = logging.getLogger(__name__)

_XML_LINK = re.compile(r"""href=["']([^"']*\.xml[^"']*)["']""", re.IGNORECASE)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one extraction strategy: an invoice, or the reason it did not apply."""

    invoice: Optional[ParsedInvoice] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.invoice is not None

    @classmethod
    def success(cls, invoice: ParsedInvoice) -> "StrategyResult":
        return cls(invoice=invoice)

    @classmethod
    def skipped(cls, reason: str) -> "StrategyResult":
        return cls(reason=reason)


Strategy = Callable[[str, Optional[str]], StrategyResult]


class InvoiceExtractionService:
    """Turn URLs, QR payloads and uploaded documents into :class:`ParsedInvoice` objects."""

    def __init__(
        self,
        *,
        fetcher,
        key_resolver: InvoiceKeyResolver,
        classifier: CategoryClassifier,
        xml_extractor: Optional[XMLExtractor] = None,
        html_extractor: Optional[HTMLExtractor] = None,
        pdf_extractor: Optional[PDFExtractor] = None,
        oracle: Optional[ExtractionOracle] = None,
        cache: Optional[MemoryCache] = None,
    ) -> None:
        self.fetcher = fetcher
        self.key_resolver = key_resolver
        self.classifier = classifier
        self.html_extractor = html_extractor or HTMLExtractor()
        self.xml_extractor = xml_extractor or XMLExtractor(self.html_extractor)
        self.pdf_extractor = pdf_extractor or PDFExtractor(oracle=oracle)
        self.oracle = oracle
        self.cache = cache
        self.strategies: Sequence[Tuple[ExtractionMethod, Strategy]] = (
            (ExtractionMethod.XML, self._try_xml),
            (ExtractionMethod.HTML, self._try_html),
            (ExtractionMethod.AI, self._try_ai),
        )

    def parse_from_url(self, url: str, force_refresh: bool = False) -> ParsedInvoice:
        reference = self.key_resolver.from_url(url)
        LOGGER.info("Parsing invoice from %s", sanitize_url(reference.url))
        return self._parse_reference(reference, force_refresh)

    def parse_from_qr(self, payload: str, force_refresh: bool = False) -> ParsedInvoice:
        reference = self.key_resolver.from_qr(payload)
        LOGGER.info("Parsing invoice from QR code (%s)", sanitize_url(reference.url))
        return self._parse_reference(reference, force_refresh)

    def _parse_reference(self, reference: InvoiceReference, force_refresh: bool) -> ParsedInvoice:
        if reference.key and not force_refresh:
            cached = self._cached(reference.key)
            if cached is not None:
                return cached

        body = self.fetcher.fetch_text(reference.url)
        key = self.key_resolver.resolve_key(reference, body)
        if not reference.key and not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return cached

        body = self._follow_xml_link(body, reference.url)
        invoice = self._classify(self._run_strategies(body, key))

        if self.cache is not None and not force_refresh:
            self.cache.set(parsed_invoice_key(invoice.invoice_key), invoice)
            if invoice.invoice_key != key:
                self.cache.set(parsed_invoice_key(key), invoice)
        return invoice

    def _cached(self, key: str) -> Optional[ParsedInvoice]:
        if self.cache is None:
            return None
        invoice = self.cache.get(parsed_invoice_key(key))
        if invoice is None:
            return None
        LOGGER.info("Cache hit for invoice %s", key)
        return replace(invoice, metadata=replace(invoice.metadata, from_cache=True))

    def _follow_xml_link(self, body: str, base_url: str) -> str:
        if not looks_like_html(body):
            return body
        match = _XML_LINK.search(body)
        if not match:
            return body

        xml_url = urljoin(base_url, match.group(1))
        try:
            self.key_resolver.validate_url(xml_url)
            xml_body = self.fetcher.fetch_text(xml_url)
        except InvoiceError as exc:
            LOGGER.warning("Could not follow XML link %s: %s", sanitize_url(xml_url), exc)
            return body

        if looks_like_nfe_xml(xml_body):
            LOGGER.info("Following XML link %s", sanitize_url(xml_url))
            return xml_body
        return body

    def _run_strategies(self, body: str, key: Optional[str]) -> ParsedInvoice:
        reasons: List[str] = []
        for method, strategy in self.strategies:
            result = strategy(body, key)
            if result.ok:
                LOGGER.info(
                    "Extracted invoice %s with %s strategy (%s items)",
                    result.invoice.invoice_key,
                    method.value,
                    len(result.invoice.items),
                )
                return result.invoice
            LOGGER.info("%s strategy not applicable: %s", method.value, result.reason)
            reasons.append(f"{method.value}: {result.reason}")

        raise InvoiceParseError("Could not extract invoice data from document", details={"attempts": reasons})

    def _try_xml(self, body: str, key: Optional[str]) -> StrategyResult:
        if looks_like_html(body) or not looks_like_nfe_xml(body):
            return StrategyResult.skipped("document is not NF-e XML")
        try:
            return StrategyResult.success(self.xml_extractor.extract(body, key))
        except InvoiceParseError as exc:
            return StrategyResult.skipped(exc.message)

    def _try_html(self, body: str, key: Optional[str]) -> StrategyResult:
        if not looks_like_html(body) or not self.html_extractor.has_items(body):
            return StrategyResult.skipped("no portal item table found")
        try:
            return StrategyResult.success(self.html_extractor.extract(body, key))
        except InvoiceParseError as exc:
            return StrategyResult.skipped(exc.message)

    def _try_ai(self, body: str, key: Optional[str]) -> StrategyResult:
        if self.oracle is None:
            return StrategyResult.skipped("AI extraction is disabled")
        LOGGER.warning("Structured parsing failed; using AI extraction")
        payload = self.oracle.extract_structured_invoice(body, key)
        return StrategyResult.success(payload_to_invoice(payload, known_key=key, raw_source=body))

    def parse_xml(self, document, known_key: Optional[str] = None) -> ParsedInvoice:
        if not document or not document.strip():
            raise InvalidFormatError("XML document is empty")
        return self._classify(self.xml_extractor.extract(document, known_key))

    def parse_html(self, document, known_key: Optional[str] = None) -> ParsedInvoice:
        if not document or not document.strip():
            raise InvalidFormatError("HTML document is empty")
        return self._classify(self.html_extractor.extract(document, known_key))

    def parse_pdf(self, data: bytes, known_key: Optional[str] = None) -> ParsedInvoice:
        if not data:
            raise InvalidFormatError("PDF document is empty")
        return self._classify(self.pdf_extractor.extract(data, known_key))

    def _classify(self, invoice: ParsedInvoice) -> ParsedInvoice:
        category = self.classifier.classify(invoice.merchant, invoice.items)
        if category is Category.OTHER:
            return invoice
        if invoice.category not in (Category.OTHER, category):
            LOGGER.info(
                "Overriding extracted category %s with classifier category %s",
                invoice.category.value,
                category.value,
            )
        invoice.category = category
        return invoice


__all__ = ["InvoiceExtractionService", "StrategyResult"]
