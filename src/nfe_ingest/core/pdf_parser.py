"""Heuristic extraction of NFC-e data from PDF documents (DANFE printouts)."""

from __future__ import annotations

import io
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

import pdfplumber

from .errors import InvalidFormatError, InvoiceError, InvoiceParseError
from .keys import choose_invoice_key, extract_key_from_text
from .models import (
    ExtractionMetadata,
    ExtractionMethod,
    InvoiceTotals,
    MerchantInfo,
    ParsedInvoice,
    ParsedInvoiceItem,
)
from .oracle import ExtractionOracle
from .utils import normalize_barcode, only_digits, parse_brl_number, parse_datetime, round_money, utcnow
from .validator import payload_to_invoice


LOGGER = logging.getLogger(__name__)

_MONEY = r"\d{1,3}(?:\.\d{3})*,\d{2,3}|\d+\.\d{2,3}"

ITEM_LINE = re.compile(
    r"^\s*(?:(?P<seq>\d{1,3})\s+)?"
    r"(?:(?P<code>\d{8,14})\s+)?"
    r"(?P<description>[^\W\d_].*?)\s+"
    r"(?P<quantity>\d+(?:[.,]\d{1,4})?)\s*"
    r"(?:(?P<unit>UN|UND|UNID|KG|G|L|LT|ML|PC|PCT|CX|FD|DZ)\b\.?\s*)?"
    r"(?:[xX*]\s*)?"
    r"(?:R\$\s*)?(?P<unit_price>" + _MONEY + r")\s+"
    r"(?:R\$\s*)?(?P<total>" + _MONEY + r")\s*$",
    re.IGNORECASE,
)

_SKIP_WORDS = re.compile(
    r"\b(?:total|subtotal|valor|desconto|descontos|troco|pagamento|forma|cnpj|cpf|chave|tributos|protocolo)\b",
    re.IGNORECASE,
)

_CNPJ = re.compile(r"CNPJ\s*:?\s*(\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})", re.IGNORECASE)
_NUMBER = re.compile(r"\b(?:N[úu]mero|N[º°o])\.?\s*:?\s*(\d{1,9})", re.IGNORECASE)
_SERIES = re.compile(r"S[ée]rie\s*:?\s*(\d{1,3})", re.IGNORECASE)
_ISSUE_DATE = re.compile(
    r"Emiss[ãa]o\s*:?\s*(\d{2}/\d{2}/\d{4})(?:\s+(\d{2}:\d{2}(?::\d{2})?))?", re.IGNORECASE
)
_ANY_DATE = re.compile(r"(\d{2}/\d{2}/\d{4})(?:\s+(\d{2}:\d{2}(?::\d{2})?))?")
_AMOUNT_DUE = re.compile(
    r"\bValor\s+a\s+pagar\s*(?:R\$)?\s*:?\s*(?:R\$)?\s*(" + _MONEY + ")",
    re.IGNORECASE,
)
_GROSS_TOTAL = re.compile(
    r"\b(?:Valor\s+total|Total)\s*(?:R\$)?\s*:?\s*(?:R\$)?\s*(" + _MONEY + ")",
    re.IGNORECASE,
)
_DISCOUNT = re.compile(r"Descontos?\s*(?:R\$)?\s*:?\s*(?:R\$)?\s*(" + _MONEY + ")", re.IGNORECASE)

TextExtractor = Callable[[bytes], str]


def extract_pdf_text(data: bytes) -> str:
    """Return the text of every page of ``data`` joined by newlines."""

    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        raise InvalidFormatError("Could not read PDF document", details={"error": type(exc).__name__}) from exc
    return "\n".join(pages)


def parse_item_lines(text: str) -> List[ParsedInvoiceItem]:
    """Find item lines such as ``1 7891000100103 LEITE INT 1L 2 UN x 5,50 11,00``."""

    items: List[ParsedInvoiceItem] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or _SKIP_WORDS.search(line):
            continue
        match = ITEM_LINE.match(line)
        if not match:
            continue

        quantity = parse_brl_number(match.group("quantity"))
        unit_price = parse_brl_number(match.group("unit_price"))
        total_price = parse_brl_number(match.group("total"))
        if quantity <= 0:
            continue
        items.append(
            ParsedInvoiceItem(
                description=" ".join(match.group("description").split()),
                product_code=normalize_barcode(match.group("code")),
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            )
        )
    return items


def _first(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def _merchant_name(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if re.search(r"[^\W\d_]{3,}", line) and not re.search(r"CNPJ|DANFE|Documento Auxiliar", line, re.IGNORECASE):
            return line
    return ""


class PDFExtractor:
    """Line-based PDF extractor with an AI oracle fallback and enrichment pass."""

    def __init__(
        self,
        text_extractor: Optional[TextExtractor] = None,
        oracle: Optional[ExtractionOracle] = None,
        *,
        tolerance: float = 0.10,
        batch_size: int = 30,
        max_workers: int = 2,
    ) -> None:
        self.text_extractor = text_extractor or extract_pdf_text
        self.oracle = oracle
        self.tolerance = tolerance
        self.batch_size = batch_size
        self.max_workers = max_workers

    def extract(self, data: bytes, known_key: Optional[str] = None) -> ParsedInvoice:
        text = self.text_extractor(data)
        if not text or not text.strip():
            raise InvalidFormatError("PDF document has no extractable text")

        key = extract_key_from_text(text) or known_key
        items = parse_item_lines(text)
        if not items:
            return self._extract_with_oracle(text, key)

        LOGGER.info("PDF heuristics found %s items", len(items))
        items = self._enrich(items)

        cnpj = only_digits(_first(_CNPJ, text))
        number = _first(_NUMBER, text) or ""
        series = _first(_SERIES, text) or "1"
        issue_date = self._issue_date(text)

        invoice_key, key_source = choose_invoice_key([key], cnpj=cnpj, number=number, series=series)
        return ParsedInvoice(
            invoice_key=invoice_key,
            number=number,
            series=series,
            issue_date=issue_date,
            merchant=MerchantInfo(cnpj=cnpj, name=_merchant_name(text)),
            items=items,
            totals=self._reconcile_totals(text, items),
            metadata=ExtractionMetadata(method=ExtractionMethod.PDF, parsed_at=utcnow(), key_source=key_source),
            raw_source=text,
        )

    def _extract_with_oracle(self, text: str, key: Optional[str]) -> ParsedInvoice:
        if self.oracle is None:
            raise InvoiceParseError("No invoice items found in PDF and AI extraction is not available")

        LOGGER.warning("PDF heuristics found no items; falling back to AI extraction")
        payload = self.oracle.extract_structured_invoice(text, key)
        return payload_to_invoice(payload, known_key=key, method=ExtractionMethod.AI, raw_source=text)

    def _reconcile_totals(self, text: str, items: List[ParsedInvoiceItem]) -> InvoiceTotals:
        item_sum = round_money(sum(item.total_price for item in items))
        discount = parse_brl_number(_first(_DISCOUNT, text))
        if discount >= item_sum:
            discount = 0.0
        expected = round_money(item_sum - discount)

        # "Valor a pagar" is already net; "Valor total" is the gross amount before discounts.
        header_total = parse_brl_number(_first(_AMOUNT_DUE, text))
        if not header_total:
            gross = parse_brl_number(_first(_GROSS_TOTAL, text))
            header_total = round_money(gross - discount) if gross else 0.0

        if header_total and abs(header_total - expected) <= self.tolerance * item_sum:
            return InvoiceTotals(subtotal=round_money(header_total + discount), discount=discount, total=header_total)
        if header_total:
            LOGGER.warning(
                "PDF total %.2f deviates from item sum %.2f by more than %.0f%%; using item sum",
                header_total,
                expected,
                self.tolerance * 100,
            )
        return InvoiceTotals(subtotal=item_sum, discount=discount, total=expected)

    def _issue_date(self, text: str):
        match = _ISSUE_DATE.search(text) or _ANY_DATE.search(text)
        if match:
            value = match.group(1) if not match.group(2) else f"{match.group(1)} {match.group(2)}"
            parsed = parse_datetime(value)
            if parsed is not None:
                return parsed
        LOGGER.warning("Issue date not found in PDF; using the current time")
        return utcnow()

    def _enrich(self, items: List[ParsedInvoiceItem]) -> List[ParsedInvoiceItem]:
        if self.oracle is None:
            return items

        batches = [items[start : start + self.batch_size] for start in range(0, len(items), self.batch_size)]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            # map() yields in submission order, so line order survives.
            enriched = list(executor.map(self._enrich_batch, batches))
        return [item for batch in enriched for item in batch]

    def _enrich_batch(self, batch: Sequence[ParsedInvoiceItem]) -> List[ParsedInvoiceItem]:
        raw_items = [
            {"description": item.description, "productCode": item.product_code, "ncmCode": item.ncm_code}
            for item in batch
        ]
        try:
            enriched = self.oracle.enrich_items(raw_items)
        except InvoiceError as exc:
            LOGGER.warning("Item enrichment failed (%s); keeping heuristic items", exc)
            return list(batch)

        if len(enriched) != len(batch):
            LOGGER.warning(
                "Item enrichment returned %s entries for %s items; keeping heuristic items", len(enriched), len(batch)
            )
            return list(batch)
        return [self._apply_enrichment(item, entry) for item, entry in zip(batch, enriched)]

    @staticmethod
    def _apply_enrichment(item: ParsedInvoiceItem, entry: Dict) -> ParsedInvoiceItem:
        description = str(entry.get("description") or "").strip()
        return replace(
            item,
            description=description or item.description,
            product_code=item.product_code or normalize_barcode(entry.get("productCode")),
            ncm_code=item.ncm_code or (only_digits(entry.get("ncmCode")) or None),
        )


__all__ = ["PDFExtractor", "extract_pdf_text", "parse_item_lines", "ITEM_LINE"]
