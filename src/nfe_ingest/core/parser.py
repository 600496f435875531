"""Extractors for NF-e/NFC-e XML documents and government portal HTML pages."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Union

import lxml.html
from lxml import etree

from .errors import InvoiceParseError
from .keys import choose_invoice_key, extract_key_from_text
from .models import (
    ExtractionMetadata,
    ExtractionMethod,
    InvoiceTotals,
    MerchantInfo,
    ParsedInvoice,
    ParsedInvoiceItem,
)
from .utils import normalize_barcode, only_digits, parse_brl_number, parse_datetime, round_money, safe_float, utcnow


LOGGER = logging.getLogger(__name__)

NFE_NAMESPACE = "http://www.portalfiscal.inf.br/nfe"
_HTML_SNIFF = re.compile(r"<!doctype\s+html|<html[\s>]", re.IGNORECASE)


def looks_like_html(text: str) -> bool:
    return bool(_HTML_SNIFF.search(text[:2048]))


def looks_like_nfe_xml(text: str) -> bool:
    head = text.lstrip()[:4096]
    return head.startswith("<?xml") or "<nfeProc" in head or "<NFe" in head or "<infNFe" in head


def _to_bytes(document: Union[str, bytes]) -> bytes:
    return document.encode("utf-8") if isinstance(document, str) else document


def _to_text(document: Union[str, bytes]) -> str:
    return document.decode("utf-8", errors="replace") if isinstance(document, bytes) else document


def _recompute_totals(items: List[ParsedInvoiceItem], tax: float = 0.0) -> InvoiceTotals:
    subtotal = round_money(sum(item.total_price for item in items))
    discount = round_money(sum(item.discount_amount for item in items))
    return InvoiceTotals(subtotal=subtotal, discount=discount, tax=tax, total=round_money(subtotal - discount))


class XMLExtractor:
    """Read tax-authority XML (``nfeProc``/``NFe``) into a :class:`ParsedInvoice`.

    Documents that turn out to be HTML are handed to the HTML extractor.
    """

    def __init__(self, html_extractor: Optional["HTMLExtractor"] = None) -> None:
        self._parser = etree.XMLParser(encoding="utf-8", recover=True)
        self.html_extractor = html_extractor or HTMLExtractor()

    def extract(self, document: Union[str, bytes], known_key: Optional[str] = None) -> ParsedInvoice:
        text = _to_text(document)
        if looks_like_html(text):
            LOGGER.info("Document is HTML, delegating to the HTML extractor")
            return self.html_extractor.extract(text, known_key)

        try:
            root = etree.fromstring(_to_bytes(document), parser=self._parser)
        except etree.XMLSyntaxError as exc:
            raise InvoiceParseError("Invalid XML format", details={"error": str(exc)}) from exc
        if root is None:
            raise InvoiceParseError("Invalid XML format")

        inf_nfe = self._find_inf_nfe(root)
        if inf_nfe is None:
            raise InvoiceParseError("Could not find infNFe node in document")
        namespaces = self._build_namespaces(inf_nfe)

        def text_at(node, path: str) -> Optional[str]:
            return self._text(node, path, namespaces)

        number = text_at(inf_nfe, "ide/nNF")
        series = text_at(inf_nfe, "ide/serie") or "1"
        issue_date = parse_datetime(text_at(inf_nfe, "ide/dhEmi") or text_at(inf_nfe, "ide/dEmi"))
        if not number or issue_date is None:
            raise InvoiceParseError("Invoice identification (number/issue date) not found in XML")

        merchant = self._merchant(inf_nfe, namespaces)
        items = self._items(inf_nfe, namespaces)
        totals = self._totals(inf_nfe, namespaces, items)

        invoice_key, key_source = choose_invoice_key(
            [
                (inf_nfe.get("Id") or "").replace("NFe", ""),
                self._find_text(root, "chNFe"),
                known_key,
            ],
            cnpj=merchant.cnpj,
            number=number,
            series=series,
        )

        return ParsedInvoice(
            invoice_key=invoice_key,
            number=number,
            series=series,
            issue_date=issue_date,
            merchant=merchant,
            items=items,
            totals=totals,
            metadata=ExtractionMetadata(method=ExtractionMethod.XML, parsed_at=utcnow(), key_source=key_source),
            raw_source=text,
        )

    def _merchant(self, inf_nfe, namespaces: dict) -> MerchantInfo:
        emit = inf_nfe.find(self._path("emit", namespaces), namespaces=namespaces)
        if emit is None:
            raise InvoiceParseError("Merchant information not found in XML")

        street = self._text(emit, "enderEmit/xLgr", namespaces)
        number = self._text(emit, "enderEmit/nro", namespaces)
        address = ", ".join(part for part in (street, number) if part) or None
        return MerchantInfo(
            cnpj=only_digits(self._text(emit, "CNPJ", namespaces) or self._text(emit, "CPF", namespaces)),
            name=self._text(emit, "xNome", namespaces) or "",
            trade_name=self._text(emit, "xFant", namespaces),
            address=address,
            city=self._text(emit, "enderEmit/xMun", namespaces),
            state=self._text(emit, "enderEmit/UF", namespaces),
        )

    def _items(self, inf_nfe, namespaces: dict) -> List[ParsedInvoiceItem]:
        items: List[ParsedInvoiceItem] = []
        for det in inf_nfe.findall(self._path("det", namespaces), namespaces=namespaces):
            prod = det.find(self._path("prod", namespaces), namespaces=namespaces)
            if prod is None:
                LOGGER.warning("Skipping det without prod node (nItem=%s)", det.get("nItem"))
                continue

            def prod_text(tag: str) -> Optional[str]:
                return self._text(prod, tag, namespaces)

            quantity = safe_float(prod_text("qCom"), default=0.0)
            unit_price = safe_float(prod_text("vUnCom"), default=0.0)
            items.append(
                ParsedInvoiceItem(
                    description=prod_text("xProd") or "",
                    product_code=normalize_barcode(prod_text("cEAN") or prod_text("cEANTrib")),
                    ncm_code=prod_text("NCM"),
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=safe_float(prod_text("vProd"), default=round_money(quantity * unit_price)),
                    discount_amount=safe_float(prod_text("vDesc"), default=0.0),
                )
            )
        return items

    def _totals(self, inf_nfe, namespaces: dict, items: List[ParsedInvoiceItem]) -> InvoiceTotals:
        def total_of(tag: str) -> float:
            return safe_float(self._text(inf_nfe, f"total/ICMSTot/{tag}", namespaces), default=0.0)

        totals = InvoiceTotals(
            subtotal=total_of("vProd"),
            discount=total_of("vDesc"),
            tax=total_of("vTotTrib"),
            total=total_of("vNF"),
        )
        if totals.total == 0 and items:
            LOGGER.info("Declared total is zero; recomputing totals from %s items", len(items))
            totals = _recompute_totals(items, tax=totals.tax)
        return totals

    @staticmethod
    def _find_inf_nfe(root):
        for element in root.iter():
            if isinstance(element.tag, str) and etree.QName(element).localname == "infNFe":
                return element
        return None

    @staticmethod
    def _find_text(root, local_name: str) -> Optional[str]:
        for element in root.iter():
            if isinstance(element.tag, str) and etree.QName(element).localname == local_name:
                return (element.text or "").strip() or None
        return None

    @staticmethod
    def _build_namespaces(inf_nfe) -> dict:
        namespace = etree.QName(inf_nfe).namespace
        return {"nfe": namespace} if namespace else {}

    @staticmethod
    def _path(path: str, namespaces: dict) -> str:
        parts = [part for part in path.split("/") if part]
        prefix = "nfe:" if namespaces else ""
        return "/".join(f"{prefix}{part}" for part in parts)

    @classmethod
    def _text(cls, node, path: str, namespaces: dict) -> Optional[str]:
        if node is None:
            return None
        element = node.find(cls._path(path, namespaces), namespaces=namespaces or None)
        if element is None or element.text is None:
            return None
        return element.text.strip() or None


def _class_xpath(class_name: str) -> str:
    return f".//*[contains(concat(' ', normalize-space(@class), ' '), ' {class_name} ')]"


class HTMLExtractor:
    """Scrape the NFC-e consultation page published by the state portals."""

    ITEM_ROWS = "//table[@id='tabResult']//tr[starts-with(@id, 'Item')]"

    _CNPJ = re.compile(r"CNPJ:\s*([\d./-]+)")
    _NUMBER = re.compile(r"N[úu]mero:\s*(\d+)")
    _SERIES = re.compile(r"S[ée]rie:\s*(\d+)")
    _ISSUE_DATE = re.compile(r"Emiss[ãa]o:\s*(\d{2}/\d{2}/\d{4})(?:\s+(\d{2}:\d{2}(?::\d{2})?))?")
    _QUANTITY = re.compile(r"Qtde\.?:\s*([\d.,]+)")
    _UNIT_PRICE = re.compile(r"Vl\.?\s*Unit\.?:\D*?([\d.,]+)")
    _TOTAL_MARKUP = re.compile(r"Valor a pagar R\$:\s*</label>\s*<span[^>]*>([0-9.,]+)<")
    _DISCOUNT_MARKUP = re.compile(r"Descontos R\$:\s*</label>\s*<span[^>]*>([0-9.,]+)<")
    _TOTAL_TEXT = re.compile(r"Valor a pagar R\$:\s*([0-9.,]+)")
    _DISCOUNT_TEXT = re.compile(r"Descontos R\$:\s*([0-9.,]+)")

    @classmethod
    def has_items(cls, document: str) -> bool:
        return "tabResult" in document

    def extract(self, document: Union[str, bytes], known_key: Optional[str] = None) -> ParsedInvoice:
        html = _to_text(document)
        try:
            tree = lxml.html.fromstring(html)
        except (etree.ParserError, ValueError) as exc:
            raise InvoiceParseError("Invalid HTML document", details={"error": str(exc)}) from exc

        page_text = " ".join(tree.text_content().split())
        items = self._items(tree)
        if not items:
            raise InvoiceParseError("No invoice items found in HTML page")

        merchant = self._merchant(tree, page_text)
        number = self._search(self._NUMBER, page_text) or ""
        series = self._search(self._SERIES, page_text) or "1"
        issue_date = self._issue_date(page_text)
        if issue_date is None:
            raise InvoiceParseError("Issue date not found in HTML page")

        total = self._amount(self._TOTAL_MARKUP, html) or self._amount(self._TOTAL_TEXT, page_text)
        discount = self._amount(self._DISCOUNT_MARKUP, html) or self._amount(self._DISCOUNT_TEXT, page_text)
        if total:
            totals = InvoiceTotals(subtotal=round_money(total + discount), discount=discount, total=total)
        else:
            LOGGER.info("Total not found in HTML page; using the sum of %s items", len(items))
            totals = _recompute_totals(items)
            if discount:
                totals.discount = discount
                totals.total = round_money(totals.subtotal - discount)

        invoice_key, key_source = choose_invoice_key(
            [extract_key_from_text(html), known_key],
            cnpj=merchant.cnpj,
            number=number,
            series=series,
        )

        return ParsedInvoice(
            invoice_key=invoice_key,
            number=number,
            series=series,
            issue_date=issue_date,
            merchant=merchant,
            items=items,
            totals=totals,
            metadata=ExtractionMetadata(method=ExtractionMethod.HTML, parsed_at=utcnow(), key_source=key_source),
            raw_source=html,
        )

    def _items(self, tree) -> List[ParsedInvoiceItem]:
        items: List[ParsedInvoiceItem] = []
        for row in tree.xpath(self.ITEM_ROWS):
            description = self._class_text(row, "txtTit")
            total_text = self._class_text(row, "valor")
            if not description or total_text is None:
                continue

            row_text = " ".join(row.text_content().split())
            total_price = parse_brl_number(total_text)
            quantity = parse_brl_number(
                self._search(self._QUANTITY, self._class_text(row, "Rqtd") or row_text), default=1.0
            ) or 1.0
            unit_text = self._search(self._UNIT_PRICE, self._class_text(row, "RvlUnit") or row_text)
            unit_price = parse_brl_number(unit_text) if unit_text else round_money(total_price / quantity)

            items.append(
                ParsedInvoiceItem(
                    description=description,
                    product_code=None,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=total_price,
                )
            )
        return items

    def _merchant(self, tree, page_text: str) -> MerchantInfo:
        name_nodes = tree.xpath(_class_xpath("txtTopo"))
        name = " ".join(name_nodes[0].text_content().split()) if name_nodes else ""

        address = city = state = None
        for node in tree.xpath(_class_xpath("text")):
            content = " ".join(node.text_content().split())
            if not content or "CNPJ" in content:
                continue
            parts = [part.strip() for part in content.split(",") if part.strip()]
            address = content
            if len(parts) >= 2 and re.fullmatch(r"[A-Z]{2}", parts[-1]):
                city, state = parts[-2], parts[-1]
            break

        return MerchantInfo(
            cnpj=only_digits(self._search(self._CNPJ, page_text)),
            name=name,
            address=address,
            city=city,
            state=state,
        )

    def _issue_date(self, page_text: str):
        match = self._ISSUE_DATE.search(page_text)
        if not match:
            return None
        value = match.group(1) if not match.group(2) else f"{match.group(1)} {match.group(2)}"
        return parse_datetime(value)

    @staticmethod
    def _class_text(row, class_name: str) -> Optional[str]:
        nodes = row.xpath(_class_xpath(class_name))
        if not nodes:
            return None
        return " ".join(nodes[0].text_content().split())

    @staticmethod
    def _search(pattern: "re.Pattern[str]", text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        match = pattern.search(text)
        return match.group(1) if match else None

    @classmethod
    def _amount(cls, pattern: "re.Pattern[str]", text: str) -> float:
        return parse_brl_number(cls._search(pattern, text))


__all__ = ["XMLExtractor", "HTMLExtractor", "looks_like_html", "looks_like_nfe_xml", "NFE_NAMESPACE"]
