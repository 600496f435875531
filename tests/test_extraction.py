from pathlib import Path

import pytest

from nfe_ingest.core.cache import MemoryCache
from nfe_ingest.core.classifier import CategoryClassifier
from nfe_ingest.core.errors import InvalidFormatError, InvoiceParseError, NetworkError
from nfe_ingest.core.extraction import InvoiceExtractionService
from nfe_ingest.core.keys import InvoiceKeyResolver
from nfe_ingest.core.models import Category, ExtractionMethod


EXAMPLES = Path(__file__).resolve().parents[1] / "example_docs"
HTML_KEY = "42240398765432000110650010000012341000012345"
XML_KEY = "35240112345678000190650010000012341000012345"
TEMPLATE = "https://sat.sef.sc.gov.br/nfce/consulta?p={key}"
HTML_URL = TEMPLATE.format(key=HTML_KEY)


class FakeFetcher:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def fetch_text(self, url, timeout=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NetworkError("Failed to fetch invoice: HTTP 404", details={"url": url, "status": 404})
        return page


class FakeOracle:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def extract_structured_invoice(self, text, known_key=None):
        self.calls.append(known_key)
        return self.payload

    def enrich_items(self, raw_items):
        return list(raw_items)


def load(name):
    return (EXAMPLES / name).read_text(encoding="utf-8")


def make_service(pages, oracle=None, cache=None):
    fetcher = FakeFetcher(pages)
    resolver = InvoiceKeyResolver(fetcher, allowed_portals=["sat.sef.sc.gov.br"], url_template=TEMPLATE)
    service = InvoiceExtractionService(
        fetcher=fetcher,
        key_resolver=resolver,
        classifier=CategoryClassifier(),
        oracle=oracle,
        cache=cache if cache is not None else MemoryCache(),
    )
    return service, fetcher


def test_parse_from_url_reads_portal_page_and_classifies():
    service, _ = make_service({HTML_URL: load("nfce-consulta-supermercado.html")})

    invoice = service.parse_from_url(HTML_URL)

    assert invoice.invoice_key == HTML_KEY
    assert invoice.metadata.method == ExtractionMethod.HTML
    assert invoice.metadata.from_cache is False
    assert invoice.category == Category.SUPERMARKET
    assert len(invoice.items) == 2


def test_second_parse_is_served_from_cache():
    service, fetcher = make_service({HTML_URL: load("nfce-consulta-supermercado.html")})
    service.parse_from_url(HTML_URL)

    cached = service.parse_from_url(HTML_URL)

    assert cached.metadata.from_cache is True
    assert cached.invoice_key == HTML_KEY
    assert fetcher.calls == [HTML_URL]


def test_force_refresh_bypasses_cache():
    service, fetcher = make_service({HTML_URL: load("nfce-consulta-supermercado.html")})
    service.parse_from_url(HTML_URL)

    refreshed = service.parse_from_url(HTML_URL, force_refresh=True)

    assert refreshed.metadata.from_cache is False
    assert len(fetcher.calls) == 2


def test_url_without_key_resolves_it_from_the_page():
    url = "https://sat.sef.sc.gov.br/nfce/consulta?id=abc"
    cache = MemoryCache()
    service, fetcher = make_service({url: load("nfce-consulta-supermercado.html")}, cache=cache)

    first = service.parse_from_url(url)
    second = service.parse_from_url(url)

    assert first.invoice_key == HTML_KEY
    assert second.metadata.from_cache is True
    assert len(fetcher.calls) == 2


def test_parse_from_qr_with_bare_key():
    service, fetcher = make_service({HTML_URL: load("nfce-consulta-supermercado.html")})

    invoice = service.parse_from_qr(HTML_KEY)

    assert invoice.invoice_key == HTML_KEY
    assert fetcher.calls == [HTML_URL]


def test_xml_link_on_portal_page_is_followed():
    url = TEMPLATE.format(key=XML_KEY)
    page = '<html><body><a href="/nfce/download/nota.xml">Baixar XML</a></body></html>'
    xml_url = "https://sat.sef.sc.gov.br/nfce/download/nota.xml"
    service, fetcher = make_service({url: page, xml_url: load(f"{XML_KEY}-nfe.xml")})

    invoice = service.parse_from_url(url)

    assert fetcher.calls == [url, xml_url]
    assert invoice.metadata.method == ExtractionMethod.XML
    assert invoice.category == Category.PHARMACY


def test_broken_xml_link_keeps_the_html_page():
    url = HTML_URL
    page = load("nfce-consulta-supermercado.html").replace(
        "</body>", '<a href="/nfce/download/nota.xml">XML</a></body>'
    )
    service, _ = make_service({url: page})

    invoice = service.parse_from_url(url)

    assert invoice.metadata.method == ExtractionMethod.HTML


def test_unparseable_page_without_oracle_lists_every_attempt():
    service, _ = make_service({HTML_URL: "<html><body>Sistema indisponivel</body></html>"})

    with pytest.raises(InvoiceParseError) as excinfo:
        service.parse_from_url(HTML_URL)

    attempts = excinfo.value.details["attempts"]
    assert [attempt.split(":")[0] for attempt in attempts] == ["xml", "html", "ai"]


def test_oracle_is_the_last_resort():
    payload = {
        "invoice": {"number": "1234", "series": "1", "issueDate": "2024-03-15T10:32:11"},
        "merchant": {"cnpj": "98765432000110", "name": "PADARIA CENTRAL", "state": "SC"},
        "items": [{"description": "PAO FRANCES", "quantity": 10, "unitPrice": 0.8, "totalPrice": 8.0}],
        "totals": {"total": 8.0},
    }
    oracle = FakeOracle(payload)
    service, _ = make_service({HTML_URL: "<html><body>layout novo</body></html>"}, oracle=oracle)

    invoice = service.parse_from_url(HTML_URL)

    assert oracle.calls == [HTML_KEY]
    assert invoice.invoice_key == HTML_KEY
    assert invoice.metadata.method == ExtractionMethod.AI
    assert invoice.category == Category.RESTAURANT


def test_direct_document_parsing():
    service, fetcher = make_service({})

    xml_invoice = service.parse_xml(load(f"{XML_KEY}-nfe.xml"))
    html_invoice = service.parse_html(load("nfce-consulta-supermercado.html"))

    assert xml_invoice.category == Category.PHARMACY
    assert html_invoice.category == Category.SUPERMARKET
    assert fetcher.calls == []


@pytest.mark.parametrize("method", ["parse_xml", "parse_html"])
def test_empty_documents_are_rejected(method):
    service, _ = make_service({})

    with pytest.raises(InvalidFormatError):
        getattr(service, method)("  ")


def test_empty_pdf_is_rejected():
    service, _ = make_service({})

    with pytest.raises(InvalidFormatError):
        service.parse_pdf(b"")
