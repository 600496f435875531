"""Dataclasses describing the core domain objects used by the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    PHARMACY = "pharmacy"
    GROCERIES = "groceries"
    SUPERMARKET = "supermarket"
    RESTAURANT = "restaurant"
    FUEL = "fuel"
    RETAIL = "retail"
    SERVICES = "services"
    OTHER = "other"
    HOME = "home"
    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    ENTERTAINMENT = "entertainment"
    TRANSPORT = "transport"
    HEALTH = "health"
    EDUCATION = "education"
    PETS = "pets"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Category":
        """Return the matching category, falling back to :attr:`OTHER`."""

        if isinstance(value, Category):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class ExtractionMethod(str, Enum):
    AI = "ai"
    XML = "xml"
    HTML = "html"
    PDF = "pdf"


class KeySource(str, Enum):
    ACCESS_KEY = "access_key"
    SYNTHETIC = "synthetic"
    TIMESTAMP = "timestamp"


@dataclass
class MerchantInfo:
    cnpj: str
    name: str
    trade_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass
class ParsedInvoiceItem:
    """Line item as read from a source document."""

    description: str
    quantity: float
    unit_price: float
    total_price: float
    discount_amount: float = 0.0
    product_code: Optional[str] = None
    ncm_code: Optional[str] = None


@dataclass
class InvoiceTotals:
    subtotal: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    total: float = 0.0


@dataclass
class ExtractionMetadata:
    method: ExtractionMethod
    parsed_at: datetime
    from_cache: bool = False
    key_source: KeySource = KeySource.ACCESS_KEY

    @property
    def deterministic_key(self) -> bool:
        return self.key_source is not KeySource.TIMESTAMP


@dataclass
class ParsedInvoice:
    """Canonical in-memory invoice produced by any extractor."""

    invoice_key: str
    number: str
    series: str
    issue_date: datetime
    merchant: MerchantInfo
    items: List[ParsedInvoiceItem]
    totals: InvoiceTotals
    metadata: ExtractionMetadata
    category: Category = Category.OTHER
    raw_source: Optional[str] = None

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        data["issue_date"] = self.issue_date.isoformat()
        data["category"] = self.category.value
        data["metadata"] = {
            "method": self.metadata.method.value,
            "parsed_at": self.metadata.parsed_at.isoformat(),
            "from_cache": self.metadata.from_cache,
            "key_source": self.metadata.key_source.value,
        }
        if not include_raw:
            data.pop("raw_source", None)
        return data


@dataclass(frozen=True)
class NormalizedProduct:
    normalized_name: str
    original_name: str
    product_code: Optional[str] = None
    ncm_code: Optional[str] = None
    brand: Optional[str] = None
    is_promotion: bool = False


@dataclass(frozen=True)
class MatchResult:
    is_match: bool
    confidence: float


@dataclass
class Product:
    id: str
    user_id: str
    name: str
    category: Category = Category.OTHER
    product_code: Optional[str] = None
    ncm_code: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    is_promotion: bool = False
    total_purchases: int = 0
    average_price: float = 0.0
    last_purchase_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Invoice:
    id: str
    user_id: str
    invoice_key: str
    invoice_number: str
    series: str
    issue_date: datetime
    merchant_cnpj: str
    merchant_name: str
    total_amount: float
    category: Category = Category.OTHER
    merchant_address: Optional[str] = None
    discount_amount: float = 0.0
    tax_amount: float = 0.0
    custom_category: Optional[str] = None
    transaction_id: Optional[str] = None
    account_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class InvoiceItem:
    id: str
    invoice_id: str
    user_id: str
    product_id: str
    description: str
    quantity: float
    unit_price: float
    total_price: float
    line_number: int
    discount_amount: float = 0.0
    product_code: Optional[str] = None
    ncm_code: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class PriceHistoryEntry:
    id: str
    user_id: str
    product_id: str
    invoice_id: str
    merchant_cnpj: str
    merchant_name: str
    purchase_date: datetime
    unit_price: float
    quantity: float
    created_at: Optional[datetime] = None


@dataclass
class InvoiceWithItems:
    invoice: Invoice
    items: List[InvoiceItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice": record_to_json(asdict(self.invoice)),
            "items": [record_to_json(asdict(item)) for item in self.items],
        }


def record_to_json(record: Dict[str, Any]) -> Dict[str, Any]:
    """Render datetimes and enums so ``record`` can be serialised as JSON."""

    rendered: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, datetime):
            rendered[key] = value.isoformat()
        elif isinstance(value, Enum):
            rendered[key] = value.value
        else:
            rendered[key] = value
    return rendered


__all__ = [
    "Category",
    "ExtractionMethod",
    "KeySource",
    "MerchantInfo",
    "ParsedInvoiceItem",
    "InvoiceTotals",
    "ExtractionMetadata",
    "ParsedInvoice",
    "NormalizedProduct",
    "MatchResult",
    "Product",
    "Invoice",
    "InvoiceItem",
    "PriceHistoryEntry",
    "InvoiceWithItems",
    "record_to_json",
]
