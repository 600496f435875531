"""Coercion and validation of invoice payloads returned by the AI oracle."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .errors import InvoiceValidationError
from .keys import choose_invoice_key
from .models import (
    Category,
    ExtractionMetadata,
    ExtractionMethod,
    InvoiceTotals,
    MerchantInfo,
    ParsedInvoice,
    ParsedInvoiceItem,
)
from .utils import normalize_barcode, only_digits, parse_brl_number, parse_datetime, round_money, utcnow


LOGGER = logging.getLogger(__name__)

CNPJ_LENGTH = 14
MERCHANT_NAME_MIN_LENGTH = 3
TOTAL_TOLERANCE = 0.01
_STATE_PATTERN = re.compile(r"^[A-Z]{2}$")


def _pick(data: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none"}:
        return None
    return text


def coerce_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return a cleaned copy of ``payload`` with canonical keys and types.

    Missing numbers become 0, tax IDs keep at most 14 digits and Brazilian
    dates are converted to ISO format.
    """

    invoice = payload.get("invoice") if isinstance(payload.get("invoice"), dict) else {}
    merchant = payload.get("merchant") if isinstance(payload.get("merchant"), dict) else {}
    totals = payload.get("totals") if isinstance(payload.get("totals"), dict) else {}
    raw_items = payload.get("items") if isinstance(payload.get("items"), list) else []

    issue_date = parse_datetime(_text(_pick(invoice, "issueDate", "issue_date", "date")))
    state = (_text(merchant.get("state")) or "").upper() or None

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        quantity = parse_brl_number(_pick(raw, "quantity", "qty"))
        unit_price = parse_brl_number(_pick(raw, "unitPrice", "unit_price"))
        total_price = parse_brl_number(_pick(raw, "totalPrice", "total_price"))
        if not total_price and quantity and unit_price:
            total_price = round_money(quantity * unit_price)
        items.append(
            {
                "description": _text(raw.get("description")) or "",
                "product_code": normalize_barcode(_text(_pick(raw, "productCode", "product_code"))),
                "ncm_code": only_digits(_text(_pick(raw, "ncmCode", "ncm_code"))) or None,
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": total_price,
                "discount_amount": parse_brl_number(_pick(raw, "discountAmount", "discount_amount")),
            }
        )

    return {
        "invoice": {
            "key": only_digits(_text(_pick(invoice, "key", "accessKey", "invoiceKey"))) or None,
            "number": _text(_pick(invoice, "number", "invoiceNumber")),
            "series": _text(invoice.get("series")) or "1",
            "issue_date": issue_date.isoformat() if issue_date else None,
        },
        "merchant": {
            "cnpj": only_digits(_text(merchant.get("cnpj")))[:CNPJ_LENGTH],
            "name": _text(merchant.get("name")) or "",
            "trade_name": _text(_pick(merchant, "tradeName", "trade_name")),
            "address": _text(merchant.get("address")),
            "city": _text(merchant.get("city")),
            "state": state,
        },
        "items": items,
        "totals": {
            "subtotal": parse_brl_number(totals.get("subtotal")),
            "discount": parse_brl_number(totals.get("discount")),
            "tax": parse_brl_number(totals.get("tax")),
            "total": parse_brl_number(totals.get("total")),
        },
        "category": _text(payload.get("category")),
        "has_sections": {
            "invoice": bool(invoice),
            "merchant": bool(merchant),
            "totals": bool(totals),
        },
    }


def validate_payload(data: Dict[str, Any]) -> List[str]:
    """Return the list of validation failures of a coerced payload."""

    errors: List[str] = []
    sections = data["has_sections"]
    for section in ("invoice", "merchant", "totals"):
        if not sections[section]:
            errors.append(f"Missing {section} section")

    merchant = data["merchant"]
    if not merchant["cnpj"]:
        errors.append("Merchant CNPJ is required")
    elif len(merchant["cnpj"]) != CNPJ_LENGTH:
        errors.append("Merchant CNPJ is invalid (must be 14 digits)")
    if not merchant["name"]:
        errors.append("Merchant name is required")
    elif len(merchant["name"]) < MERCHANT_NAME_MIN_LENGTH:
        errors.append(f"Merchant name must be at least {MERCHANT_NAME_MIN_LENGTH} characters")
    if merchant["state"] and not _STATE_PATTERN.match(merchant["state"]):
        errors.append("Merchant state must be 2 uppercase letters (e.g., SP, RJ)")

    invoice = data["invoice"]
    if not invoice["number"]:
        errors.append("Invoice number is required")
    if not invoice["issue_date"]:
        errors.append("Invoice issue date is required")

    items = data["items"]
    if not items:
        errors.append("Invoice must have at least 1 item(s)")
    for index, item in enumerate(items, start=1):
        if not item["description"]:
            errors.append(f"Item {index}: description is required")
        if item["quantity"] <= 0:
            errors.append(f"Item {index}: quantity must be greater than 0")
        for field_name in ("unit_price", "total_price", "discount_amount"):
            if item[field_name] < 0:
                errors.append(f"Item {index}: {field_name.replace('_', ' ')} must be at least 0")

    totals = data["totals"]
    for field_name, value in totals.items():
        if value < 0:
            errors.append(f"{field_name.capitalize()} must be at least 0")
    if items and not verify_totals(items, totals):
        errors.append("Total amount does not match sum of item prices")
    return errors


def verify_totals(items: List[Dict[str, Any]], totals: Dict[str, float]) -> bool:
    item_sum = sum(item["total_price"] for item in items)
    gross = abs(item_sum - totals["total"]) <= TOTAL_TOLERANCE
    net = abs(item_sum - totals["discount"] - totals["total"]) <= TOTAL_TOLERANCE
    return gross or net


def payload_to_invoice(
    payload: Dict[str, Any],
    *,
    known_key: Optional[str] = None,
    method: ExtractionMethod = ExtractionMethod.AI,
    raw_source: Optional[str] = None,
) -> ParsedInvoice:
    """Coerce, validate and map an oracle payload to a :class:`ParsedInvoice`."""

    data = coerce_payload(payload)
    errors = validate_payload(data)
    if errors:
        LOGGER.warning("AI payload failed validation: %s", "; ".join(errors))
        raise InvoiceValidationError(errors)

    merchant = data["merchant"]
    invoice = data["invoice"]
    key, key_source = choose_invoice_key(
        [known_key, invoice["key"]],
        cnpj=merchant["cnpj"],
        number=invoice["number"],
        series=invoice["series"],
    )
    totals = data["totals"]
    if not totals["subtotal"]:
        totals["subtotal"] = round_money(totals["total"] + totals["discount"])

    return ParsedInvoice(
        invoice_key=key,
        number=invoice["number"],
        series=invoice["series"],
        issue_date=parse_datetime(invoice["issue_date"]),
        merchant=MerchantInfo(
            cnpj=merchant["cnpj"],
            name=merchant["name"],
            trade_name=merchant["trade_name"],
            address=merchant["address"],
            city=merchant["city"],
            state=merchant["state"],
        ),
        items=[ParsedInvoiceItem(**item) for item in data["items"]],
        totals=InvoiceTotals(**totals),
        metadata=ExtractionMetadata(method=method, parsed_at=utcnow(), key_source=key_source),
        category=Category.parse(data["category"]),
        raw_source=raw_source,
    )


__all__ = ["coerce_payload", "validate_payload", "verify_totals", "payload_to_invoice"]
