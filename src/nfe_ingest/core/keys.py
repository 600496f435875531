"""Invoice access keys: extraction, validation and fallbacks."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from .errors import InvalidFormatError, InvoiceKeyNotFoundError
from .models import KeySource
from .utils import only_digits, sanitize_url


LOGGER = logging.getLogger(__name__)

KEY_LENGTH = 44
SYNTHETIC_PREFIX = "SYN"
TIMESTAMP_PREFIX = "TS"

_KEY_RUN = re.compile(r"(?<!\d)\d{44}(?!\d)")
_SPACED_KEY = re.compile(r"(?<!\d)(?:\d{4}\s){10}\d{4}(?!\d)")
_KEY_SPAN = re.compile(r'class="chave">([0-9\s]+)<')


def is_valid_key(value: Optional[str]) -> bool:
    return bool(value) and len(value) == KEY_LENGTH and value.isdigit()


def extract_key_from_text(text: Optional[str]) -> Optional[str]:
    """Search ``text`` for an access key.

    The labelled ``<span class="chave">`` of portal pages wins, then a key
    printed in groups of four digits, then any bare 44 digit run.
    """

    if not text:
        return None

    match = _KEY_SPAN.search(text)
    if match:
        digits = only_digits(match.group(1))
        if is_valid_key(digits):
            return digits

    match = _SPACED_KEY.search(text)
    if match:
        return only_digits(match.group(0))

    match = _KEY_RUN.search(text)
    if match:
        return match.group(0)
    return None


def synthetic_key(cnpj: Optional[str], number: Optional[str], series: Optional[str]) -> Optional[str]:
    """Deterministic key for documents without an access key.

    The ``SYN`` prefix keeps it from ever looking like a genuine 44 digit key.
    """

    cnpj_digits = only_digits(cnpj)
    number = (number or "").strip()
    if not cnpj_digits or not number:
        return None
    return "-".join([SYNTHETIC_PREFIX, cnpj_digits, number, (series or "1").strip() or "1"])


def timestamp_key() -> str:
    return f"{TIMESTAMP_PREFIX}-{int(time.time() * 1000)}"


def choose_invoice_key(
    candidates: Iterable[Optional[str]],
    *,
    cnpj: Optional[str],
    number: Optional[str],
    series: Optional[str],
) -> Tuple[str, KeySource]:
    """Pick the first genuine key, else a synthetic one, else a timestamp key."""

    for candidate in candidates:
        digits = only_digits(candidate)
        if is_valid_key(digits):
            return digits, KeySource.ACCESS_KEY

    key = synthetic_key(cnpj, number, series)
    if key:
        return key, KeySource.SYNTHETIC

    key = timestamp_key()
    LOGGER.warning("No access key or merchant/number data; using %s. Duplicate detection will not work", key)
    return key, KeySource.TIMESTAMP


@dataclass(frozen=True)
class InvoiceReference:
    url: str
    key: Optional[str] = None


class InvoiceKeyResolver:
    """Validate URL/QR payloads and resolve their access key."""

    def __init__(self, fetcher, *, allowed_portals: Iterable[str] = (), url_template: str) -> None:
        self.fetcher = fetcher
        self.allowed_portals = {host.lower() for host in allowed_portals}
        self.url_template = url_template

    def validate_url(self, url: str) -> str:
        url = (url or "").strip()
        try:
            parts = urlsplit(url)
        except ValueError as exc:
            raise InvalidFormatError("Invalid invoice URL") from exc

        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise InvalidFormatError("Invalid invoice URL", details={"url": url})
        host = (parts.hostname or "").lower()
        if self.allowed_portals and host not in self.allowed_portals:
            raise InvalidFormatError(
                "URL does not belong to a supported government portal",
                details={"url": url, "host": host},
            )
        return url

    def from_url(self, url: str) -> InvoiceReference:
        url = self.validate_url(url)
        match = _KEY_RUN.search(url)
        return InvoiceReference(url=url, key=match.group(0) if match else None)

    def from_qr(self, payload: str) -> InvoiceReference:
        payload = (payload or "").strip()
        if re.match(r"https?://", payload, re.IGNORECASE):
            return self.from_url(payload)

        match = _KEY_RUN.search(payload) or _SPACED_KEY.search(payload)
        if not match:
            raise InvalidFormatError("QR code payload is neither a URL nor a 44 digit access key")
        key = only_digits(match.group(0))
        return InvoiceReference(url=self.url_template.format(key=key), key=key)

    def resolve_key(self, reference: InvoiceReference, body: Optional[str] = None) -> str:
        """Return the reference key, looking it up in the portal page when absent."""

        if reference.key:
            return reference.key

        if body is None:
            body = self.fetcher.fetch_text(reference.url)
        key = extract_key_from_text(body)
        if not key:
            raise InvoiceKeyNotFoundError(
                "Could not find the invoice access key",
                details={"url": sanitize_url(reference.url)},
            )
        return key


__all__ = [
    "KEY_LENGTH",
    "SYNTHETIC_PREFIX",
    "TIMESTAMP_PREFIX",
    "is_valid_key",
    "extract_key_from_text",
    "synthetic_key",
    "timestamp_key",
    "choose_invoice_key",
    "InvoiceReference",
    "InvoiceKeyResolver",
]
