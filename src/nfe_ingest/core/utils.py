"""Utility helpers used across the project."""

from __future__ import annotations

import json
import logging
import math
import os
import re
import tempfile
import threading
import unicodedata
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urlsplit


LOGGER = logging.getLogger(__name__)


def ensure_directory(path: Path) -> None:
    """Create ``path`` when it does not exist."""

    path.mkdir(parents=True, exist_ok=True)


def strip_accents(text: str) -> str:
    """Remove diacritics from ``text``."""

    normalized = unicodedata.normalize("NFD", text)
    return "".join(char for char in normalized if unicodedata.category(char) != "Mn")


def only_digits(value: Optional[str]) -> str:
    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))


def normalize_barcode(value: Optional[str]) -> Optional[str]:
    """Keep the digits of an EAN/GTIN.  ``SEM GTIN`` and empty values become ``None``."""

    digits = only_digits(value)
    return digits or None


def safe_float(value, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def parse_brl_number(value: Any, default: float = 0.0) -> float:
    """Parse numbers written either as ``1.234,56`` or ``1234.56``.

    Currency symbols and whitespace are ignored.  Anything that cannot be read
    as a number yields ``default``.
    """

    if value is None:
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return safe_float(value, default)

    text = re.sub(r"[^\d,.\-]", "", str(value))
    if not text:
        return default
    if "," in text:
        # Brazilian notation: dots group thousands, comma separates decimals
        text = text.replace(".", "").replace(",", ".")
    elif text.count(".") > 1:
        text = text.replace(".", "")
    return safe_float(text, default)


def round_money(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100.0


def sanitize_url(url: Optional[str]) -> str:
    """Reduce ``url`` to origin + path so query strings never reach logs."""

    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid url>"
    if not parts.scheme or not parts.netloc:
        return "<invalid url>"
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Read ISO timestamps, ``YYYY-MM-DD`` dates and Brazilian ``DD/MM/YYYY`` dates."""

    if not value:
        return None
    value = str(value).strip()
    try:
        if value.endswith("Z"):
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        parsed = datetime.fromisoformat(value)
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d", "%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    LOGGER.debug("Unable to parse datetime value '%s'", value)
    return None


def utcnow() -> datetime:
    return datetime.utcnow()


def new_id() -> str:
    return uuid.uuid4().hex


def dump_json(path: Path, data) -> None:
    """Write ``data`` to a sibling temporary file, then swap it into ``path``."""

    ensure_directory(path.parent)
    handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    )
    try:
        with handle:
            json.dump(data, handle, ensure_ascii=False, indent=2, default=str)
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


def load_json(path: Path) -> Optional[dict]:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


class KeyedLocks:
    """Hand out one re-entrant lock per key (user id, product id...).

    A key's lock lives only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, Tuple[threading.RLock, int]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


__all__ = [
    "ensure_directory",
    "strip_accents",
    "only_digits",
    "normalize_barcode",
    "safe_float",
    "parse_brl_number",
    "round_money",
    "sanitize_url",
    "parse_datetime",
    "utcnow",
    "new_id",
    "dump_json",
    "load_json",
    "KeyedLocks",
]
