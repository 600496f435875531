"""HTTP access to government invoice portals."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from ..config import FetchConfig
from .errors import FetchTimeoutError, NetworkError
from .utils import sanitize_url


LOGGER = logging.getLogger(__name__)


class HttpFetcher:
    """Single-attempt text fetcher with a bounded timeout and body size."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        user_agent: str = "Mozilla/5.0 (compatible; InvoiceParser/1.0)",
        max_body_bytes: int = 5 * 1024 * 1024,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_body_bytes = max_body_bytes
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, config: FetchConfig) -> "HttpFetcher":
        return cls(timeout=config.timeout_seconds, user_agent=config.user_agent, max_body_bytes=config.max_body_bytes)

    def fetch_text(self, url: str, timeout: Optional[float] = None) -> str:
        safe_url = sanitize_url(url)
        LOGGER.info("Fetching %s", safe_url)
        try:
            with self.session.get(
                url,
                timeout=timeout or self.timeout,
                headers={"User-Agent": self.user_agent},
                stream=True,
            ) as response:
                if not response.ok:
                    raise NetworkError(
                        f"Failed to fetch invoice: HTTP {response.status_code}",
                        details={"url": url, "status": response.status_code},
                    )
                content = self._read_body(response, url)
                encoding = response.encoding if "charset" in response.headers.get("Content-Type", "") else "utf-8"
        except requests.Timeout as exc:
            raise FetchTimeoutError(
                "Request timeout - government portal did not respond", details={"url": url}
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(
                "Network error while fetching invoice", details={"url": url, "error": type(exc).__name__}
            ) from exc

        text = content.decode(encoding or "utf-8", errors="replace")
        if not text.strip():
            raise NetworkError("Empty response from government portal", details={"url": url})
        LOGGER.debug("Fetched %s bytes from %s", len(content), safe_url)
        return text

    def _read_body(self, response: requests.Response, url: str) -> bytes:
        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            size += len(chunk)
            if size > self.max_body_bytes:
                raise NetworkError(
                    "Response body exceeds the maximum allowed size",
                    details={"url": url, "max_bytes": self.max_body_bytes},
                )
            chunks.append(chunk)
        return b"".join(chunks)


__all__ = ["HttpFetcher"]
