"""AI extraction oracle used as a fallback and for item enrichment.

Responses are untrusted: callers re-validate everything through
:mod:`nfe_ingest.core.validator` before building domain objects.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from ..config import AIConfig
from .errors import AIParseError, FetchTimeoutError, NetworkError


LOGGER = logging.getLogger(__name__)


class ExtractionOracle(Protocol):
    def extract_structured_invoice(self, text: str, known_key: Optional[str] = None) -> Dict[str, Any]:
        ...

    def enrich_items(self, raw_items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...


INVOICE_PROMPT = """Você é um especialista em extrair dados de notas fiscais brasileiras (NF-e/NFC-e).

Extraia os dados do documento abaixo e responda APENAS com um objeto JSON, sem texto adicional:
{{
  "invoice": {{"key": "chave de 44 dígitos ou null", "number": "número", "series": "série", "issueDate": "YYYY-MM-DDTHH:mm:ss"}},
  "merchant": {{"cnpj": "somente dígitos", "name": "razão social", "tradeName": "nome fantasia ou null",
               "address": "endereço", "city": "cidade", "state": "UF"}},
  "items": [{{"description": "descrição", "productCode": "EAN ou null", "ncmCode": "NCM ou null",
             "quantity": 1, "unitPrice": 0.0, "totalPrice": 0.0, "discountAmount": 0.0}}],
  "totals": {{"subtotal": 0.0, "discount": 0.0, "tax": 0.0, "total": 0.0}},
  "category": "pharmacy|groceries|supermarket|restaurant|fuel|retail|services|other"
}}

Regras:
- Valores numéricos com ponto decimal (5.50, não 5,50).
- Não invente dados. Use null quando a informação não existir.
- Chave de acesso conhecida: {known_key}

Documento:
{text}
"""

ENRICH_PROMPT = """Normalize os itens de nota fiscal abaixo.

Para cada item devolva, na MESMA ordem e com o MESMO "index":
{{"index": 0, "description": "descrição legível com abreviações expandidas", "productCode": "EAN ou null", "ncmCode": "NCM ou null"}}

Exemplos de abreviações: INT -> Integral, DESN -> Desnatado, SEMI -> Semidesnatado, CPR/COMP -> Comprimidos,
CAPS -> Cápsulas, T1 -> Tipo 1, PARB -> Parboilizado, REFRIG -> Refrigerante.
- NÃO invente marca nem altere quantidades ou preços.
- Responda APENAS com um array JSON.

Itens:
{items}
"""


def clean_json_text(text: str) -> str:
    """Strip markdown fences, surrounding prose and trailing commas."""

    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
    cleaned = re.sub(r"\s*```$", "", cleaned)

    starts = [index for index in (cleaned.find("{"), cleaned.find("[")) if index >= 0]
    if starts:
        start = min(starts)
        closing = "}" if cleaned[start] == "{" else "]"
        end = cleaned.rfind(closing)
        if end > start:
            cleaned = cleaned[start : end + 1]

    return re.sub(r",\s*([}\]])", r"\1", cleaned)


def parse_json_response(text: str) -> Any:
    try:
        return json.loads(clean_json_text(text))
    except ValueError as exc:
        raise AIParseError("AI response is not valid JSON", details={"error": str(exc)}) from exc


class GeminiOracle:
    """Oracle backed by the Generative Language ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        endpoint: str = "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, config: AIConfig) -> Optional["GeminiOracle"]:
        if not config.enabled:
            return None
        api_key = os.environ.get(config.api_key_env)
        if not api_key:
            LOGGER.warning("AI oracle enabled but %s is not set; AI extraction disabled", config.api_key_env)
            return None
        return cls(api_key, model=config.model, endpoint=config.endpoint, timeout=config.timeout_seconds)

    def extract_structured_invoice(self, text: str, known_key: Optional[str] = None) -> Dict[str, Any]:
        prompt = INVOICE_PROMPT.format(known_key=known_key or "desconhecida", text=text)
        payload = parse_json_response(self._generate(prompt))
        if not isinstance(payload, dict):
            raise AIParseError("AI response is not a JSON object")
        return payload

    def enrich_items(self, raw_items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        indexed = [dict(item, index=index) for index, item in enumerate(raw_items)]
        prompt = ENRICH_PROMPT.format(items=json.dumps(indexed, ensure_ascii=False))
        payload = parse_json_response(self._generate(prompt))
        if not isinstance(payload, list):
            raise AIParseError("AI enrichment response is not a JSON array")
        return sorted(
            (entry for entry in payload if isinstance(entry, dict)),
            key=lambda entry: entry.get("index", 0) if isinstance(entry.get("index"), int) else 0,
        )

    def _generate(self, prompt: str) -> str:
        url = self.endpoint.format(model=self.model)
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0},
        }
        try:
            response = self.session.post(
                url,
                json=body,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError("AI service did not respond in time", details={"url": url}) from exc
        except requests.RequestException as exc:
            raise NetworkError("AI service request failed", details={"url": url, "error": type(exc).__name__}) from exc

        if not response.ok:
            raise NetworkError(
                f"AI service returned HTTP {response.status_code}",
                details={"url": url, "status": response.status_code},
            )

        try:
            data = response.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AIParseError("Unexpected AI service response structure") from exc


__all__ = ["ExtractionOracle", "GeminiOracle", "clean_json_text", "parse_json_response"]
