import json

import pytest
import requests

from nfe_ingest.config import AIConfig
from nfe_ingest.core.errors import AIParseError, FetchTimeoutError, NetworkError
from nfe_ingest.core.oracle import GeminiOracle, clean_json_text, parse_json_response


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def reply(text):
    return FakeResponse({"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_clean_json_text_strips_fences_prose_and_trailing_commas():
    raw = 'Aqui está:\n```json\n{"items": [1, 2,],}\n```'

    assert json.loads(clean_json_text(raw)) == {"items": [1, 2]}


def test_parse_json_response_raises_typed_error():
    with pytest.raises(AIParseError):
        parse_json_response("sem json aqui")


def test_extract_structured_invoice_posts_prompt_with_known_key():
    session = FakeSession(reply('```json\n{"invoice": {"number": "1"}}\n```'))
    oracle = GeminiOracle("secret", session=session, model="test-model")

    payload = oracle.extract_structured_invoice("TEXTO DA NOTA", "123")

    assert payload == {"invoice": {"number": "1"}}
    url, kwargs = session.posts[0]
    assert "test-model" in url
    assert kwargs["headers"]["x-goog-api-key"] == "secret"
    prompt = kwargs["json"]["contents"][0]["parts"][0]["text"]
    assert "TEXTO DA NOTA" in prompt
    assert "123" in prompt


def test_extract_structured_invoice_requires_an_object():
    oracle = GeminiOracle("secret", session=FakeSession(reply("[1, 2]")))

    with pytest.raises(AIParseError):
        oracle.extract_structured_invoice("texto")


def test_enrich_items_restores_input_order():
    text = json.dumps([
        {"index": 1, "description": "Arroz Branco"},
        {"index": 0, "description": "Leite Integral"},
    ])
    oracle = GeminiOracle("secret", session=FakeSession(reply(text)))

    enriched = oracle.enrich_items([{"description": "LEITE INT"}, {"description": "ARROZ BCO"}])

    assert [entry["description"] for entry in enriched] == ["Leite Integral", "Arroz Branco"]


def test_transport_failures_are_typed():
    timeout = GeminiOracle("secret", session=FakeSession(error=requests.Timeout("slow")))
    with pytest.raises(FetchTimeoutError):
        timeout.extract_structured_invoice("texto")

    refused = GeminiOracle("secret", session=FakeSession(error=requests.ConnectionError("refused")))
    with pytest.raises(NetworkError):
        refused.extract_structured_invoice("texto")

    unavailable = GeminiOracle("secret", session=FakeSession(FakeResponse({}, status_code=503)))
    with pytest.raises(NetworkError):
        unavailable.extract_structured_invoice("texto")


def test_unexpected_response_structure():
    oracle = GeminiOracle("secret", session=FakeSession(FakeResponse({"candidates": []})))

    with pytest.raises(AIParseError):
        oracle.extract_structured_invoice("texto")


def test_from_settings(monkeypatch):
    assert GeminiOracle.from_settings(AIConfig(enabled=False)) is None

    monkeypatch.delenv("TEST_GEMINI_KEY", raising=False)
    assert GeminiOracle.from_settings(AIConfig(enabled=True, api_key_env="TEST_GEMINI_KEY")) is None

    monkeypatch.setenv("TEST_GEMINI_KEY", "abc")
    oracle = GeminiOracle.from_settings(AIConfig(enabled=True, api_key_env="TEST_GEMINI_KEY", model="m"))
    assert oracle.api_key == "abc"
    assert oracle.model == "m"
