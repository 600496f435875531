from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from nfe_ingest.config import DEFAULT_PORTALS, Settings


ROOT = Path(__file__).resolve().parents[1]


def test_defaults_give_an_in_memory_setup():
    settings = Settings.parse_obj({})

    assert settings.paths.store_file is None
    assert settings.paths.log_folder is None
    assert settings.fetch.allowed_portals == DEFAULT_PORTALS
    assert settings.matching.similarity_threshold == 0.75
    assert settings.matching.ncm_similarity_threshold == 0.6
    assert settings.cache.ttl_seconds == 86400
    assert settings.ai.enabled is False
    assert settings.pdf.total_tolerance == 0.10


def test_load_reads_yaml_and_creates_folders(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "paths:\n"
        f"  store_file: {tmp_path / 'data' / 'store.json'}\n"
        f"  log_folder: {tmp_path / 'logs'}\n"
        "cache:\n"
        "  ttl_seconds: 60\n"
        "fetch:\n"
        "  allowed_portals: []\n",
        encoding="utf-8",
    )

    settings = Settings.load(config_file)

    assert settings.cache.ttl_seconds == 60
    assert settings.fetch.allowed_portals == []
    assert (tmp_path / "logs").is_dir()
    assert (tmp_path / "data").is_dir()


def test_empty_file_uses_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("", encoding="utf-8")

    assert Settings.load(config_file).matching.similarity_threshold == 0.75


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Settings.load(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "data",
    [
        {"fetch": {"timeout_seconds": 0}},
        {"fetch": {"portal_url_template": "https://example.com/consulta"}},
        {"matching": {"similarity_threshold": 1.5}},
        {"cache": {"max_entries": 0}},
        {"ai": {"batch_size": 0}},
        {"pdf": {"total_tolerance": -0.1}},
    ],
)
def test_invalid_values_are_rejected(data):
    with pytest.raises(ValidationError):
        Settings.parse_obj(data)


def test_repository_config_file_is_valid():
    settings = Settings.parse_obj(yaml.safe_load((ROOT / "config.yaml").read_text(encoding="utf-8")))

    assert settings.ai.model == "gemini-2.5-flash"
    assert "{key}" in settings.fetch.portal_url_template
