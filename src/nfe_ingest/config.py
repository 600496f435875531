"""Application configuration models and helpers.

This module centralises the configuration logic of the project.  The
configuration is persisted in a YAML file (``config.yaml`` by default) and is
validated with ``pydantic`` models.  Every section has sensible defaults so an
empty file (or ``Settings.parse_obj({})``) yields a working in-memory setup,
which is also what the tests rely on.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, validator


DEFAULT_PORTALS = [
    "sat.sef.sc.gov.br",
    "www.sefaz.rs.gov.br",
    "www.nfe.fazenda.gov.br",
    "nfe.fazenda.sp.gov.br",
    "www.fazenda.pr.gov.br",
    "www.sefaz.ba.gov.br",
    "www.sefaz.pe.gov.br",
    "www.sefaz.ce.gov.br",
]


class PathsConfig(BaseModel):
    """Filesystem locations used by the pipeline."""

    store_file: Optional[Path] = Field(
        default=None,
        description="JSON file backing the document store.  When unset the store lives in memory.",
    )
    log_folder: Optional[Path] = Field(default=None, description="Folder for execution logs")

    @validator("store_file", "log_folder", pre=True)
    def _expand_path(cls, value: Optional[str]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()

    def ensure_directories(self) -> None:
        """Create the directories required for the pipeline to operate."""

        if self.log_folder:
            self.log_folder.mkdir(parents=True, exist_ok=True)
        if self.store_file:
            self.store_file.parent.mkdir(parents=True, exist_ok=True)


class FetchConfig(BaseModel):
    """Remote fetch of government portal pages."""

    timeout_seconds: float = Field(15.0, description="Timeout applied to every portal request")
    user_agent: str = Field("Mozilla/5.0 (compatible; InvoiceParser/1.0)")
    max_body_bytes: int = Field(5 * 1024 * 1024, description="Responses larger than this are rejected")
    allowed_portals: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PORTALS),
        description="Hosts accepted for invoice URLs.  An empty list accepts any host.",
    )
    portal_url_template: str = Field(
        "https://sat.sef.sc.gov.br/nfce/consulta?p={key}",
        description="Template used to build a portal URL from a bare access key",
    )

    @validator("timeout_seconds")
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value

    @validator("portal_url_template")
    def _validate_template(cls, value: str) -> str:
        if "{key}" not in value:
            raise ValueError("portal_url_template must contain a '{key}' placeholder")
        return value


class MatchingConfig(BaseModel):
    """Thresholds used by the product matcher."""

    similarity_threshold: float = Field(0.75, description="Minimum name similarity for a fuzzy match")
    ncm_similarity_threshold: float = Field(0.6, description="Minimum name similarity when NCM codes agree")

    @validator("similarity_threshold", "ncm_similarity_threshold")
    def _validate_ratio(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("thresholds must be in the (0, 1] interval")
        return value


class CacheConfig(BaseModel):
    ttl_seconds: int = Field(24 * 60 * 60, description="Lifetime of cached parse results")
    max_entries: int = Field(1000, description="Maximum number of cached entries")

    @validator("ttl_seconds", "max_entries")
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("cache settings must be greater than zero")
        return value


class AIConfig(BaseModel):
    """Optional AI extraction oracle."""

    enabled: bool = Field(False, description="Enable the AI fallback and item enrichment")
    model: str = Field("gemini-2.5-flash")
    api_key_env: str = Field("GEMINI_API_KEY", description="Environment variable holding the API key")
    endpoint: str = Field(
        "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent",
        description="Endpoint template; ``{model}`` is replaced by the model name",
    )
    timeout_seconds: float = Field(60.0)
    batch_size: int = Field(30, description="Number of raw items sent per enrichment request")
    max_workers: int = Field(2, description="Concurrent enrichment requests")

    @validator("batch_size", "max_workers")
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("batch_size and max_workers must be greater than zero")
        return value


class PDFConfig(BaseModel):
    total_tolerance: float = Field(
        0.10,
        description="Relative deviation allowed between the printed total and the sum of items",
    )

    @validator("total_tolerance")
    def _validate_tolerance(cls, value: float) -> float:
        if value < 0:
            raise ValueError("total_tolerance cannot be negative")
        return value


class Settings(BaseModel):
    """Top level configuration object."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    pdf: PDFConfig = Field(default_factory=PDFConfig)

    class Config:
        arbitrary_types_allowed = True

    def ensure_folders(self) -> None:
        """Create all folders referenced by the configuration."""

        self.paths.ensure_directories()

    @classmethod
    def load(cls, path: Path | str = Path("config.yaml")) -> "Settings":
        """Load the configuration from a YAML file."""

        config_path = Path(path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as stream:
            data = yaml.safe_load(stream) or {}

        settings = cls.parse_obj(data)
        settings.ensure_folders()
        return settings


__all__ = [
    "Settings",
    "PathsConfig",
    "FetchConfig",
    "MatchingConfig",
    "CacheConfig",
    "AIConfig",
    "PDFConfig",
    "DEFAULT_PORTALS",
]
