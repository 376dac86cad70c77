"""Runtime configuration for the ragstore document store."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ragstore.exceptions import ConfigurationError

DUPLICATE_DOCUMENT_POLICIES = ("skip", "overwrite", "fail")
DEFAULT_BATCH_SIZE = 10_000


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="ragstore_", env_file=".env", case_sensitive=False)

    # Connection
    hosts: tuple[str, ...] | str = ("https://127.0.0.1:9200",)
    username: str | None = "admin"
    password: str | None = "admin"
    verify_certs: bool = False
    timeout: int = 30

    # Indices
    index: str = "document"
    label_index: str = "label"
    search_fields: tuple[str, ...] = ("content",)
    content_field: str = "content"
    name_field: str = "name"
    embedding_field: str = "embedding"
    embedding_dim: int = 768
    custom_mapping: dict[str, Any] | None = None
    create_index: bool = False
    recreate_index: bool = False
    refresh_type: str = "wait_for"
    synonyms: tuple[str, ...] | None = None
    synonym_type: str = "synonym"

    # Vector search
    similarity: str = "dot_product"
    return_embedding: bool = False
    index_type: str = "flat"
    knn_engine: str = "nmslib"
    knn_parameters: dict[str, int] | None = None
    ivf_train_size: int | None = None

    # Writes and scans
    duplicate_documents: str = "overwrite"
    batch_size: int = DEFAULT_BATCH_SIZE
    scroll: str = "1d"

    log_level: str = "INFO"

    @field_validator("hosts", mode="after")
    @classmethod
    def _split_hosts(cls, value: tuple[str, ...] | str) -> tuple[str, ...]:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @property
    def hosts_list(self) -> list[str]:
        return list(self.hosts)

    @property
    def knn_parameters_dict(self) -> dict[str, int]:
        return dict(self.knn_parameters or {})


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()


@dataclass(frozen=True)
class WriteOptions:
    """Fully resolved options for one write call."""

    index: str
    batch_size: int
    duplicate_documents: str
    refresh: str
    headers: dict[str, str] | None = None

    @property
    def op_type(self) -> str:
        return "index" if self.duplicate_documents == "overwrite" else "create"


@dataclass(frozen=True)
class ScanOptions:
    """Fully resolved options for one scan call."""

    index: str
    batch_size: int
    return_embedding: bool
    scroll: str
    headers: dict[str, str] | None = None


def validate_duplicate_policy(policy: str) -> str:
    if policy not in DUPLICATE_DOCUMENT_POLICIES:
        options = ", ".join(DUPLICATE_DOCUMENT_POLICIES)
        raise ConfigurationError(f"duplicate_documents must be one of: {options} (got '{policy}')")
    return policy


def resolve_write_options(
    settings: Settings,
    *,
    index: str | None = None,
    batch_size: int | None = None,
    duplicate_documents: str | None = None,
    headers: dict[str, str] | None = None,
    default_index: str | None = None,
) -> WriteOptions:
    """Layer call arguments over settings once, at call entry."""

    resolved_batch = settings.batch_size if batch_size is None else batch_size
    if resolved_batch <= 0:
        raise ConfigurationError(f"batch_size must be a positive integer (got {resolved_batch})")
    return WriteOptions(
        index=index or default_index or settings.index,
        batch_size=resolved_batch,
        duplicate_documents=validate_duplicate_policy(duplicate_documents or settings.duplicate_documents),
        refresh=settings.refresh_type,
        headers=headers,
    )


def resolve_scan_options(
    settings: Settings,
    *,
    index: str | None = None,
    batch_size: int | None = None,
    return_embedding: bool | None = None,
    headers: dict[str, str] | None = None,
    default_index: str | None = None,
) -> ScanOptions:
    resolved_batch = settings.batch_size if batch_size is None else batch_size
    if resolved_batch <= 0:
        raise ConfigurationError(f"batch_size must be a positive integer (got {resolved_batch})")
    return ScanOptions(
        index=index or default_index or settings.index,
        batch_size=resolved_batch,
        return_embedding=settings.return_embedding if return_embedding is None else return_embedding,
        scroll=settings.scroll,
        headers=headers,
    )


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DUPLICATE_DOCUMENT_POLICIES",
    "ScanOptions",
    "Settings",
    "WriteOptions",
    "get_settings",
    "resolve_scan_options",
    "resolve_write_options",
    "validate_duplicate_policy",
]
