"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from vaultsearch.embedding.encoder import (
    DEFAULT_API_BASE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DIMENSION,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
)
from vaultsearch.ingestion.markdown_loader import MAX_PASSAGE_CHARS

DEFAULT_DB_NAME = "semantic-index.db"


def _get_default_db_path(vault_path: Path | None) -> Path:
    """Keep the store inside the vault's hidden settings folder when possible."""
    if vault_path is not None:
        return Path(vault_path) / ".obsidian" / DEFAULT_DB_NAME
    return Path("data") / DEFAULT_DB_NAME


@dataclass(slots=True)
class AppConfig:
    vault_path: Path | None = None
    db_path: Path | None = None
    provider: str = "openai"
    model_name: str = DEFAULT_MODEL
    dimension: int = DEFAULT_DIMENSION
    api_key: str | None = None
    api_base: str = DEFAULT_API_BASE
    request_timeout: float = 60.0
    max_passage_chars: int = MAX_PASSAGE_CHARS
    embed_batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = 1.0
    reindex_batch_size: int = 10
    debounce_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.vault_path is not None:
            self.vault_path = Path(self.vault_path).expanduser()
        if self.db_path is None:
            self.db_path = _get_default_db_path(self.vault_path)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "AppConfig":
        """Build a config from environment variables, with explicit overrides winning."""
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get("VAULT_PATH"):
            values["vault_path"] = Path(env["VAULT_PATH"])
        if env.get("VAULTSEARCH_DB"):
            values["db_path"] = Path(env["VAULTSEARCH_DB"])
        if env.get("VAULTSEARCH_PROVIDER"):
            values["provider"] = env["VAULTSEARCH_PROVIDER"]
        if env.get("VAULTSEARCH_MODEL"):
            values["model_name"] = env["VAULTSEARCH_MODEL"]
        if env.get("VAULTSEARCH_DIMENSION"):
            values["dimension"] = int(env["VAULTSEARCH_DIMENSION"])
        if env.get("OPENAI_API_KEY"):
            values["api_key"] = env["OPENAI_API_KEY"]
        if env.get("OPENAI_BASE_URL"):
            values["api_base"] = env["OPENAI_BASE_URL"].rstrip("/")
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def has_credentials(self) -> bool:
        """Whether the configured provider can be used at all."""
        if self.provider == "local":
            return True
        return bool(self.api_key)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path(self.vault_path)
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
