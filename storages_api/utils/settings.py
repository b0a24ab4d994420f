"""Pydantic settings for the storages service."""

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_storage_mounts(mounts: str) -> dict[str, str]:
    """Parse ``name1:/path1,name2:/path2`` into a name -> path mapping.

    Pairs without a name or a path are ignored. Only the first ``:`` splits,
    so Windows style paths (``d:C:\\data``) survive.
    """
    parsed: dict[str, str] = {}
    for pair in mounts.split(","):
        pair = pair.strip()
        if not pair or ":" not in pair:
            continue
        name, path = pair.split(":", 1)
        name, path = name.strip(), path.strip()
        if name and path:
            parsed[name] = path
    return parsed


class ServiceSettings(BaseSettings):
    """Settings for mounts, the index database and engine tunables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    storage_mounts: str = Field(
        "default:/tmp",
        description="Comma separated name:path pairs of exposed storages.",
    )

    app_port: int = Field(3000, description="Port the HTTP host should bind.")

    base_path: Path = Field(
        Path("."),
        description="Base directory for relative data paths.",
    )

    index_path: Path = Field(
        Path("storage_index.db"),
        description="SQLite file holding the search index.",
    )

    cache_ttl_seconds: float = Field(60.0, gt=0)
    reindex_interval_seconds: float = Field(30 * 60.0, gt=0)
    lister_workers: int = Field(16, ge=1)

    filters_file: Path | None = Field(
        None,
        description="YAML file overriding the packaged hidden/junk denylists.",
    )

    log_file_prefix: str = "storages"
    log_dir: Path = Path("logs")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @model_validator(mode="after")
    def _apply_base_path(self) -> "ServiceSettings":
        self.index_path = self._resolve_under_base(self.index_path)
        self.log_dir = self._resolve_under_base(self.log_dir)
        if self.filters_file is not None:
            self.filters_file = self._resolve_under_base(self.filters_file)
        return self

    def _resolve_under_base(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return self.base_path / path

    @property
    def mounts(self) -> dict[str, str]:
        return parse_storage_mounts(self.storage_mounts)
