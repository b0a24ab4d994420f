from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any
import os

import yaml

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
DEFAULT_FILTERS_FILE = CONFIG_DIR / "filters.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must be a mapping: {path}")
    return data


def _string_list(section: dict[str, Any], key: str, path: Path) -> list[str]:
    values = section.get(key) or []
    if not isinstance(values, list):
        raise ValueError(f"'{key}' must be a list in {path}")
    return [str(value) for value in values]


def _normalize_extension(ext: str) -> str:
    return ext.strip().lstrip(".").lower()


@dataclass(frozen=True)
class FilterPolicy:
    """Hidden/system and project-junk classification rules.

    Hidden entries disappear from listings and prune the index walk; junk files
    are only kept out of the search index.
    """

    hidden_prefixes: tuple[str, ...]
    hidden_names: frozenset[str]
    junk_names: frozenset[str]
    junk_extensions: frozenset[str]

    def is_hidden(self, name: str) -> bool:
        if name.startswith(self.hidden_prefixes):
            return True
        return name.lower() in self.hidden_names

    def is_project_junk(self, name: str) -> bool:
        if name in self.junk_names:
            return True
        ext = os.path.splitext(name)[1]
        if len(ext) > 1:
            return ext[1:].lower() in self.junk_extensions
        return False

    @classmethod
    def from_mapping(cls, data: dict[str, Any], source: Path) -> "FilterPolicy":
        hidden = data.get("hidden") or {}
        junk = data.get("junk") or {}
        if not isinstance(hidden, dict) or not isinstance(junk, dict):
            raise ValueError(f"'hidden' and 'junk' must be mappings in {source}")

        return cls(
            hidden_prefixes=tuple(
                prefix for prefix in _string_list(hidden, "prefixes", source) if prefix
            ),
            hidden_names=frozenset(
                name.lower() for name in _string_list(hidden, "names", source)
            ),
            junk_names=frozenset(_string_list(junk, "names", source)),
            junk_extensions=frozenset(
                _normalize_extension(ext)
                for ext in _string_list(junk, "extensions", source)
                if _normalize_extension(ext)
            ),
        )


def load_filter_policy(path: Path) -> FilterPolicy:
    """Load a filter policy from a YAML file."""
    return FilterPolicy.from_mapping(_load_yaml(path), path)


@lru_cache(maxsize=1)
def get_filter_policy() -> FilterPolicy:
    return load_filter_policy(DEFAULT_FILTERS_FILE)
