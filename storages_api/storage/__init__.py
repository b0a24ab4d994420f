"""Storage module for the persistent search index.

The index database (storage_index.db by default) holds one row per file or
directory of every storage, rebuilt per storage from a fresh recursive walk.

The hidden/junk denylists are managed separately via YAML in
storages_api/config/ (see storages_api/utils/config.py).
"""

from storages_api.storage.manager import IndexStore

__all__ = ["IndexStore"]
