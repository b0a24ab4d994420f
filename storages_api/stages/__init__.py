"""Filesystem stages: path-safe driver, one-level lister and recursive walker."""
