"""Filename helpers shared by listings, the index and the HTTP layer."""


def file_extension(name: str) -> str:
    """Lowercase extension without the dot ("" when there is none)."""
    stem, dot, ext = name.rpartition(".")
    if not (stem and dot and ext):
        return ""
    return ext.lower()
