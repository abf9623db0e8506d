"""Utility modules for the lineage pipeline."""

from .naming import normalize_name, clean_internal_id, display_name, slugify

__all__ = ["normalize_name", "clean_internal_id", "display_name", "slugify"]
