"""Metadata extractors for Tableau workbooks."""

from .references import extract_calculation_references
from .xml_extractor import XMLMetadataExtractor, parse_workbook

__all__ = ["XMLMetadataExtractor", "parse_workbook", "extract_calculation_references"]
