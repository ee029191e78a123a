"""Extractor package for unpacking manifest archives."""

from .extractor import ArchiveExtractor

__all__ = ["ArchiveExtractor"]
