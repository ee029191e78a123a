"""Fetcher package for retrieving manifest bundles."""

from .fetcher import ArchiveFetcher

__all__ = ["ArchiveFetcher"]
