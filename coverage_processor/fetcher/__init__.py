"""Artifact fetcher: pulls and validates coverage bundles.

Public API:
    fetch_bundle(reference, dest) -> CoverageBundle
    load_bundle(root) -> CoverageBundle
"""

from coverage_processor.fetcher.bundle import load_bundle
from coverage_processor.fetcher.oras import fetch_bundle
from coverage_processor.fetcher.types import BundleManifest, CoverageBundle

__all__ = ["fetch_bundle", "load_bundle", "BundleManifest", "CoverageBundle"]
