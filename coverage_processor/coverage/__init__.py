"""Coverage remapper: binary Go coverage to a source-relative profile.

Public API:
    build_report(coverage_dir, tree_root, work_dir) -> CoverageReport
    remap_profile(profile, resolver) -> CoverageReport
"""

from coverage_processor.coverage.paths import PathResolver
from coverage_processor.coverage.profile import parse_profile
from coverage_processor.coverage.remap import build_report, remap_profile
from coverage_processor.coverage.types import CoverageEntry, CoverageReport

__all__ = [
    "CoverageEntry",
    "CoverageReport",
    "PathResolver",
    "build_report",
    "parse_profile",
    "remap_profile",
]
