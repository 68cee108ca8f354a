"""Coverage remapping onto the materialized source tree.

Every profile block is rekeyed by its tree-relative path. Blocks whose
path cannot be found in the tree are kept under the recorded path and
flagged unresolved: build-only files (generated code, vendored paths
stripped from the source) legitimately never exist in the repository,
and the quality backend ignores files it does not know.

Blocks landing on the same (path, span) are merged the way the Go cover
tool merges profiles: max for `set` mode, sum otherwise.
"""

import logging
from pathlib import Path
from typing import Sequence

from coverage_processor.coverage.covdata import convert_to_textfmt
from coverage_processor.coverage.paths import PathResolver
from coverage_processor.coverage.profile import parse_profile
from coverage_processor.coverage.types import (
    MODE_SET,
    CoverageEntry,
    CoverageReport,
    Profile,
)

logger = logging.getLogger(__name__)

RAW_PROFILE_FILENAME = "profile.raw.out"


def remap_profile(profile: Profile, resolver: PathResolver) -> CoverageReport:
    """Rekey profile blocks against the tree and return an ordered report."""
    merged: dict[tuple[str, int, int, int, int], CoverageEntry] = {}

    for block in profile.blocks:
        resolved_path = resolver.resolve(block.path)
        entry = CoverageEntry(
            path=resolved_path or block.path,
            start_line=block.start_line,
            start_col=block.start_col,
            end_line=block.end_line,
            end_col=block.end_col,
            num_statements=block.num_statements,
            count=block.count,
            resolved=resolved_path is not None,
        )

        key = entry.sort_key()
        existing = merged.get(key)
        if existing is not None:
            if profile.mode == MODE_SET:
                count = max(existing.count, entry.count)
            else:
                count = existing.count + entry.count
            entry = CoverageEntry(
                path=existing.path,
                start_line=existing.start_line,
                start_col=existing.start_col,
                end_line=existing.end_line,
                end_col=existing.end_col,
                num_statements=existing.num_statements,
                count=count,
                resolved=existing.resolved,
            )
        merged[key] = entry

    report = CoverageReport(
        mode=profile.mode,
        entries=tuple(sorted(merged.values(), key=CoverageEntry.sort_key)),
    )

    unresolved = report.unresolved_paths
    if unresolved:
        logger.warning(
            "%d of %d coverage path(s) not found in source tree, kept as recorded: %s",
            len(unresolved),
            len(report.paths),
            ", ".join(unresolved[:10]) + (" ..." if len(unresolved) > 10 else ""),
        )
    return report


def build_report(
    coverage_dir: Path,
    tree_root: Path,
    work_dir: Path,
    build_roots: Sequence[str] = (),
    go_bin: str = "go",
    timeout: int = 120,
) -> CoverageReport:
    """Convert binary coverage in coverage_dir and remap it onto tree_root."""
    text = convert_to_textfmt(
        coverage_dir,
        work_dir / RAW_PROFILE_FILENAME,
        go_bin=go_bin,
        timeout=timeout,
    )
    profile = parse_profile(text)
    resolver = PathResolver(tree_root, build_roots=build_roots)
    logger.info(
        "Remapping %d block(s) (module=%s, build_roots=%s)",
        len(profile.blocks),
        resolver.module_path or "-",
        ",".join(resolver.build_roots) or "-",
    )
    return remap_profile(profile, resolver)
