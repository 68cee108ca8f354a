"""Coverage bundle validation.

A bundle is accepted only when the manifest and both kinds of binary
coverage file are present, non-empty and from the same collection run.
Go names counter files after the metadata file they belong to:

    covmeta.<metahash>
    covcounters.<metahash>.<pid>.<nanotime>

so every counters file must have a covmeta file with the same hash.
"""

import json
import logging
import re
import shutil
from pathlib import Path

from pydantic import ValidationError

from coverage_processor.errors import ArtifactIncompleteError
from coverage_processor.fetcher.types import (
    COVERAGE_DIRNAME,
    MANIFEST_FILENAME,
    BundleManifest,
    CoverageBundle,
)

logger = logging.getLogger(__name__)

_META_RE = re.compile(r"^covmeta\.([0-9a-f]+)$")
_COUNTERS_RE = re.compile(r"^covcounters\.([0-9a-f]+)\.\d+\.\d+$")


def load_manifest(path: Path) -> BundleManifest:
    """Parse and validate metadata.json."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ArtifactIncompleteError(f"{path.name} is not valid JSON: {exc}") from exc

    try:
        return BundleManifest.model_validate(raw)
    except ValidationError as exc:
        raise ArtifactIncompleteError(
            f"{path.name} is missing required fields: {exc.error_count()} error(s)\n{exc}"
        ) from exc


def _require_non_empty(paths: list[Path]) -> None:
    empty = sorted(p.name for p in paths if p.stat().st_size == 0)
    if empty:
        raise ArtifactIncompleteError(f"Bundle contains empty files: {', '.join(empty)}")


def _gather(files: list[Path], coverage_dir: Path) -> tuple[Path, ...]:
    """Move files into coverage_dir, returning their new paths sorted by name."""
    coverage_dir.mkdir(parents=True, exist_ok=True)
    moved: list[Path] = []
    for path in files:
        target = coverage_dir / path.name
        if path != target:
            if target.exists():
                raise ArtifactIncompleteError(
                    f"Bundle contains {path.name} more than once"
                )
            shutil.move(str(path), str(target))
        moved.append(target)
    return tuple(sorted(moved, key=lambda p: p.name))


def load_bundle(root: Path, reference: str = "") -> CoverageBundle:
    """Validate a pulled bundle directory and return its CoverageBundle.

    Raises:
        ArtifactIncompleteError: A required file is missing, empty,
            unparsable, or the coverage files are from different runs.
    """
    files = [p for p in root.rglob("*") if p.is_file()]

    manifests = [p for p in files if p.name == MANIFEST_FILENAME]
    meta_files = [p for p in files if p.name.startswith("covmeta.")]
    counter_files = [p for p in files if p.name.startswith("covcounters.")]

    missing: list[str] = []
    if not manifests:
        missing.append(MANIFEST_FILENAME)
    if not meta_files:
        missing.append("covmeta.*")
    if not counter_files:
        missing.append("covcounters.*")
    if missing:
        raise ArtifactIncompleteError(
            f"Bundle {reference or root} is missing: {', '.join(missing)}"
        )
    if len(manifests) > 1:
        raise ArtifactIncompleteError(
            f"Bundle contains {len(manifests)} {MANIFEST_FILENAME} files"
        )

    _require_non_empty(manifests + meta_files + counter_files)

    meta_hashes: set[str] = set()
    for path in meta_files:
        match = _META_RE.match(path.name)
        if not match:
            raise ArtifactIncompleteError(f"Unrecognized coverage metadata file: {path.name}")
        meta_hashes.add(match.group(1))

    counter_hashes: set[str] = set()
    for path in counter_files:
        match = _COUNTERS_RE.match(path.name)
        if not match:
            raise ArtifactIncompleteError(f"Unrecognized coverage counters file: {path.name}")
        counter_hashes.add(match.group(1))

    orphaned = sorted(counter_hashes - meta_hashes)
    if orphaned:
        raise ArtifactIncompleteError(
            "Coverage counters do not match any metadata file in the bundle "
            f"(hashes: {', '.join(orphaned)})"
        )

    unused = sorted(meta_hashes - counter_hashes)
    if unused:
        logger.warning(
            "Bundle has metadata without counters (no code executed?): %s",
            ", ".join(unused),
        )

    manifest = load_manifest(manifests[0])

    coverage_dir = root / COVERAGE_DIRNAME
    bundle = CoverageBundle(
        reference=reference,
        root=root,
        coverage_dir=coverage_dir,
        meta_files=_gather(meta_files, coverage_dir),
        counter_files=_gather(counter_files, coverage_dir),
        manifest_path=manifests[0],
        manifest=manifest,
    )

    logger.info(
        "Bundle ready: image=%s test=%s meta=%d counters=%d",
        manifest.container_image,
        manifest.test_name or "-",
        len(bundle.meta_files),
        len(bundle.counter_files),
    )
    return bundle
