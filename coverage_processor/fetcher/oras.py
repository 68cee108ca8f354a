"""Registry pull of coverage bundles with the oras CLI.

The collector pushes the bundle as an OCI artifact:

    oras push quay.io/org/coverage-artifacts:<tag> \\
        ./covcounters.* ./covmeta.* ./metadata.json

Pulling writes each layer back under its title into the destination
directory. Transient registry failures are not retried here; the job
substrate re-triggers the whole run.
"""

import logging
from pathlib import Path

from coverage_processor.errors import ArtifactFetchError
from coverage_processor.fetcher.bundle import load_bundle
from coverage_processor.fetcher.types import CoverageBundle
from coverage_processor.sandbox.process import run_tool, tail

logger = logging.getLogger(__name__)


def pull_artifact(
    reference: str,
    dest: Path,
    oras_bin: str = "oras",
    timeout: int = 300,
) -> Path:
    """Pull an OCI artifact into dest and return dest."""
    if not reference or not reference.strip():
        raise ArtifactFetchError("Artifact reference must not be empty")

    dest.mkdir(parents=True, exist_ok=True)
    logger.info("Pulling %s into %s", reference, dest)

    result = run_tool(
        [oras_bin, "pull", reference.strip(), "--output", str(dest)],
        timeout=timeout,
    )
    if result.returncode != 0:
        raise ArtifactFetchError(
            f"oras pull {reference} failed (exit {result.returncode}): "
            f"{tail(result.stderr)}"
        )
    return dest


def fetch_bundle(
    reference: str,
    dest: Path,
    oras_bin: str = "oras",
    timeout: int = 300,
) -> CoverageBundle:
    """Pull reference into dest and validate it as a CoverageBundle.

    Raises:
        ArtifactFetchError: The pull failed.
        ArtifactIncompleteError: The pulled artifact is not a complete bundle.
    """
    pull_artifact(reference, dest, oras_bin=oras_bin, timeout=timeout)
    return load_bundle(dest, reference=reference)
