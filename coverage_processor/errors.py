"""Error taxonomy for a coverage processing run.

Every error here is run-fatal. Components raise them at their boundary,
translating subprocess and HTTP failures; the pipeline stamps the failing
step name onto the error before it propagates.
"""

from typing import Optional


class CoverageProcessorError(Exception):
    """Base class for all run-terminating failures.

    step is filled in by the pipeline when the error crosses a step
    boundary, so a single terminal failure carries where it happened.
    """

    def __init__(self, message: str, step: Optional[str] = None):
        self.step = step
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "error_type": type(self).__name__,
            "error": str(self),
        }


# ---------------------------------------------------------------------------
# Artifact fetch
# ---------------------------------------------------------------------------


class ArtifactFetchError(CoverageProcessorError):
    """The registry pull itself failed (network, auth, unknown reference)."""


class ArtifactIncompleteError(CoverageProcessorError):
    """The pulled bundle is missing files or its files are inconsistent."""


# ---------------------------------------------------------------------------
# Attestation resolution
# ---------------------------------------------------------------------------


class AttestationUntrustedError(CoverageProcessorError):
    """Provenance could not be fetched, verified, or decoded."""


class ProvenanceIncompleteError(CoverageProcessorError):
    """No build task carries both the repository URL and commit annotations."""


class ProvenanceAmbiguousError(CoverageProcessorError):
    """Several build tasks name different repository/commit pairs.

    candidates holds every distinct pair seen, in task order.
    """

    def __init__(
        self,
        message: str,
        candidates: tuple = (),
        step: Optional[str] = None,
    ):
        self.candidates = candidates
        super().__init__(message, step=step)


# ---------------------------------------------------------------------------
# Source materialization
# ---------------------------------------------------------------------------


class RepositoryUnreachableError(CoverageProcessorError):
    """The repository could not be cloned (network, auth, rejected URL)."""


class CommitNotFoundError(CoverageProcessorError):
    """The resolved commit does not exist in the repository history."""


# ---------------------------------------------------------------------------
# Coverage conversion
# ---------------------------------------------------------------------------


class CoverageConversionError(CoverageProcessorError):
    """Binary coverage data could not be converted to a text profile."""


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class AuthenticationError(CoverageProcessorError):
    """The quality backend rejected the credential."""


class BackendUnavailableError(CoverageProcessorError):
    """The quality backend could not be reached or failed the upload."""


# ---------------------------------------------------------------------------
# Generic step failures
# ---------------------------------------------------------------------------


class StepTimeoutError(CoverageProcessorError):
    """An external tool exceeded its wall-clock budget."""


class StepFailedError(CoverageProcessorError):
    """An unexpected exception escaped a step; the cause is chained."""
