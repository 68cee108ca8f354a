"""Attestation resolver: verified provenance to the source repository and commit.

Public API:
    fetch_verified_provenance(image, policy) -> list[ProvenanceRecord]
    resolve_source(records, keys) -> ResolvedSource
"""

from coverage_processor.attestation.resolver import resolve_source
from coverage_processor.attestation.types import (
    AnnotationKeys,
    ProvenanceRecord,
    ResolvedSource,
)
from coverage_processor.attestation.verify import (
    VerificationPolicy,
    fetch_verified_provenance,
)

__all__ = [
    "AnnotationKeys",
    "ProvenanceRecord",
    "ResolvedSource",
    "VerificationPolicy",
    "fetch_verified_provenance",
    "resolve_source",
]
