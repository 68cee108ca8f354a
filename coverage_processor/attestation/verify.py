"""Provenance fetch and signature verification with cosign.

`cosign verify-attestation` both downloads the attestations attached to
an image and checks their signatures; it only prints envelopes that
verified. Any failure, including "no matching attestations", means the
image's provenance cannot be trusted and the run stops. There is no
unverified fallback.
"""

import logging
from dataclasses import dataclass

from coverage_processor.attestation.envelope import parse_envelopes
from coverage_processor.attestation.types import ProvenanceRecord
from coverage_processor.core.config import Settings
from coverage_processor.errors import AttestationUntrustedError
from coverage_processor.sandbox.process import run_tool, tail

logger = logging.getLogger(__name__)

COSIGN_PREDICATE_TYPE = "slsaprovenance"


@dataclass(frozen=True)
class VerificationPolicy:
    """How attestation signatures are verified.

    Either public_key, or both identity_regexp and issuer_regexp for
    keyless (Fulcio) signatures.
    """

    public_key: str = ""
    identity_regexp: str = ""
    issuer_regexp: str = ""
    ignore_tlog: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerificationPolicy":
        return cls(
            public_key=settings.cosign_public_key,
            identity_regexp=settings.cosign_certificate_identity_regexp,
            issuer_regexp=settings.cosign_certificate_oidc_issuer_regexp,
            ignore_tlog=settings.cosign_insecure_ignore_tlog,
        )

    def cosign_args(self) -> list[str]:
        if self.public_key:
            args = ["--key", self.public_key]
        elif self.identity_regexp and self.issuer_regexp:
            args = [
                "--certificate-identity-regexp", self.identity_regexp,
                "--certificate-oidc-issuer-regexp", self.issuer_regexp,
            ]
        else:
            raise AttestationUntrustedError(
                "No attestation verification policy configured: set "
                "COSIGN_PUBLIC_KEY or both COSIGN_CERTIFICATE_IDENTITY_REGEXP "
                "and COSIGN_CERTIFICATE_OIDC_ISSUER_REGEXP"
            )
        if self.ignore_tlog:
            args.append("--insecure-ignore-tlog=true")
        return args


def fetch_verified_provenance(
    image: str,
    policy: VerificationPolicy,
    cosign_bin: str = "cosign",
    timeout: int = 120,
) -> list[ProvenanceRecord]:
    """Return the verified SLSA provenance records attached to image.

    Raises:
        AttestationUntrustedError: Verification failed, no provenance is
            attached, or a verified payload could not be decoded.
    """
    cmd = [
        cosign_bin,
        "verify-attestation",
        "--type", COSIGN_PREDICATE_TYPE,
        *policy.cosign_args(),
        image,
    ]
    logger.info("Verifying provenance for %s", image)

    result = run_tool(cmd, timeout=timeout)
    if result.returncode != 0:
        raise AttestationUntrustedError(
            f"Provenance verification failed for {image} "
            f"(exit {result.returncode}): {tail(result.stderr)}"
        )

    records = parse_envelopes(result.stdout)
    if not records:
        raise AttestationUntrustedError(
            f"No verified SLSA provenance attached to {image}"
        )

    logger.info(
        "Verified %d provenance record(s) for %s (%d task(s))",
        len(records),
        image,
        sum(len(r.tasks) for r in records),
    )
    return records
