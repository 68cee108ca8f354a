"""DSSE envelope decoding for SLSA provenance.

cosign prints each verified attestation as a DSSE envelope:

    {"payloadType": "application/vnd.in-toto+json",
     "payload": "<base64 in-toto statement>",
     "signatures": [...]}

The statement's predicate carries buildConfig.tasks[] (SLSA v0.2 as
written by Tekton Chains). A payload that cannot be decoded is not
trusted; a decoded statement that simply lacks tasks is returned with an
empty task list and left for the resolver to reject as incomplete.
"""

import base64
import binascii
import json
import logging
from typing import Any

from coverage_processor.attestation.types import BuildTask, ProvenanceRecord
from coverage_processor.errors import AttestationUntrustedError

logger = logging.getLogger(__name__)

SLSA_PROVENANCE_MARKER = "slsa.dev/provenance"


def decode_statement(envelope: dict) -> dict:
    """Decode the base64 payload of a DSSE envelope into a statement."""
    payload = envelope.get("payload")
    if not isinstance(payload, str) or not payload:
        raise AttestationUntrustedError("Attestation envelope has no payload")

    try:
        raw = base64.b64decode(payload, validate=False)
        statement = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise AttestationUntrustedError(
            f"Attestation payload is not base64-encoded JSON: {exc}"
        ) from exc

    if not isinstance(statement, dict):
        raise AttestationUntrustedError("Attestation payload is not a JSON object")
    return statement


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _parse_task(index: int, raw: Any) -> BuildTask:
    task = _as_dict(raw)
    annotations = _as_dict(
        _as_dict(_as_dict(task.get("invocation")).get("environment")).get("annotations")
    )
    return BuildTask(
        name=str(task.get("name") or f"task[{index}]"),
        annotations={
            str(k): v for k, v in annotations.items() if isinstance(v, str)
        },
    )


def parse_statement(statement: dict) -> ProvenanceRecord:
    """Reduce an in-toto statement to a ProvenanceRecord."""
    predicate = _as_dict(statement.get("predicate"))
    tasks_raw = _as_dict(predicate.get("buildConfig")).get("tasks")
    if not isinstance(tasks_raw, list):
        tasks_raw = []

    return ProvenanceRecord(
        predicate_type=str(statement.get("predicateType", "")),
        tasks=tuple(_parse_task(i, t) for i, t in enumerate(tasks_raw)),
    )


def is_provenance(statement: dict) -> bool:
    return SLSA_PROVENANCE_MARKER in str(statement.get("predicateType", ""))


def parse_envelopes(output: str) -> list[ProvenanceRecord]:
    """Parse cosign output (one envelope per line) into provenance records.

    Statements of other predicate types (SBOMs, test results) are skipped.
    """
    records: list[ProvenanceRecord] = []
    for line_number, line in enumerate(output.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            envelope = json.loads(line)
        except json.JSONDecodeError as exc:
            raise AttestationUntrustedError(
                f"Attestation output line {line_number} is not JSON: {exc}"
            ) from exc
        if not isinstance(envelope, dict):
            raise AttestationUntrustedError(
                f"Attestation output line {line_number} is not an envelope"
            )

        statement = decode_statement(envelope)
        if not is_provenance(statement):
            logger.debug(
                "Skipping attestation with predicateType %s",
                statement.get("predicateType"),
            )
            continue
        records.append(parse_statement(statement))

    return records
