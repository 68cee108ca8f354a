"""Shared fixtures for the coverage processor test suite.

Builders for DSSE envelopes and provenance records mirror what Tekton
Chains attaches to images, so resolver tests read like real attestations.
No test talks to a registry, git remote or quality backend.
"""

import base64
import json
from pathlib import Path

import pytest

from coverage_processor.attestation.types import AnnotationKeys, BuildTask, ProvenanceRecord
from coverage_processor.core.config import Settings

REPO_KEY = "pipelinesascode.tekton.dev/repo-url"
SHA_KEY = "pipelinesascode.tekton.dev/sha"

META_HASH = "8d0c62cf2e4f4b1a9c3d5e7f90a1b2c3"


def task_dict(name: str, annotations: dict | None = None) -> dict:
    """One predicate.buildConfig.tasks[] entry."""
    return {
        "name": name,
        "ref": {"name": name, "kind": "Task"},
        "invocation": {
            "parameters": {},
            "environment": {"annotations": annotations or {}, "labels": {}},
        },
    }


def statement_dict(tasks: list[dict], predicate_type: str = "https://slsa.dev/provenance/v0.2") -> dict:
    return {
        "_type": "https://in-toto.io/Statement/v0.1",
        "predicateType": predicate_type,
        "subject": [
            {"name": "quay.io/org/app", "digest": {"sha256": "ab" * 32}},
        ],
        "predicate": {
            "builder": {"id": "https://tekton.dev/chains/v2"},
            "buildType": "tekton.dev/v1beta1/PipelineRun",
            "buildConfig": {"tasks": tasks},
        },
    }


def envelope_line(statement: dict) -> str:
    payload = base64.b64encode(json.dumps(statement).encode("utf-8")).decode("ascii")
    return json.dumps({
        "payloadType": "application/vnd.in-toto+json",
        "payload": payload,
        "signatures": [{"keyid": "", "sig": "MEUCIQ..."}],
    })


def record(*tasks: tuple[str, dict]) -> ProvenanceRecord:
    """ProvenanceRecord from (task name, annotations) pairs."""
    return ProvenanceRecord(
        predicate_type="https://slsa.dev/provenance/v0.2",
        tasks=tuple(BuildTask(name=name, annotations=ann) for name, ann in tasks),
    )


def annotations(repo: str | None = None, sha: str | None = None, **extra: str) -> dict:
    result = dict(extra)
    if repo is not None:
        result[REPO_KEY] = repo
    if sha is not None:
        result[SHA_KEY] = sha
    return result


def write_bundle(
    root: Path,
    image: str = "quay.io/org/app@sha256:" + "ab" * 32,
    meta_hash: str = META_HASH,
    counter_hash: str = META_HASH,
) -> Path:
    """Write a complete bundle as oras would pull it."""
    root.mkdir(parents=True, exist_ok=True)
    (root / f"covmeta.{meta_hash}").write_bytes(b"\x00\x63\x76\x6d" + b"\x01" * 32)
    (root / f"covcounters.{counter_hash}.1234.1700000000000000000").write_bytes(
        b"\x00\x63\x77\x6d" + b"\x02" * 32
    )
    (root / "metadata.json").write_text(json.dumps({
        "pod_name": "app-7c9d8-xk2lp",
        "namespace": "e2e-tests",
        "container": {"name": "app", "image": image},
        "collected_at": "2025-01-15T10:30:00Z",
        "test_name": "e2e-checkout",
    }))
    return root


@pytest.fixture
def keys() -> AnnotationKeys:
    return AnnotationKeys(repo_url=REPO_KEY, commit_sha=SHA_KEY)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        sonar_token="squ_test_token_1234",
        sonar_host_url="https://sonarcloud.io",
        cosign_public_key="k8s://tekton-chains/signing-secrets",
        workspace_root=str(tmp_path / "workspaces"),
    )


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo configure_structlog() so one test's stream never leaks into the next."""
    import logging

    import structlog

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
