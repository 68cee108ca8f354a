"""Tests for the end-to-end pipeline with fake step collaborators.

Every collaborator is replaced so no registry, verifier, git remote,
converter or backend is involved; the bundle loader, resolver and
remapper run for real.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import annotations, record, write_bundle
from coverage_processor.coverage import PathResolver, parse_profile, remap_profile
from coverage_processor.errors import (
    ArtifactFetchError,
    AuthenticationError,
    ProvenanceAmbiguousError,
    ProvenanceIncompleteError,
    StepFailedError,
)
from coverage_processor.fetcher import load_bundle
from coverage_processor.pipeline import (
    STEP_FETCH,
    STEP_MATERIALIZE,
    STEP_RESOLVE,
    STEP_UPLOAD,
    CoveragePipeline,
    PipelineSteps,
    Workspace,
)
from coverage_processor.sandbox import MaterializedTree
from coverage_processor.upload import StaticCredentialProvider
from coverage_processor.upload.types import Credential, UploadResult

REPO = "https://example.com/org/repo"
REF = "quay.io/org/coverage-artifacts:e2e-abc123"
RAW_PROFILE = "mode: set\n/app/main.go:3.13,5.2 1 1\n"


def _fetch(reference: str, dest: Path):
    return load_bundle(write_bundle(dest), reference=reference)


def _materialize(source, dest: Path) -> MaterializedTree:
    dest.mkdir(parents=True)
    (dest / "main.go").write_text("package main\n")
    return MaterializedTree(root=dest, repository_url=source.repository_url, commit_sha=source.commit_sha)


def _remap(bundle, tree, work_dir):
    return remap_profile(parse_profile(RAW_PROFILE), PathResolver(tree.root, build_roots=["/app"]))


def _upload(request) -> UploadResult:
    return UploadResult(
        project_key=request.project_key,
        scm_revision=request.scm_revision,
        host_url=request.host_url,
    )


def _steps(*records, **overrides) -> PipelineSteps:
    steps = PipelineSteps(
        fetch=MagicMock(side_effect=_fetch),
        verify=MagicMock(return_value=list(records)),
        materialize=MagicMock(side_effect=_materialize),
        remap=MagicMock(side_effect=_remap),
        uploader=MagicMock(),
        credentials=StaticCredentialProvider(
            Credential(token="squ_test_token_1234", host_url="https://sonarcloud.io")
        ),
    )
    steps.uploader.upload.side_effect = _upload
    for name, value in overrides.items():
        setattr(steps, name, value)
    return steps


class TestSuccessfulRun:
    def test_report_attached_to_resolved_commit(self, settings) -> None:
        steps = _steps(record(("build", annotations(REPO, "abc123"))))

        result = CoveragePipeline(settings, steps=steps).run(REF, run_id="run-1")

        assert result.source.commit_sha == "abc123"
        assert result.report.paths == ("main.go",)
        request = steps.uploader.upload.call_args[0][0]
        assert request.scm_revision == "abc123"
        assert request.project_key == "org_repo"
        assert request.organization == "org"
        assert request.report_paths[0].name == "coverage.out"
        assert result.to_dict()["status"] == "completed"

    def test_verifier_gets_manifest_image(self, settings) -> None:
        steps = _steps(record(("build", annotations(REPO, "abc123"))))

        CoveragePipeline(settings, steps=steps).run(REF)

        steps.verify.assert_called_once_with("quay.io/org/app@sha256:" + "ab" * 32)

    def test_uploaded_report_is_remapped(self, settings) -> None:
        steps = _steps(record(("build", annotations(REPO, "abc123"))))
        seen: list[bytes] = []

        def capture(request):
            seen.append(request.report_paths[0].read_bytes())
            return _upload(request)

        steps.uploader.upload.side_effect = capture

        CoveragePipeline(settings, steps=steps).run(REF)

        assert seen == [b"mode: set\nmain.go:3.13,5.2 1 1\n"]

    def test_configured_project_key_wins(self, settings) -> None:
        settings = settings.model_copy(update={"sonar_project_key": "custom", "sonar_organization": "acme"})
        steps = _steps(record(("build", annotations(REPO, "abc123"))))

        CoveragePipeline(settings, steps=steps).run(REF)

        request = steps.uploader.upload.call_args[0][0]
        assert (request.project_key, request.organization) == ("custom", "acme")

    def test_self_hosted_backend_has_no_organization(self, settings) -> None:
        steps = _steps(
            record(("build", annotations(REPO, "abc123"))),
            credentials=StaticCredentialProvider(
                Credential(token="squ_test_token_1234", host_url="https://sonar.example.com")
            ),
        )

        CoveragePipeline(settings, steps=steps).run(REF)

        assert steps.uploader.upload.call_args[0][0].organization == ""

    def test_workspace_is_removed(self, settings) -> None:
        steps = _steps(record(("build", annotations(REPO, "abc123"))))

        CoveragePipeline(settings, steps=steps).run(REF)

        assert list(Path(settings.workspace_root).iterdir()) == []


class TestFailedRun:
    def test_incomplete_provenance_stops_before_checkout(self, settings) -> None:
        steps = _steps(record(("build", annotations(repo=REPO))))

        with pytest.raises(ProvenanceIncompleteError) as exc_info:
            CoveragePipeline(settings, steps=steps).run(REF)

        assert exc_info.value.step == STEP_RESOLVE
        steps.materialize.assert_not_called()
        steps.uploader.upload.assert_not_called()

    def test_ambiguous_provenance_uploads_nothing(self, settings) -> None:
        steps = _steps(record(
            ("build-amd64", annotations(REPO, "abc123")),
            ("build-arm64", annotations(REPO, "def456")),
        ))

        with pytest.raises(ProvenanceAmbiguousError) as exc_info:
            CoveragePipeline(settings, steps=steps).run(REF)

        assert exc_info.value.step == STEP_RESOLVE
        assert {c.commit_sha for c in exc_info.value.candidates} == {"abc123", "def456"}
        steps.uploader.upload.assert_not_called()

    def test_fetch_failure_is_stamped(self, settings) -> None:
        steps = _steps(fetch=MagicMock(side_effect=ArtifactFetchError("manifest unknown")))

        with pytest.raises(ArtifactFetchError) as exc_info:
            CoveragePipeline(settings, steps=steps).run(REF)

        assert exc_info.value.to_dict() == {
            "step": STEP_FETCH,
            "error_type": "ArtifactFetchError",
            "error": "manifest unknown",
        }
        steps.verify.assert_not_called()

    def test_unexpected_exception_is_wrapped(self, settings) -> None:
        steps = _steps(
            record(("build", annotations(REPO, "abc123"))),
            materialize=MagicMock(side_effect=OSError("disk full")),
        )

        with pytest.raises(StepFailedError, match="OSError: disk full") as exc_info:
            CoveragePipeline(settings, steps=steps).run(REF)

        assert exc_info.value.step == STEP_MATERIALIZE
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_upload_failure_is_stamped(self, settings) -> None:
        steps = _steps(record(("build", annotations(REPO, "abc123"))))
        steps.uploader.upload.side_effect = AuthenticationError("HTTP 401")

        with pytest.raises(AuthenticationError) as exc_info:
            CoveragePipeline(settings, steps=steps).run(REF)

        assert exc_info.value.step == STEP_UPLOAD

    def test_workspace_is_removed_on_failure(self, settings) -> None:
        steps = _steps(record(("build", {})))

        with pytest.raises(ProvenanceIncompleteError):
            CoveragePipeline(settings, steps=steps).run(REF)

        assert list(Path(settings.workspace_root).iterdir()) == []


class TestWorkspace:
    def test_keep(self, tmp_path) -> None:
        with Workspace(parent=tmp_path, keep=True) as workspace:
            workspace.bundle_dir.mkdir()

        assert workspace.bundle_dir.is_dir()

    def test_not_open(self) -> None:
        with pytest.raises(RuntimeError):
            Workspace().source_dir
