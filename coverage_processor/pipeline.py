"""Coverage processing pipeline.

Runs fetch -> resolve -> materialize -> remap -> upload in sequence for
one bundle reference. Each step consumes the previous step's output and
the run's scratch workspace; nothing is shared between runs.

Any failure ends the run at that step: the error is stamped with the
step name, logged once, and re-raised. Later steps never start, so a
failed run uploads nothing.

The external collaborators (registry, attestation verifier, git, the
coverage converter, the backend) are bundled in PipelineSteps and built
from Settings by default; tests and embedders can replace any of them.
"""

import logging
import shutil
import tempfile
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from coverage_processor.attestation import (
    AnnotationKeys,
    ProvenanceRecord,
    ResolvedSource,
    VerificationPolicy,
    fetch_verified_provenance,
    resolve_source,
)
from coverage_processor.core.config import Settings
from coverage_processor.core.logging import bind_run, bind_step
from coverage_processor.coverage import CoverageReport, build_report
from coverage_processor.errors import CoverageProcessorError, StepFailedError
from coverage_processor.fetcher import CoverageBundle, fetch_bundle
from coverage_processor.sandbox import MaterializedTree, materialize_source
from coverage_processor.upload import (
    CredentialProvider,
    ReportUploader,
    SonarScannerUploader,
    UploadRequest,
    UploadResult,
    credential_from_settings,
    derive_project_key,
)

logger = logging.getLogger(__name__)

STEP_FETCH = "fetch"
STEP_RESOLVE = "resolve"
STEP_MATERIALIZE = "materialize"
STEP_REMAP = "remap"
STEP_UPLOAD = "upload"

PIPELINE_STEPS = (STEP_FETCH, STEP_RESOLVE, STEP_MATERIALIZE, STEP_REMAP, STEP_UPLOAD)

REPORT_FILENAME = "coverage.out"


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class Workspace:
    """Scratch directory for one run, removed on exit unless keep is set.

    Layout:
        bundle/   pulled artifact (covdata/ + metadata.json)
        source/   checkout of the resolved commit
        report/   converted and remapped profiles
    """

    def __init__(self, parent: Optional[Path] = None, keep: bool = False):
        self.parent = parent
        self.keep = keep
        self.root: Optional[Path] = None

    def __enter__(self) -> "Workspace":
        if self.parent is not None:
            self.parent.mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(
            prefix="covproc-",
            dir=str(self.parent) if self.parent else None,
        ))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.root is None:
            return
        if self.keep:
            logger.info("Keeping workspace %s", self.root)
            return
        shutil.rmtree(self.root, ignore_errors=True)

    def _sub(self, name: str) -> Path:
        if self.root is None:
            raise RuntimeError("Workspace is not open")
        return self.root / name

    @property
    def bundle_dir(self) -> Path:
        return self._sub("bundle")

    @property
    def source_dir(self) -> Path:
        return self._sub("source")

    @property
    def report_dir(self) -> Path:
        return self._sub("report")


# ---------------------------------------------------------------------------
# Step collaborators
# ---------------------------------------------------------------------------


@dataclass
class PipelineSteps:
    """The side-effecting collaborators of a run."""

    fetch: Callable[[str, Path], CoverageBundle]
    verify: Callable[[str], list[ProvenanceRecord]]
    materialize: Callable[[ResolvedSource, Path], MaterializedTree]
    remap: Callable[[CoverageBundle, MaterializedTree, Path], CoverageReport]
    uploader: ReportUploader
    credentials: CredentialProvider

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineSteps":
        policy = VerificationPolicy.from_settings(settings)

        def fetch(reference: str, dest: Path) -> CoverageBundle:
            return fetch_bundle(
                reference,
                dest,
                oras_bin=settings.oras_bin,
                timeout=settings.fetch_timeout,
            )

        def verify(image: str) -> list[ProvenanceRecord]:
            return fetch_verified_provenance(
                image,
                policy,
                cosign_bin=settings.cosign_bin,
                timeout=settings.attestation_timeout,
            )

        def materialize(source: ResolvedSource, dest: Path) -> MaterializedTree:
            return materialize_source(
                source.repository_url,
                source.commit_sha,
                dest,
                depth=settings.clone_depth,
                git_bin=settings.git_bin,
                timeout=settings.clone_timeout,
            )

        def remap(
            bundle: CoverageBundle,
            tree: MaterializedTree,
            work_dir: Path,
        ) -> CoverageReport:
            return build_report(
                bundle.coverage_dir,
                tree.root,
                work_dir,
                build_roots=settings.build_roots,
                go_bin=settings.go_bin,
                timeout=settings.convert_timeout,
            )

        return cls(
            fetch=fetch,
            verify=verify,
            materialize=materialize,
            remap=remap,
            uploader=SonarScannerUploader(
                scanner_bin=settings.sonar_scanner_bin,
                timeout=settings.upload_timeout,
            ),
            credentials=credential_from_settings(settings),
        )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    run_id: str
    reference: str
    bundle: CoverageBundle
    source: ResolvedSource
    tree: MaterializedTree
    report: CoverageReport
    upload: UploadResult
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": "completed",
            "reference": self.reference,
            "bundle": self.bundle.to_dict(),
            "source": self.source.to_dict(),
            "report": self.report.to_dict(),
            "upload": self.upload.to_dict(),
            "duration_seconds": round(self.duration_seconds, 3),
        }


@contextmanager
def _step(name: str) -> Iterator[None]:
    """Bind the step to log context and stamp failures with its name."""
    with bind_step(name):
        logger.info("Step %s started", name)
        start = time.monotonic()
        try:
            yield
        except CoverageProcessorError as exc:
            if exc.step is None:
                exc.step = name
            raise
        except Exception as exc:
            raise StepFailedError(f"{type(exc).__name__}: {exc}", step=name) from exc
        logger.info("Step %s finished in %.1fs", name, time.monotonic() - start)


class CoveragePipeline:
    """Processes one coverage bundle reference per run() call."""

    def __init__(self, settings: Settings, steps: Optional[PipelineSteps] = None):
        self.settings = settings
        self.steps = steps or PipelineSteps.from_settings(settings)
        self.annotation_keys = AnnotationKeys(
            repo_url=settings.repo_url_annotation,
            commit_sha=settings.commit_sha_annotation,
        )

    def _upload_request(
        self,
        report_path: Path,
        source: ResolvedSource,
        tree: MaterializedTree,
    ) -> UploadRequest:
        credential = self.steps.credentials.get(source.repository_url)

        organization = self.settings.sonar_organization
        project_key = self.settings.sonar_project_key
        if not project_key or not organization:
            owner, derived_key = derive_project_key(source.repository_url)
            project_key = project_key or derived_key
            # Organizations only exist on SonarCloud.
            if not organization and "sonarcloud.io" in credential.host_url:
                organization = owner

        return UploadRequest(
            report_paths=(report_path,),
            credential=credential,
            project_key=project_key,
            scm_revision=source.commit_sha,
            organization=organization,
            project_base_dir=tree.root,
        )

    def run(self, reference: str, run_id: Optional[str] = None) -> RunResult:
        """Run every step for reference.

        Raises:
            CoverageProcessorError: The first failing step's error, with
                error.step set.
        """
        run_id = run_id or uuid.uuid4().hex[:12]
        start = time.monotonic()

        with bind_run(run_id):
            logger.info("Run started for %s", reference)
            try:
                result = self._run(run_id, reference)
            except CoverageProcessorError as exc:
                logger.error(
                    "Run failed at step %s: %s: %s",
                    exc.step, type(exc).__name__, exc,
                )
                raise

            result.duration_seconds = time.monotonic() - start
            logger.info(
                "Run completed: %s@%s, %d file(s), %d unresolved, %.1fs",
                result.source.repository_url,
                result.source.commit_sha,
                len(result.report.paths),
                len(result.report.unresolved_paths),
                result.duration_seconds,
            )
            return result

    def _run(self, run_id: str, reference: str) -> RunResult:
        parent = Path(self.settings.workspace_root) if self.settings.workspace_root else None

        with Workspace(parent=parent, keep=self.settings.keep_workspace) as workspace:
            with _step(STEP_FETCH):
                bundle = self.steps.fetch(reference, workspace.bundle_dir)

            with _step(STEP_RESOLVE):
                records = self.steps.verify(bundle.manifest.container_image)
                source = resolve_source(records, self.annotation_keys)

            with _step(STEP_MATERIALIZE):
                tree = self.steps.materialize(source, workspace.source_dir)

            with _step(STEP_REMAP):
                report = self.steps.remap(bundle, tree, workspace.report_dir)
                report_path = report.write(workspace.report_dir / REPORT_FILENAME)

            with _step(STEP_UPLOAD):
                request = self._upload_request(report_path, source, tree)
                upload = self.steps.uploader.upload(request)

        return RunResult(
            run_id=run_id,
            reference=reference,
            bundle=bundle,
            source=source,
            tree=tree,
            report=report,
            upload=upload,
        )
