"""Report upload to SonarQube / SonarCloud.

The upload flow:
1. Validate the token against GET /api/authentication/validate so a bad
   or expired credential fails as AuthenticationError before any
   analysis is submitted.
2. Run sonar-scanner once in the materialized tree with the cover
   profile as sonar.go.coverage.reportPaths and the resolved commit as
   sonar.scm.revision.

Neither step is retried. The token reaches the scanner through the
SONAR_TOKEN environment variable, never through argv.
"""

import logging
import os
import re
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from coverage_processor.errors import AuthenticationError, BackendUnavailableError
from coverage_processor.sandbox.limits import PROFILE_JVM
from coverage_processor.sandbox.process import run_tool, tail
from coverage_processor.upload.types import Credential, UploadRequest, UploadResult

logger = logging.getLogger(__name__)

# Timeout for the credential pre-flight
API_TIMEOUT = 30

_AUTH_FAILURE_MARKERS = (
    "not authorized",
    "unauthorized",
    "http 401",
    "invalid token",
    "token is invalid",
    "insufficient privileges",
)

_DASHBOARD_RE = re.compile(r"ANALYSIS SUCCESSFUL, you can (?:find|browse) the results at:? (\S+)")
_CE_TASK_RE = re.compile(r"More about the report processing at:? (\S+)")
_KEY_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.:-]")


class ReportUploader(Protocol):
    def upload(self, request: UploadRequest) -> UploadResult:
        ...


def derive_project_key(repository_url: str) -> tuple[str, str]:
    """Return (organization, project_key) for a repository URL.

    Follows SonarCloud's default binding for imported repositories:
    organization is the owner, key is `<owner>_<repo>`.
    """
    path = urlparse(repository_url).path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"Cannot derive a project key from {repository_url}")

    owner = segments[0]
    name = "_".join(segments[1:])
    return owner, _KEY_UNSAFE_RE.sub("_", f"{owner}_{name}")


def validate_credential(
    credential: Credential,
    client: Optional[httpx.Client] = None,
) -> None:
    """Check the token with the backend.

    Raises:
        AuthenticationError: Token missing, rejected, or reported invalid.
        BackendUnavailableError: The backend could not be reached or errored.
    """
    if not credential.token:
        raise AuthenticationError("No quality-backend token configured (SONAR_TOKEN)")

    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=API_TIMEOUT)

    url = f"{credential.host_url.rstrip('/')}/api/authentication/validate"
    try:
        response = client.get(
            url,
            headers={"Authorization": f"Bearer {credential.token}"},
        )
    except httpx.HTTPError as exc:
        raise BackendUnavailableError(
            f"Cannot reach quality backend at {credential.host_url}: {exc}"
        ) from exc
    finally:
        if owns_client:
            client.close()

    if response.status_code in (401, 403):
        raise AuthenticationError(
            f"Quality backend rejected the token (HTTP {response.status_code})"
        )
    if response.status_code >= 400:
        raise BackendUnavailableError(
            f"Credential check failed: HTTP {response.status_code} from {credential.host_url}"
        )

    try:
        valid = bool(response.json().get("valid"))
    except ValueError as exc:
        raise BackendUnavailableError(
            f"Credential check returned a non-JSON body from {credential.host_url}"
        ) from exc
    if not valid:
        raise AuthenticationError("Quality backend reports the token as invalid")


def build_scanner_args(request: UploadRequest) -> list[str]:
    """Scanner -D properties for the request. Contains no secrets."""
    props = {
        "sonar.projectKey": request.project_key,
        "sonar.host.url": request.host_url,
        "sonar.scm.revision": request.scm_revision,
        "sonar.go.coverage.reportPaths": ",".join(str(p) for p in request.report_paths),
        "sonar.sources": ".",
    }
    if request.organization:
        props["sonar.organization"] = request.organization
    if request.project_base_dir is not None:
        props["sonar.projectBaseDir"] = str(request.project_base_dir)
    return [f"-D{key}={value}" for key, value in props.items()]


def _is_auth_failure(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in _AUTH_FAILURE_MARKERS)


class SonarScannerUploader:
    """Uploads cover profiles with the sonar-scanner CLI."""

    def __init__(
        self,
        scanner_bin: str = "sonar-scanner",
        timeout: int = 600,
        http_client: Optional[httpx.Client] = None,
    ):
        self.scanner_bin = scanner_bin
        self.timeout = timeout
        self.http_client = http_client

    def upload(self, request: UploadRequest) -> UploadResult:
        """Validate the credential, then submit exactly one analysis."""
        validate_credential(request.credential, client=self.http_client)

        env = dict(os.environ)
        env["SONAR_TOKEN"] = request.credential.token
        env["SONAR_HOST_URL"] = request.host_url

        cmd = [self.scanner_bin, *build_scanner_args(request)]
        logger.info(
            "Uploading %d report(s) to %s as %s@%s",
            len(request.report_paths),
            request.host_url,
            request.project_key,
            request.scm_revision,
        )

        result = run_tool(
            cmd,
            timeout=self.timeout,
            cwd=request.project_base_dir,
            env=env,
            profile=PROFILE_JVM,
        )
        output = f"{result.stdout}\n{result.stderr}"

        if result.returncode != 0:
            if _is_auth_failure(output):
                raise AuthenticationError(
                    f"sonar-scanner was not authorized: {tail(result.stderr or result.stdout)}"
                )
            raise BackendUnavailableError(
                f"sonar-scanner failed (exit {result.returncode}): "
                f"{tail(result.stderr or result.stdout)}"
            )

        dashboard = _DASHBOARD_RE.search(output)
        ce_task = _CE_TASK_RE.search(output)
        upload_result = UploadResult(
            project_key=request.project_key,
            scm_revision=request.scm_revision,
            host_url=request.host_url,
            dashboard_url=dashboard.group(1) if dashboard else None,
            ce_task_url=ce_task.group(1) if ce_task else None,
        )
        logger.info(
            "Upload complete: %s",
            upload_result.dashboard_url or request.project_key,
        )
        return upload_result
