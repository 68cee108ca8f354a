from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Tekton Chains records PipelineRun annotations on every task invocation.
DEFAULT_REPO_URL_ANNOTATION = "pipelinesascode.tekton.dev/repo-url"
DEFAULT_COMMIT_SHA_ANNOTATION = "pipelinesascode.tekton.dev/sha"

# Build roots commonly used by container builds; longest match wins.
DEFAULT_BUILD_ROOTS = ["/app", "/workspace/source", "/opt/app-root/src", "/src"]


def _split_csv(value: object) -> object:
    """Accept comma-separated strings as well as real lists."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables.

    The quality-backend credential arrives through SONAR_TOKEN and
    SONAR_HOST_URL, the two keys of the namespace secret the job
    substrate mounts into the step environment. Neither is ever logged.

    List-valued settings (BUILD_ROOTS) accept JSON or a comma-separated
    string.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Quality backend
    sonar_token: str = ""
    sonar_host_url: str = "https://sonarcloud.io"
    # Derived from the repository URL when left blank.
    sonar_organization: str = ""
    sonar_project_key: str = ""

    @field_validator("sonar_host_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/") if isinstance(v, str) else v

    # Provenance annotation keys
    repo_url_annotation: str = DEFAULT_REPO_URL_ANNOTATION
    commit_sha_annotation: str = DEFAULT_COMMIT_SHA_ANNOTATION

    # Attestation verification. Either a public key (path, URL or KMS ref)
    # or a keyless identity pair must be set; the verifier refuses to run
    # otherwise.
    cosign_public_key: str = ""
    cosign_certificate_identity_regexp: str = ""
    cosign_certificate_oidc_issuer_regexp: str = ""
    cosign_insecure_ignore_tlog: bool = False

    # Path remapping
    build_roots: Annotated[list[str], NoDecode] = DEFAULT_BUILD_ROOTS

    @field_validator("build_roots", mode="before")
    @classmethod
    def parse_build_roots(cls, v: object) -> object:
        return _split_csv(v)

    # Checkout. 0 means a full clone.
    clone_depth: int = 1

    # External tools
    oras_bin: str = "oras"
    cosign_bin: str = "cosign"
    git_bin: str = "git"
    go_bin: str = "go"
    sonar_scanner_bin: str = "sonar-scanner"

    # Per-step wall-clock budgets (seconds)
    fetch_timeout: int = 300
    attestation_timeout: int = 120
    clone_timeout: int = 300
    convert_timeout: int = 120
    upload_timeout: int = 600

    # Scratch workspace. Blank uses the system temp dir.
    workspace_root: str = ""
    keep_workspace: bool = False

    # App
    debug: bool = False


def get_settings() -> Settings:
    return Settings()
