"""Credential lookup for the quality backend.

The uploader asks a CredentialProvider for the credential of a
repository instead of reading one fixed secret, so per-repository
tokens can be supplied without touching the upload code. The default
deployment mounts a single namespace secret (SONAR_TOKEN,
SONAR_HOST_URL) and uses StaticCredentialProvider.
"""

from typing import Mapping, Optional, Protocol

from coverage_processor.core.config import Settings
from coverage_processor.errors import AuthenticationError
from coverage_processor.upload.types import Credential


class CredentialProvider(Protocol):
    def get(self, repository_url: str) -> Credential:
        ...


class StaticCredentialProvider:
    """Returns the same credential for every repository."""

    def __init__(self, credential: Credential):
        self._credential = credential

    def get(self, repository_url: str) -> Credential:
        return self._credential


class MappingCredentialProvider:
    """Per-repository credentials with an optional fallback."""

    def __init__(
        self,
        credentials: Mapping[str, Credential],
        default: Optional[Credential] = None,
    ):
        self._credentials = {_repo_key(k): v for k, v in credentials.items()}
        self._default = default

    def get(self, repository_url: str) -> Credential:
        credential = self._credentials.get(_repo_key(repository_url), self._default)
        if credential is None:
            raise AuthenticationError(f"No credential configured for {repository_url}")
        return credential


def _repo_key(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url.lower()


def credential_from_settings(settings: Settings) -> StaticCredentialProvider:
    """Build the provider for the mounted namespace secret.

    A missing SONAR_TOKEN is reported by the uploader, at upload time.
    """
    return StaticCredentialProvider(
        Credential(token=settings.sonar_token, host_url=settings.sonar_host_url)
    )
