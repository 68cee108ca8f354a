"""Types for the report uploader."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, repr=False)
class Credential:
    """Quality-backend token and host. The token never appears in repr()."""

    token: str
    host_url: str

    def __repr__(self) -> str:
        masked = f"****{self.token[-4:]}" if len(self.token) > 8 else "****"
        return f"Credential(token={masked!r}, host_url={self.host_url!r})"


@dataclass(frozen=True)
class UploadRequest:
    """One analysis upload.

    scm_revision is the resolved commit; the backend attaches the new
    analysis snapshot to that revision.
    """

    report_paths: tuple[Path, ...]
    credential: Credential
    project_key: str
    scm_revision: str
    organization: str = ""
    project_base_dir: Optional[Path] = None

    @property
    def host_url(self) -> str:
        return self.credential.host_url


@dataclass
class UploadResult:
    project_key: str
    scm_revision: str
    host_url: str
    dashboard_url: Optional[str] = None
    ce_task_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "project_key": self.project_key,
            "scm_revision": self.scm_revision,
            "host_url": self.host_url,
            "dashboard_url": self.dashboard_url,
            "ce_task_url": self.ce_task_url,
        }
