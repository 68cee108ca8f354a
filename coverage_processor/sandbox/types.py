"""Types for the sandbox module."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class MaterializedTree:
    """A checkout of the resolved repository at exactly commit_sha.

    Read-only once created; removed together with the run's workspace.
    """

    root: Path
    repository_url: str
    commit_sha: str

    def to_dict(self) -> dict:
        return {
            "root": str(self.root),
            "repository_url": self.repository_url,
            "commit_sha": self.commit_sha,
        }
