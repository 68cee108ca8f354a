"""Types for attestation resolution.

ProvenanceRecord is the decoded form of one verified SLSA provenance
statement, reduced to what resolution needs: the ordered build tasks and
their invocation annotations. BuildAnnotations is the typed view of an
annotation mapping; it reads exactly the two configured keys and
nothing else.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass(frozen=True)
class AnnotationKeys:
    """Names of the two annotations that identify the build's source."""

    repo_url: str
    commit_sha: str


@dataclass(frozen=True)
class BuildAnnotations:
    """The recognized subset of a task's invocation annotations.

    Blank values are treated as absent.
    """

    repository_url: Optional[str] = None
    commit_sha: Optional[str] = None

    @classmethod
    def from_mapping(
        cls,
        annotations: Mapping[str, object],
        keys: AnnotationKeys,
    ) -> "BuildAnnotations":
        return cls(
            repository_url=_clean(annotations.get(keys.repo_url)),
            commit_sha=_clean(annotations.get(keys.commit_sha)),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.repository_url and self.commit_sha)


def _clean(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class BuildTask:
    """One entry of predicate.buildConfig.tasks[]."""

    name: str
    annotations: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProvenanceRecord:
    """A decoded, verified provenance statement.

    tasks keeps the order of predicate.buildConfig.tasks[].
    """

    predicate_type: str
    tasks: tuple[BuildTask, ...] = ()


@dataclass(frozen=True)
class ResolvedSource:
    """The repository and commit a container image was built from.

    Resolved once per run; downstream steps treat it as a fact.
    """

    repository_url: str
    commit_sha: str

    def identity(self) -> tuple[str, str]:
        """Comparison key tolerant of cosmetic URL and SHA differences."""
        url = self.repository_url.strip().rstrip("/")
        if url.endswith(".git"):
            url = url[: -len(".git")]
        return url.rstrip("/"), self.commit_sha.strip().lower()

    def to_dict(self) -> dict:
        return {
            "repository_url": self.repository_url,
            "commit_sha": self.commit_sha,
        }
