"""Source resolution from verified provenance.

Scans predicate.buildConfig.tasks[] in order and collects the
repository/commit pair from every task whose annotations carry both
keys. The policy is strict:

  - no qualifying task          -> ProvenanceIncompleteError
  - qualifying tasks disagree   -> ProvenanceAmbiguousError
  - one pair, or all pairs agree -> ResolvedSource

Agreement is judged on ResolvedSource.identity(), so `repo` and
`repo.git` or an upper-case SHA do not count as a conflict. The first
qualifying task's spelling is returned.

Resolution is a pure function of the records and the configured keys.
"""

import logging
from typing import Iterable, Union

from coverage_processor.attestation.types import (
    AnnotationKeys,
    BuildAnnotations,
    ProvenanceRecord,
    ResolvedSource,
)
from coverage_processor.errors import ProvenanceAmbiguousError, ProvenanceIncompleteError
from coverage_processor.sandbox.checkout import is_commit_sha

logger = logging.getLogger(__name__)


def collect_candidates(
    records: Iterable[ProvenanceRecord],
    keys: AnnotationKeys,
) -> list[tuple[str, ResolvedSource]]:
    """Return (task name, pair) for every task annotated with both keys.

    Raises:
        ProvenanceIncompleteError: A task's commit annotation is not a hex
            commit SHA.
    """
    candidates: list[tuple[str, ResolvedSource]] = []
    for record in records:
        for task in record.tasks:
            annotations = BuildAnnotations.from_mapping(task.annotations, keys)
            if not annotations.is_complete:
                continue
            if not is_commit_sha(annotations.commit_sha):
                raise ProvenanceIncompleteError(
                    f"Task {task.name} carries a malformed commit SHA: "
                    f"{annotations.commit_sha[:80]!r}"
                )
            candidates.append((
                task.name,
                ResolvedSource(
                    repository_url=annotations.repository_url,
                    commit_sha=annotations.commit_sha,
                ),
            ))
    return candidates


def resolve_source(
    records: Union[ProvenanceRecord, Iterable[ProvenanceRecord]],
    keys: AnnotationKeys,
) -> ResolvedSource:
    """Resolve the single source pair named by the provenance.

    Accepts one record or several; the tasks of several records are
    scanned as one ordered sequence.
    """
    if isinstance(records, ProvenanceRecord):
        records = (records,)
    records = tuple(records)

    candidates = collect_candidates(records, keys)
    if not candidates:
        task_count = sum(len(r.tasks) for r in records)
        raise ProvenanceIncompleteError(
            f"None of {task_count} build task(s) carries both "
            f"'{keys.repo_url}' and '{keys.commit_sha}' annotations"
        )

    distinct: dict[tuple[str, str], tuple[str, ResolvedSource]] = {}
    for task_name, source in candidates:
        distinct.setdefault(source.identity(), (task_name, source))

    if len(distinct) > 1:
        described = "; ".join(
            f"{task_name}: {source.repository_url}@{source.commit_sha}"
            for task_name, source in distinct.values()
        )
        raise ProvenanceAmbiguousError(
            f"Build tasks disagree on the source ({described})",
            candidates=tuple(source for _, source in distinct.values()),
        )

    task_name, resolved = next(iter(distinct.values()))
    logger.info(
        "Resolved source %s@%s from task %s (%d agreeing task(s))",
        resolved.repository_url,
        resolved.commit_sha,
        task_name,
        len(candidates),
    )
    return resolved
