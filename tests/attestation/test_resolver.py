"""Tests for source resolution from provenance build tasks.

Covers the resolution policy: exactly one qualifying pair succeeds,
none is incomplete, disagreeing pairs are ambiguous, agreeing pairs
are not.
"""

import pytest

from conftest import annotations, record
from coverage_processor.attestation.resolver import collect_candidates, resolve_source
from coverage_processor.attestation.types import (
    AnnotationKeys,
    BuildAnnotations,
    ResolvedSource,
)
from coverage_processor.errors import ProvenanceAmbiguousError, ProvenanceIncompleteError

REPO = "https://example.com/org/repo"


class TestSingleQualifyingTask:
    def test_yields_exact_pair(self, keys) -> None:
        rec = record(("build-container", annotations(REPO, "abc123")))

        source = resolve_source(rec, keys)

        assert source == ResolvedSource(repository_url=REPO, commit_sha="abc123")

    def test_other_tasks_without_annotations_are_ignored(self, keys) -> None:
        rec = record(
            ("init", {}),
            ("clone-repository", annotations(REPO, "abc123")),
            ("sast-snyk-check", {"unrelated": "value"}),
        )

        assert resolve_source(rec, keys).commit_sha == "abc123"

    def test_task_with_only_one_key_does_not_qualify(self, keys) -> None:
        rec = record(
            ("prefetch", annotations(repo=REPO)),
            ("build", annotations(REPO, "abc123")),
            ("push", annotations(sha="def456")),
        )

        assert resolve_source(rec, keys) == ResolvedSource(REPO, "abc123")

    def test_unrecognized_keys_are_discarded(self, keys) -> None:
        ann = annotations(REPO, "abc123", **{"build.appstudio.redhat.com/commit_sha": "zzz"})

        parsed = BuildAnnotations.from_mapping(ann, keys)

        assert parsed == BuildAnnotations(repository_url=REPO, commit_sha="abc123")

    def test_custom_annotation_keys(self) -> None:
        custom = AnnotationKeys(repo_url="x/repo", commit_sha="x/sha")
        rec = record(("build", {"x/repo": REPO, "x/sha": "abc123"}))

        assert resolve_source(rec, custom).repository_url == REPO

    def test_resolution_is_repeatable(self, keys) -> None:
        rec = record(("build", annotations(REPO, "abc123")))

        assert resolve_source(rec, keys) == resolve_source(rec, keys)


class TestIncompleteProvenance:
    def test_no_tasks(self, keys) -> None:
        with pytest.raises(ProvenanceIncompleteError):
            resolve_source(record(), keys)

    def test_tasks_missing_both_keys(self, keys) -> None:
        rec = record(("build", {}), ("test", {"foo": "bar"}))

        with pytest.raises(ProvenanceIncompleteError, match="None of 2 build task"):
            resolve_source(rec, keys)

    def test_blank_values_count_as_missing(self, keys) -> None:
        rec = record(("build", annotations("  ", "abc123")))

        with pytest.raises(ProvenanceIncompleteError):
            resolve_source(rec, keys)

    def test_empty_record_sequence(self, keys) -> None:
        with pytest.raises(ProvenanceIncompleteError):
            resolve_source([], keys)

    @pytest.mark.parametrize("sha", [
        "--upload-pack=touch /tmp/owned;git-upload-pack",
        "main",
        "abc123; rm -rf /",
    ])
    def test_malformed_commit_sha(self, keys, sha) -> None:
        rec = record(("build", annotations(REPO, sha)))

        with pytest.raises(ProvenanceIncompleteError, match="malformed commit SHA"):
            resolve_source(rec, keys)

    def test_malformed_sha_is_not_outvoted_by_a_valid_task(self, keys) -> None:
        rec = record(
            ("build", annotations(REPO, "abc123")),
            ("inject", annotations(REPO, "--upload-pack=id")),
        )

        with pytest.raises(ProvenanceIncompleteError):
            resolve_source(rec, keys)


class TestAmbiguousProvenance:
    def test_differing_commits_are_ambiguous(self, keys) -> None:
        rec = record(
            ("build-amd64", annotations(REPO, "abc123")),
            ("build-arm64", annotations(REPO, "def456")),
        )

        with pytest.raises(ProvenanceAmbiguousError) as exc_info:
            resolve_source(rec, keys)

        assert {c.commit_sha for c in exc_info.value.candidates} == {"abc123", "def456"}

    def test_differing_repositories_are_ambiguous(self, keys) -> None:
        rec = record(
            ("a", annotations(REPO, "abc123")),
            ("b", annotations("https://example.com/org/fork", "abc123")),
        )

        with pytest.raises(ProvenanceAmbiguousError):
            resolve_source(rec, keys)

    def test_conflict_across_records(self, keys) -> None:
        first = record(("build", annotations(REPO, "abc123")))
        second = record(("build", annotations(REPO, "def456")))

        with pytest.raises(ProvenanceAmbiguousError):
            resolve_source([first, second], keys)


class TestAgreeingTasks:
    def test_identical_pairs_succeed(self, keys) -> None:
        rec = record(
            ("build-amd64", annotations(REPO, "abc123")),
            ("build-arm64", annotations(REPO, "abc123")),
        )

        assert resolve_source(rec, keys) == ResolvedSource(REPO, "abc123")

    def test_cosmetic_differences_are_not_conflicts(self, keys) -> None:
        rec = record(
            ("a", annotations(REPO, "ABC123")),
            ("b", annotations(REPO + ".git", "abc123")),
            ("c", annotations(REPO + "/", "abc123")),
        )

        source = resolve_source(rec, keys)

        assert source.repository_url == REPO
        assert source.commit_sha == "ABC123"

    def test_candidates_keep_task_order(self, keys) -> None:
        rec = record(
            ("first", annotations(REPO, "abc123")),
            ("second", annotations(REPO, "abc123")),
        )

        names = [name for name, _ in collect_candidates([rec], keys)]

        assert names == ["first", "second"]
