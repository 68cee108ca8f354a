"""Sandbox module: tool subprocesses and checkout of the resolved source."""

from coverage_processor.sandbox.checkout import (
    checkout_sha,
    clone_repo,
    is_commit_sha,
    materialize_source,
)
from coverage_processor.sandbox.types import MaterializedTree

__all__ = [
    "clone_repo",
    "checkout_sha",
    "is_commit_sha",
    "materialize_source",
    "MaterializedTree",
]
