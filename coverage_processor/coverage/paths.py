"""Reinterpretation of collection-time paths against the source tree.

Paths in the coverage data reflect the container build: absolute paths
under a build root (`/app/cmd/main.go`) or Go import paths
(`github.com/org/repo/cmd/main.go`). Candidates are tried in order and
the first one naming a regular file inside the tree wins:

  1. the path with a configured build root stripped (longest root first)
  2. the path with the tree's Go module path stripped
  3. the path as recorded, then every trailing suffix that still has a
     directory component, longest first

An import path of another module (a dependency, when the tree declares
its own module in go.mod) only matches its copy under vendor/; it never
falls back to suffixes, which would credit a dependency's `util.go` to
the project's. A bare file name is never matched by suffix alone.

A path with no match is unresolvable; the caller keeps it as recorded.
"""

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

_MODULE_RE = re.compile(r'^\s*module\s+"?([^"\s]+)"?\s*$', re.MULTILINE)


def read_module_path(tree_root: Path) -> Optional[str]:
    """Return the module path declared in tree_root/go.mod, if any."""
    go_mod = tree_root / "go.mod"
    if not go_mod.is_file():
        return None
    try:
        text = go_mod.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.warning("Could not read %s", go_mod)
        return None
    match = _MODULE_RE.search(text)
    return match.group(1) if match else None


class PathResolver:
    """Maps recorded paths to tree-relative POSIX paths.

    Results are cached per instance; one resolver serves one run.
    """

    def __init__(
        self,
        tree_root: Path,
        build_roots: Sequence[str] = (),
        module_path: Optional[str] = None,
    ):
        self.tree_root = tree_root.resolve()
        roots = {r.strip().rstrip("/") for r in build_roots if r.strip().strip("/")}
        self.build_roots = sorted(roots, key=lambda r: (-len(r), r))
        self.module_path = (
            module_path if module_path is not None else read_module_path(self.tree_root)
        )
        self._cache: dict[str, Optional[str]] = {}

    def candidates(self, recorded: str) -> list[str]:
        recorded = recorded.strip()
        ordered: list[str] = []

        for root in self.build_roots:
            if recorded.startswith(root + "/"):
                ordered.append(recorded[len(root) + 1:])
                break

        if self.module_path and recorded.startswith(self.module_path + "/"):
            ordered.append(recorded[len(self.module_path) + 1:])

        if self._is_foreign_import_path(recorded):
            ordered.append(f"vendor/{recorded}")
        else:
            parts = [p for p in PurePosixPath(recorded).parts if p not in ("/", "")]
            for i in range(max(len(parts) - 1, 1)):
                ordered.append("/".join(parts[i:]))

        unique: list[str] = []
        for candidate in ordered:
            if candidate and candidate not in unique:
                unique.append(candidate)
        return unique

    def _is_foreign_import_path(self, recorded: str) -> bool:
        """True for a Go import path outside the tree's own module."""
        if not self.module_path or recorded.startswith("/"):
            return False
        if recorded.startswith(self.module_path + "/"):
            return False
        first = recorded.split("/", 1)[0]
        return "." in first.strip(".")

    def _is_tree_file(self, relative: str) -> bool:
        rel = PurePosixPath(relative)
        if rel.is_absolute() or ".." in rel.parts or rel.parts[:1] == (".git",):
            return False
        full = self.tree_root / rel
        if not full.is_file():
            return False
        return full.resolve().is_relative_to(self.tree_root)

    def resolve(self, recorded: str) -> Optional[str]:
        """Return the tree-relative path for recorded, or None."""
        if recorded in self._cache:
            return self._cache[recorded]

        resolved = next(
            (c for c in self.candidates(recorded) if self._is_tree_file(c)),
            None,
        )
        if resolved is None:
            logger.debug("Unresolvable coverage path: %s", recorded)
        self._cache[recorded] = resolved
        return resolved
