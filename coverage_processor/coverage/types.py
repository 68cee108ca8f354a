"""Types for coverage conversion and remapping.

ProfileBlock is one row of a Go cover profile exactly as the converter
wrote it, with the path recorded at collection time. CoverageEntry is the
same block after its path was reinterpreted against the checked-out
source tree; resolved is False when no file in the tree matched and the
recorded path was kept.
"""

from dataclasses import dataclass, field
from pathlib import Path

MODE_SET = "set"
MODE_COUNT = "count"
MODE_ATOMIC = "atomic"
VALID_MODES = {MODE_SET, MODE_COUNT, MODE_ATOMIC}


@dataclass(frozen=True)
class ProfileBlock:
    path: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    num_statements: int
    count: int


@dataclass(frozen=True)
class Profile:
    mode: str
    blocks: tuple[ProfileBlock, ...] = ()


@dataclass(frozen=True)
class CoverageEntry:
    """A coverage block keyed by a source-tree-relative path."""

    path: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    num_statements: int
    count: int
    resolved: bool = True

    def sort_key(self) -> tuple[str, int, int, int, int]:
        return (self.path, self.start_line, self.start_col, self.end_line, self.end_col)

    def render(self) -> str:
        return (
            f"{self.path}:{self.start_line}.{self.start_col},"
            f"{self.end_line}.{self.end_col} {self.num_statements} {self.count}"
        )


@dataclass(frozen=True)
class CoverageReport:
    """A path-keyed line coverage table in Go cover profile format.

    entries are kept in total order by sort_key(); render() is therefore
    byte-identical for identical input.
    """

    mode: str
    entries: tuple[CoverageEntry, ...] = field(default_factory=tuple)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(sorted({e.path for e in self.entries}))

    @property
    def unresolved_paths(self) -> tuple[str, ...]:
        return tuple(sorted({e.path for e in self.entries if not e.resolved}))

    def render(self) -> str:
        lines = [f"mode: {self.mode}"]
        lines.extend(entry.render() for entry in self.entries)
        return "\n".join(lines) + "\n"

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.render().encode("utf-8"))
        return path

    def to_dict(self) -> dict:
        statements = sum(e.num_statements for e in self.entries)
        covered = sum(e.num_statements for e in self.entries if e.count > 0)
        return {
            "mode": self.mode,
            "entries": len(self.entries),
            "files": len(self.paths),
            "unresolved_paths": list(self.unresolved_paths),
            "statements": statements,
            "covered_statements": covered,
            "coverage_pct": round(100.0 * covered / statements, 2) if statements else 0.0,
        }
