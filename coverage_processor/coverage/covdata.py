"""Binary-to-text conversion with `go tool covdata`.

The bundle's covdata/ directory is a Go coverage directory (GOCOVERDIR):
covmeta.* and covcounters.* files written by a `go build -cover` binary.
`go tool covdata textfmt` merges all counter files and writes a cover
profile with one row per basic block.
"""

import logging
from pathlib import Path

from coverage_processor.errors import CoverageConversionError
from coverage_processor.sandbox.process import run_tool, tail

logger = logging.getLogger(__name__)


def convert_to_textfmt(
    coverage_dir: Path,
    output_path: Path,
    go_bin: str = "go",
    timeout: int = 120,
) -> str:
    """Convert coverage_dir to profile text at output_path and return the text."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        go_bin, "tool", "covdata", "textfmt",
        f"-i={coverage_dir}",
        f"-o={output_path}",
    ]
    logger.info("Converting coverage data in %s", coverage_dir)

    result = run_tool(cmd, timeout=timeout)
    if result.returncode != 0:
        raise CoverageConversionError(
            f"go tool covdata textfmt failed (exit {result.returncode}): "
            f"{tail(result.stderr)}"
        )
    if not output_path.is_file():
        raise CoverageConversionError(
            f"go tool covdata textfmt produced no output at {output_path}"
        )

    return output_path.read_text(encoding="utf-8")
