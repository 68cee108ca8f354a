"""Go cover profile text parsing.

Format, as written by `go tool covdata textfmt` and `go test -coverprofile`:

    mode: set
    example.com/m/pkg/file.go:10.2,12.16 2 1
"""

import re

from coverage_processor.coverage.types import VALID_MODES, Profile, ProfileBlock
from coverage_processor.errors import CoverageConversionError

_MODE_RE = re.compile(r"^mode: (\w+)$")
_BLOCK_RE = re.compile(
    r"^(.+):([0-9]+)\.([0-9]+),([0-9]+)\.([0-9]+) ([0-9]+) ([0-9]+)$"
)


def parse_profile(text: str) -> Profile:
    """Parse profile text into blocks in file order.

    Raises:
        CoverageConversionError: Missing/unknown mode line or a malformed row.
    """
    lines = [line.rstrip("\r") for line in text.splitlines()]
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        raise CoverageConversionError("Coverage profile is empty (no mode line)")

    mode_match = _MODE_RE.match(lines[0].strip())
    if not mode_match or mode_match.group(1) not in VALID_MODES:
        raise CoverageConversionError(
            f"Coverage profile has an invalid mode line: {lines[0][:100]!r}"
        )

    blocks: list[ProfileBlock] = []
    for line_number, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        match = _BLOCK_RE.match(line)
        if not match:
            raise CoverageConversionError(
                f"Malformed coverage profile line {line_number}: {line[:200]!r}"
            )
        path, sl, sc, el, ec, stmts, count = match.groups()
        blocks.append(ProfileBlock(
            path=path,
            start_line=int(sl),
            start_col=int(sc),
            end_line=int(el),
            end_col=int(ec),
            num_statements=int(stmts),
            count=int(count),
        ))

    return Profile(mode=mode_match.group(1), blocks=tuple(blocks))
