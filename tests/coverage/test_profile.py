"""Tests for Go cover profile parsing."""

import pytest

from coverage_processor.coverage.profile import parse_profile
from coverage_processor.coverage.types import ProfileBlock
from coverage_processor.errors import CoverageConversionError

PROFILE = """mode: set
github.com/org/app/main.go:10.13,12.2 1 1
/app/internal/handler.go:5.30,7.16 2 0
"""


class TestParseProfile:
    def test_mode_and_blocks(self) -> None:
        profile = parse_profile(PROFILE)

        assert profile.mode == "set"
        assert profile.blocks[0] == ProfileBlock(
            path="github.com/org/app/main.go",
            start_line=10,
            start_col=13,
            end_line=12,
            end_col=2,
            num_statements=1,
            count=1,
        )
        assert profile.blocks[1].path == "/app/internal/handler.go"

    def test_blank_lines_and_crlf(self) -> None:
        text = "\r\nmode: count\r\nmain.go:1.1,2.2 1 7\r\n\r\n"

        profile = parse_profile(text)

        assert profile.mode == "count"
        assert profile.blocks[0].count == 7

    def test_mode_only_profile_has_no_blocks(self) -> None:
        assert parse_profile("mode: atomic\n").blocks == ()

    def test_windows_style_path_with_colon(self) -> None:
        profile = parse_profile("mode: set\nC:/src/main.go:1.1,2.2 1 1\n")

        assert profile.blocks[0].path == "C:/src/main.go"

    def test_empty_text(self) -> None:
        with pytest.raises(CoverageConversionError, match="empty"):
            parse_profile("\n\n")

    def test_unknown_mode(self) -> None:
        with pytest.raises(CoverageConversionError, match="invalid mode"):
            parse_profile("mode: sometimes\n")

    def test_missing_mode_line(self) -> None:
        with pytest.raises(CoverageConversionError, match="invalid mode"):
            parse_profile("main.go:1.1,2.2 1 1\n")

    def test_malformed_row_reports_line_number(self) -> None:
        with pytest.raises(CoverageConversionError, match="line 3"):
            parse_profile("mode: set\nmain.go:1.1,2.2 1 1\nmain.go:garbage\n")
