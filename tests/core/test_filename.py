"""Unit tests for output filename handling."""

from __future__ import annotations

from pathlib import Path

from yt_audio_queue.core.filename import (
    MAX_TITLE_LENGTH,
    TITLE_FIELD,
    output_template,
    safe_title,
)


class TestSafeTitle:
    """Tests for safe_title() function."""

    def test_simple_title(self) -> None:
        """Test that a plain title is unchanged."""
        assert safe_title("My Video Title") == "My Video Title"

    def test_invalid_characters(self) -> None:
        """Test that filesystem-invalid characters are removed."""
        assert safe_title('Video: "Test" <file>') == "Video Test file"
        assert safe_title("path/to\\file") == "pathtofile"
        assert safe_title("file*name?test|") == "filenametest"

    def test_template_characters(self) -> None:
        """Test that yt-dlp template syntax cannot leak through."""
        assert safe_title("100% {live}") == "100 live"
        assert safe_title("%(id)s") == "(id)s"

    def test_whitespace_and_dots(self) -> None:
        """Test collapsing whitespace and trimming dots."""
        assert safe_title("  Video    Title  ") == "Video Title"
        assert safe_title("..Title..") == "Title"

    def test_control_characters(self) -> None:
        """Test that control characters are dropped."""
        assert safe_title("Bad\x00Title\x7f") == "BadTitle"

    def test_empty(self) -> None:
        """Test that nothing usable gives an empty string."""
        assert safe_title("") == ""
        assert safe_title("   ") == ""
        assert safe_title("???") == ""

    def test_truncation(self) -> None:
        """Test that long titles are cut to the maximum length."""
        result = safe_title("a" * 150)
        assert len(result) == MAX_TITLE_LENGTH

    def test_unicode_preserved(self) -> None:
        """Test that non-ASCII titles survive."""
        assert safe_title("日本語のタイトル") == "日本語のタイトル"


class TestOutputTemplate:
    """Tests for output_template() function."""

    def test_known_title(self, temp_dir: Path) -> None:
        """Test that a known title is baked into the filename."""
        assert output_template(temp_dir, "My Song") == str(temp_dir / "My Song.%(ext)s")

    def test_unknown_title(self, temp_dir: Path) -> None:
        """Test that yt-dlp fills in the title when none is known."""
        assert output_template(temp_dir) == str(temp_dir / f"{TITLE_FIELD}.%(ext)s")

    def test_unusable_title(self, temp_dir: Path) -> None:
        """Test fallback when the title cleans to nothing."""
        assert output_template(temp_dir, "///") == str(temp_dir / f"{TITLE_FIELD}.%(ext)s")
