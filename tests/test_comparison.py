"""Tests for snapshot comparison at each match level."""

from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from src.checkpoints.comparison import compare_images
from src.models.checkpoint import MatchLevel


def _compare(baseline: Path, current: Path, level: MatchLevel, tolerance=0.01, layout=0.05):
    return compare_images(baseline, current, level, tolerance, layout)


class TestExactMatch:

    def test_identical_files_match(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", (10, 20, 30))
        b = png_file(tmp_path / "b.png", (10, 20, 30))
        result = _compare(a, b, MatchLevel.EXACT)
        assert result.matched
        assert result.diff_ratio == 0.0

    def test_any_change_differs(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", (10, 20, 30))
        b = png_file(tmp_path / "b.png", (11, 20, 30))
        result = _compare(a, b, MatchLevel.EXACT)
        assert not result.matched


class TestStrictMatch:

    def test_small_channel_noise_ignored(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", (100, 100, 100))
        b = png_file(tmp_path / "b.png", (120, 100, 100))
        result = _compare(a, b, MatchLevel.STRICT, tolerance=0.0)
        assert result.matched
        assert result.diff_ratio == 0.0

    def test_large_change_differs(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", (255, 255, 255))
        b = png_file(tmp_path / "b.png", (0, 0, 0))
        result = _compare(a, b, MatchLevel.STRICT)
        assert not result.matched
        assert result.diff_ratio == pytest.approx(1.0)
        assert "100.00%" in result.message

    def test_change_within_tolerance(self, tmp_path):
        base = Image.new("RGB", (10, 10), (255, 255, 255))
        changed = base.copy()
        changed.putpixel((0, 0), (0, 0, 0))  # 1 of 100 pixels
        base.save(tmp_path / "a.png")
        changed.save(tmp_path / "b.png")

        assert _compare(tmp_path / "a.png", tmp_path / "b.png", MatchLevel.STRICT, tolerance=0.01).matched
        assert not _compare(tmp_path / "a.png", tmp_path / "b.png", MatchLevel.STRICT, tolerance=0.0).matched

    def test_size_change_differs(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", size=(40, 30))
        b = png_file(tmp_path / "b.png", size=(40, 60))
        result = _compare(a, b, MatchLevel.STRICT)
        assert not result.matched
        assert result.diff_ratio is None
        assert "Size changed" in result.message


class TestIgnoreColors:

    def test_same_brightness_different_hue_matches(self, tmp_path, png_file):
        # Equal luminance in grayscale after conversion
        a = png_file(tmp_path / "a.png", (100, 100, 100))
        b = png_file(tmp_path / "b.png", (100, 100, 100))
        assert _compare(a, b, MatchLevel.IGNORE_COLORS).matched

    def test_strict_catches_color_change_ignore_colors_does_not(self, tmp_path):
        # Red and a gray of similar luminance
        Image.new("RGB", (10, 10), (200, 60, 60)).save(tmp_path / "a.png")
        Image.new("RGB", (10, 10), (101, 101, 101)).save(tmp_path / "b.png")
        assert not _compare(tmp_path / "a.png", tmp_path / "b.png", MatchLevel.STRICT).matched
        assert _compare(tmp_path / "a.png", tmp_path / "b.png", MatchLevel.IGNORE_COLORS).matched


class TestLayoutMatch:

    def test_uniform_recolor_matches(self, tmp_path, png_file):
        a = png_file(tmp_path / "a.png", (255, 255, 255))
        b = png_file(tmp_path / "b.png", (0, 0, 0))
        assert _compare(a, b, MatchLevel.LAYOUT).matched

    def test_moved_block_differs(self, tmp_path):
        for name, x in (("a.png", 2), ("b.png", 22)):
            img = Image.new("RGB", (40, 40), (255, 255, 255))
            ImageDraw.Draw(img).rectangle([x, 2, x + 14, 36], fill=(0, 0, 0))
            img.save(tmp_path / name)
        result = _compare(tmp_path / "a.png", tmp_path / "b.png", MatchLevel.LAYOUT, layout=0.01)
        assert not result.matched
        assert "layout" in result.message
