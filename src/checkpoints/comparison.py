"""Snapshot comparison against a baseline using Pillow image operations."""

from __future__ import annotations

import functools
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageChops, ImageFilter

from src.models.checkpoint import MatchLevel

logger = logging.getLogger(__name__)

# Per-channel difference treated as a real change; smaller deltas are
# anti-aliasing and font rendering noise.
PIXEL_THRESHOLD = 40


@dataclass
class ComparisonResult:
    matched: bool
    diff_ratio: Optional[float]
    message: str


def _prepare(image: Image.Image, match_level: MatchLevel) -> Image.Image:
    if match_level == MatchLevel.IGNORE_COLORS:
        return image.convert("L")
    if match_level == MatchLevel.LAYOUT:
        edges = image.convert("L").filter(ImageFilter.FIND_EDGES)
        width, height = edges.size
        # 3x3 filters leave the outermost pixels unfiltered
        if width > 2 and height > 2:
            edges = edges.crop((1, 1, width - 1, height - 1))
        return edges
    return image.convert("RGB")


def _mismatch_ratio(baseline: Image.Image, current: Image.Image) -> float:
    width, height = baseline.size
    total = width * height
    if total == 0:
        return 0.0
    diff = ImageChops.difference(baseline, current)
    mask = diff.point(lambda p: 255 if p > PIXEL_THRESHOLD else 0)
    if mask.mode != "L":
        mask = functools.reduce(ImageChops.lighter, mask.split())
    return mask.histogram()[255] / total


def compare_images(
    baseline_path: Path,
    current_path: Path,
    match_level: MatchLevel,
    tolerance: float,
    layout_tolerance: float,
) -> ComparisonResult:
    """Compare a snapshot with its baseline at the requested match level."""
    if match_level == MatchLevel.EXACT:
        same = (
            hashlib.sha256(baseline_path.read_bytes()).digest()
            == hashlib.sha256(current_path.read_bytes()).digest()
        )
        return ComparisonResult(
            same, 0.0 if same else None,
            "Identical to baseline" if same else "Image differs from baseline",
        )

    with Image.open(baseline_path) as baseline, Image.open(current_path) as current:
        if baseline.size != current.size:
            return ComparisonResult(
                False, None,
                f"Size changed: baseline {baseline.size[0]}x{baseline.size[1]}, "
                f"current {current.size[0]}x{current.size[1]}",
            )
        ratio = _mismatch_ratio(_prepare(baseline, match_level), _prepare(current, match_level))

    limit = layout_tolerance if match_level == MatchLevel.LAYOUT else tolerance
    matched = ratio <= limit
    logger.debug("Compared %s (%s): %.4f mismatch, limit %.4f",
                 current_path.name, match_level.value, ratio, limit)
    return ComparisonResult(
        matched, ratio,
        f"Pixel diff ({match_level.value}): {ratio:.2%} (tolerance: {limit:.2%})",
    )
