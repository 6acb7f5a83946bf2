"""Baseline registry data structures: one accepted image per checkpoint rendering."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BaselineEntry(BaseModel):
    app_name: str
    test_name: str
    checkpoint_name: str
    render_target: str
    width: int
    height: int
    image_path: str  # relative path from baselines_dir to the PNG
    captured_at: str  # ISO timestamp
    batch_id: str
    image_hash: str  # SHA-256 hex digest


class VisualBaselineRegistry(BaseModel):
    account: str
    last_updated: str = ""
    baselines: dict[str, BaselineEntry] = Field(default_factory=dict)
    # key format: "{app}__{test}__{checkpoint}__{render_target}" (slugified)
