"""Baseline registry: stores accepted checkpoint images and their JSON index."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import shutil
import time
from pathlib import Path

from src.models.visual_baseline import BaselineEntry, VisualBaselineRegistry

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-") or "unnamed"


def account_id(api_key: str) -> str:
    """Short stable identifier for a credential; the key itself is never stored."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:12]


class BaselineRegistryManager:
    """Manages baseline images for one account and their JSON registry."""

    def __init__(self, store_dir: Path, account: str):
        self.account = account
        self.baselines_dir = store_dir / "baselines" / account
        self.registry_path = self.baselines_dir / "registry.json"

    def load(self) -> VisualBaselineRegistry:
        """Load registry from disk, or create a new one."""
        if self.registry_path.exists():
            try:
                with open(self.registry_path) as f:
                    data = json.load(f)
                return VisualBaselineRegistry(**data)
            except Exception as e:
                logger.warning("Failed to load baseline registry: %s. Creating new.", e)
        return VisualBaselineRegistry(account=self.account)

    def save(self, registry: VisualBaselineRegistry) -> None:
        """Persist registry to disk."""
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        registry.last_updated = time.strftime("%Y-%m-%dT%H:%M:%SZ")
        with open(self.registry_path, "w") as f:
            json.dump(registry.model_dump(), f, indent=2)
        logger.debug("Saved baseline registry to %s", self.registry_path)

    def reset(self) -> int:
        """Delete every baseline for this account. Returns how many were removed."""
        if not self.baselines_dir.exists():
            return 0
        count = len(self.load().baselines)
        shutil.rmtree(self.baselines_dir)
        logger.info("Removed %d baselines from %s", count, self.baselines_dir)
        return count

    @staticmethod
    def baseline_key(app_name: str, test_name: str, checkpoint_name: str, render_target: str) -> str:
        return "__".join(slugify(p) for p in (app_name, test_name, checkpoint_name, render_target))

    def get_baseline(self, registry: VisualBaselineRegistry, key: str) -> BaselineEntry | None:
        """Look up an existing baseline, ignoring entries whose image is gone."""
        entry = registry.baselines.get(key)
        if entry is None:
            return None
        abs_path = self.baselines_dir / entry.image_path
        if not abs_path.exists():
            logger.warning("Baseline image missing for %s: %s", key, abs_path)
            return None
        return entry

    def get_baseline_image_path(self, entry: BaselineEntry) -> Path:
        return self.baselines_dir / entry.image_path

    def store_baseline(
        self,
        registry: VisualBaselineRegistry,
        key: str,
        app_name: str,
        test_name: str,
        checkpoint_name: str,
        render_target: str,
        size: tuple[int, int],
        source_image_path: Path,
        batch_id: str,
    ) -> BaselineEntry:
        """Copy a snapshot into the baselines directory and register it."""
        dest = self.baselines_dir / "images" / f"{key}.png"
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_image_path, dest)

        entry = BaselineEntry(
            app_name=app_name,
            test_name=test_name,
            checkpoint_name=checkpoint_name,
            render_target=render_target,
            width=size[0],
            height=size[1],
            image_path=str(dest.relative_to(self.baselines_dir)),
            captured_at=time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            batch_id=batch_id,
            image_hash=hashlib.sha256(dest.read_bytes()).hexdigest(),
        )
        registry.baselines[key] = entry
        logger.info("Stored new baseline for %s (%dx%d)", key, size[0], size[1])
        return entry
