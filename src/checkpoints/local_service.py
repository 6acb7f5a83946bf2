"""Local checkpoint service: keeps baselines on disk and compares snapshots in the background."""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from PIL import Image
from playwright.async_api import Page

from src.driver.browser import BrowserDriver
from src.errors import HarnessStateError
from src.models.checkpoint import (
    BatchIdentity,
    CheckpointEntry,
    CheckpointOptions,
    CheckpointOutcome,
    CheckpointResult,
    RunSummary,
    SessionResult,
    SessionStatus,
)
from src.models.config import RunnerConfig, ViewportConfig
from src.models.visual_baseline import VisualBaselineRegistry

from .baseline_registry import BaselineRegistryManager, account_id, slugify
from .comparison import compare_images
from .service import ResultHandle, ServiceSession, collect_results

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "api_key"


class LocalCheckpointService:
    """Visual checkpoint service backed by a local baseline store.

    Snapshots are taken when a checkpoint is submitted; the comparison runs
    later as an asyncio task. Comparisons for one session run in submission
    order, and at most ``RunnerConfig.concurrency`` run at once overall.
    """

    def __init__(
        self,
        store_dir: str | Path,
        tolerance: float = 0.01,
        layout_tolerance: float = 0.05,
    ):
        self.store_dir = Path(store_dir)
        self.tolerance = tolerance
        self.layout_tolerance = layout_tolerance

        self.runner_config: RunnerConfig | None = None
        self.batch: BatchIdentity | None = None
        self.registry_manager: BaselineRegistryManager | None = None
        self.registry: VisualBaselineRegistry | None = None
        self.driver: BrowserDriver | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._registry_lock = threading.Lock()
        self._sessions: list[ServiceSession] = []

    def resolve_api_key(self) -> str | None:
        """Read a credential saved in the store directory."""
        path = self.store_dir / CREDENTIALS_FILE
        if not path.exists():
            return None
        key = path.read_text().strip()
        return key or None

    def configure(
        self,
        runner_config: RunnerConfig,
        batch: BatchIdentity,
        api_key: str,
        driver: BrowserDriver,
    ) -> None:
        self.runner_config = runner_config
        self.batch = batch
        self.driver = driver
        self._semaphore = asyncio.Semaphore(runner_config.concurrency)
        self.registry_manager = BaselineRegistryManager(self.store_dir, account_id(api_key))
        self.registry = self.registry_manager.load()
        logger.info("Local checkpoint service ready: %s, concurrency %d, %d known baselines",
                    runner_config.runner_name, runner_config.concurrency,
                    len(self.registry.baselines))

    def _require_configured(self) -> None:
        if self.runner_config is None or self.batch is None:
            raise HarnessStateError("Checkpoint service used before configure()")

    async def open(
        self, page: Page, app_name: str, test_name: str, viewport: ViewportConfig,
    ) -> ServiceSession:
        self._require_configured()
        await self.driver.set_viewport(page, viewport)
        session = ServiceSession(
            page=page, app_name=app_name, test_name=test_name,
            viewport=viewport, batch=self.batch,
        )
        self._sessions.append(session)
        logger.debug("Opened checkpoint session %s for '%s' at %s",
                     session.session_id, test_name, viewport)
        return session

    def render_targets(self, session: ServiceSession) -> list[tuple[str, Optional[ViewportConfig]]]:
        """Label and viewport of each rendering a checkpoint produces.

        ``None`` means the session's own viewport, left as is.
        """
        if self.runner_config.mode == "classic":
            return [(f"local {session.viewport}", None)]
        targets: list[tuple[str, Optional[ViewportConfig]]] = [
            (f"{browser} {viewport}", viewport)
            for browser, viewport in self.runner_config.browsers.items()
        ]
        for device, orientation in self.runner_config.devices.items():
            targets.append((f"{device} {orientation}", self.driver.device_viewport(device, orientation)))
        return targets or [(f"local {session.viewport}", None)]

    async def check(self, session: ServiceSession, options: CheckpointOptions) -> ResultHandle:
        """Capture the page now and queue its comparison. Returns immediately."""
        self._require_configured()
        if session.closed:
            raise HarnessStateError(
                f"Checkpoint '{options.name}' submitted after session for "
                f"'{session.test_name}' was closed"
            )

        step_index = len(session.handles)
        captures: list[tuple[str, Path]] = []
        capture_error: str | None = None
        try:
            captures = await self._capture(session, options, step_index)
        except Exception as e:
            logger.warning("Capture failed for checkpoint '%s' in '%s': %s",
                           options.name, session.test_name, e)
            capture_error = str(e)

        task = asyncio.create_task(
            self._resolve(session, options, step_index, captures, capture_error, session.tail)
        )
        session.tail = task
        handle = ResultHandle(task, session.test_name, options.name, step_index)
        session.handles.append(handle)
        logger.debug("Queued checkpoint %d '%s' for '%s' (%d rendering(s))",
                     step_index, options.name, session.test_name, len(captures))
        return handle

    async def _capture(
        self, session: ServiceSession, options: CheckpointOptions, step_index: int,
    ) -> list[tuple[str, Path]]:
        out_dir = self.store_dir / "runs" / self.batch.batch_id / session.session_id
        out_dir.mkdir(parents=True, exist_ok=True)
        page = session.page

        captures = []
        resized = False
        try:
            for label, viewport in self.render_targets(session):
                if viewport is not None:
                    await self.driver.set_viewport(page, viewport)
                    resized = True
                path = out_dir / f"{step_index:03d}_{slugify(options.name)}__{slugify(label)}.png"
                data = await page.screenshot(full_page=options.fully)
                path.write_bytes(data)
                captures.append((label, path))
        finally:
            if resized:
                await self.driver.set_viewport(page, session.viewport)
        return captures

    async def _resolve(
        self,
        session: ServiceSession,
        options: CheckpointOptions,
        step_index: int,
        captures: list[tuple[str, Path]],
        capture_error: str | None,
        previous: asyncio.Task | None,
    ) -> list[CheckpointResult]:
        if previous is not None:
            await asyncio.wait([previous])

        if capture_error is not None:
            return [CheckpointResult(
                test_name=session.test_name, checkpoint_name=options.name,
                step_index=step_index, match_level=options.match_level,
                outcome=CheckpointOutcome.UNRESOLVED,
                message=f"Snapshot capture failed: {capture_error}",
            )]

        async with self._semaphore:
            results = []
            for label, path in captures:
                results.append(await asyncio.to_thread(
                    self._compare_one, session, options, step_index, label, path,
                ))
        return results

    def _compare_one(
        self,
        session: ServiceSession,
        options: CheckpointOptions,
        step_index: int,
        render_target: str,
        current_path: Path,
    ) -> CheckpointResult:
        result = CheckpointResult(
            test_name=session.test_name, checkpoint_name=options.name,
            step_index=step_index, render_target=render_target,
            match_level=options.match_level, outcome=CheckpointOutcome.UNRESOLVED,
            current_path=str(current_path),
        )
        try:
            key = self.registry_manager.baseline_key(
                session.app_name, session.test_name, options.name, render_target)
            with self._registry_lock:
                entry = self.registry_manager.get_baseline(self.registry, key)
                if entry is None:
                    with Image.open(current_path) as img:
                        size = img.size
                    entry = self.registry_manager.store_baseline(
                        self.registry, key, session.app_name, session.test_name,
                        options.name, render_target, size, current_path,
                        self.batch.batch_id,
                    )
                    result.outcome = CheckpointOutcome.MATCHED
                    result.new_baseline = True
                    result.message = "New baseline stored"
                    result.baseline_path = str(self.registry_manager.get_baseline_image_path(entry))
                    return result

            baseline_path = self.registry_manager.get_baseline_image_path(entry)
            result.baseline_path = str(baseline_path)
            comparison = compare_images(
                baseline_path, current_path, options.match_level,
                self.tolerance, self.layout_tolerance,
            )
            result.outcome = (
                CheckpointOutcome.MATCHED if comparison.matched else CheckpointOutcome.DIFFERENT
            )
            result.diff_ratio = comparison.diff_ratio
            result.message = comparison.message
        except Exception as e:
            logger.warning("Comparison failed for %s: %s", result.key, e)
            result.outcome = CheckpointOutcome.UNRESOLVED
            result.message = f"Comparison error: {e}"
        return result

    async def close(self, session: ServiceSession, blocking: bool) -> SessionResult:
        if session.closed:
            raise HarnessStateError(f"Session for '{session.test_name}' already closed")
        session.closed = True

        if not blocking:
            logger.debug("Closed session for '%s' without waiting (%d checkpoint(s) pending)",
                         session.test_name, len(session.handles))
            return SessionResult(test_name=session.test_name, status=SessionStatus.PENDING)

        if not session.handles:
            return SessionResult(test_name=session.test_name, status=SessionStatus.NO_CHECKPOINTS)

        entries = await collect_results(session.handles)
        passed = all(e.outcome == CheckpointOutcome.MATCHED for e in entries)
        return SessionResult(
            test_name=session.test_name,
            status=SessionStatus.PASSED if passed else SessionStatus.FAILED,
            results=entries,
        )

    async def get_all_results(self, timeout: float | None = None) -> RunSummary:
        """Wait for every checkpoint this service has accepted and summarize them.

        One entry per submitted checkpoint, grouped by session in open order.
        """
        self._require_configured()
        handles = [h for s in self._sessions for h in s.handles]
        entries: list[CheckpointEntry] = await collect_results(handles, timeout=timeout)
        return RunSummary.from_entries(self.batch, entries)

    def flush(self) -> None:
        """Persist the baseline registry."""
        if self.registry_manager is not None and self.registry is not None:
            with self._registry_lock:
                self.registry_manager.save(self.registry)
