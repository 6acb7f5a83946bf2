"""Visual checkpoint service interface, sessions and deferred result handles."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from playwright.async_api import Page

from src.driver.browser import BrowserDriver
from src.models.checkpoint import (
    BatchIdentity,
    CheckpointEntry,
    CheckpointOptions,
    CheckpointOutcome,
    CheckpointResult,
    RunSummary,
    SessionResult,
)
from src.models.config import RunnerConfig, ViewportConfig

logger = logging.getLogger(__name__)


class ResultHandle:
    """Deferred outcome of one checkpoint submission.

    Resolves to one CheckpointResult per render target. Errors raised while
    comparing are already folded into ``unresolved`` results by the service;
    a handle that is cancelled or never finishes also reads as unresolved.
    """

    def __init__(
        self,
        task: asyncio.Task,
        test_name: str,
        checkpoint_name: str,
        step_index: int,
    ):
        self.task = task
        self.test_name = test_name
        self.checkpoint_name = checkpoint_name
        self.step_index = step_index

    def done(self) -> bool:
        return self.task.done()

    async def wait(self, timeout: float | None = None) -> list[CheckpointResult]:
        """Block until the comparison finishes (or the timeout passes)."""
        await asyncio.wait([self.task], timeout=timeout)
        return self.results()

    def results(self) -> list[CheckpointResult]:
        if not self.task.done():
            return [self._unresolved("Result still pending")]
        if self.task.cancelled():
            return [self._unresolved("Comparison cancelled before completion")]
        exc = self.task.exception()
        if exc is not None:
            return [self._unresolved(f"Comparison failed: {exc}")]
        return self.task.result()

    def entry(self) -> CheckpointEntry:
        """The checkpoint's results rolled up into one entry."""
        return CheckpointEntry.rollup(
            self.test_name, self.checkpoint_name, self.step_index, self.results(),
        )

    def _unresolved(self, message: str) -> CheckpointResult:
        return CheckpointResult(
            test_name=self.test_name,
            checkpoint_name=self.checkpoint_name,
            step_index=self.step_index,
            outcome=CheckpointOutcome.UNRESOLVED,
            message=message,
        )


async def collect_results(
    handles: list[ResultHandle], timeout: float | None = None,
) -> list[CheckpointEntry]:
    """Wait for handles and return one entry per handle, in submission order.

    With a timeout, handles still running at the deadline are cancelled and
    reported as unresolved.
    """
    tasks = [h.task for h in handles]
    if tasks:
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("%d checkpoint(s) still pending after %ss; cancelling",
                           len(pending), timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    return [handle.entry() for handle in handles]


@dataclass
class ServiceSession:
    """One open checkpoint session bound to a page and a test."""

    page: Page
    app_name: str
    test_name: str
    viewport: ViewportConfig
    batch: BatchIdentity
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    handles: list[ResultHandle] = field(default_factory=list)
    closed: bool = False
    # Most recent comparison task; the next one waits on it to keep order
    tail: Optional[asyncio.Task] = None


class VisualCheckpointService(Protocol):
    """What the orchestrator needs from a visual checkpoint backend."""

    def resolve_api_key(self) -> str | None:
        """Return a credential from the service's own ambient source, if any."""
        ...

    def configure(
        self,
        runner_config: RunnerConfig,
        batch: BatchIdentity,
        api_key: str,
        driver: BrowserDriver,
    ) -> None:
        """Prepare for a run; viewport changes and device lookups go through ``driver``."""
        ...

    async def open(
        self, page: Page, app_name: str, test_name: str, viewport: ViewportConfig,
    ) -> ServiceSession:
        ...

    async def check(self, session: ServiceSession, options: CheckpointOptions) -> ResultHandle:
        ...

    async def close(self, session: ServiceSession, blocking: bool) -> SessionResult:
        ...

    async def get_all_results(self, timeout: float | None = None) -> RunSummary:
        ...

    def flush(self) -> None:
        ...
