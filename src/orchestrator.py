"""Session orchestrator: sequences process-wide and per-test lifecycle events."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from playwright.async_api import BrowserContext, Page

from src.checkpoints.local_service import LocalCheckpointService
from src.checkpoints.service import ResultHandle, ServiceSession, VisualCheckpointService
from src.driver.browser import BrowserDriver
from src.errors import CheckpointMismatchError, ConfigurationError, HarnessStateError
from src.models.checkpoint import (
    BatchIdentity,
    CheckpointOptions,
    MatchLevel,
    RunSummary,
    SessionResult,
    SessionStatus,
)
from src.models.config import HarnessConfig, RunnerConfig, read_environment

logger = logging.getLogger(__name__)


@dataclass
class ProcessContext:
    """Process-scoped state shared read-only by every test."""

    config: HarnessConfig
    runner_config: RunnerConfig
    batch: BatchIdentity
    headless: bool
    driver: BrowserDriver
    service: VisualCheckpointService
    # session id -> handles, in submission order
    handles: dict[str, list[ResultHandle]] = field(default_factory=dict)
    finalized: bool = False

    def all_handles(self) -> list[ResultHandle]:
        return [h for session_handles in self.handles.values() for h in session_handles]


@dataclass
class CheckpointSession:
    """One test's browsing context, page and open checkpoint session."""

    test_name: str
    context: BrowserContext
    page: Page
    service_session: ServiceSession
    closed: bool = False

    @property
    def session_id(self) -> str:
        return self.service_session.session_id


class SessionOrchestrator:
    """Owns setup and teardown for one process and the tests it runs."""

    def __init__(
        self,
        config: HarnessConfig,
        service: VisualCheckpointService | None = None,
        driver: BrowserDriver | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.config = config
        self.service = service or LocalCheckpointService(
            config.store_dir,
            tolerance=config.visual_diff_tolerance,
            layout_tolerance=config.layout_tolerance,
        )
        self.driver = driver or BrowserDriver(
            browser_type=config.browser,
            timeout_ms=config.action_timeout_seconds * 1000,
        )
        self.environ = environ
        self._initialized = False

    def _resolve_api_key(self, env_key: str | None) -> str:
        api_key = env_key or self.config.api_key
        if api_key:
            return api_key
        logger.debug("%s not set; asking the checkpoint service for a credential",
                     self.config.api_key_env)
        api_key = self.service.resolve_api_key()
        if not api_key:
            raise ConfigurationError(
                f"{self.config.api_key_env} environment variable is not set and the "
                "checkpoint service has no stored credential."
            )
        return api_key

    async def initialize_process(self) -> ProcessContext:
        """Read credentials, build the runner config and batch, launch the browser."""
        if self._initialized:
            raise HarnessStateError("initialize_process() may only be called once per process")
        self._initialized = True

        env = read_environment(self.config.api_key_env, self.environ)
        api_key = self._resolve_api_key(env.api_key)

        runner_config = RunnerConfig.model_validate(self.config.runner.model_dump())
        batch = BatchIdentity(name=self.config.batch_name)
        logger.info("Batch %s: %s (%s)", batch.batch_id, batch.name, runner_config.runner_name)

        await self.driver.launch(headless=env.headless)
        self.service.configure(runner_config, batch, api_key, self.driver)

        return ProcessContext(
            config=self.config,
            runner_config=runner_config,
            batch=batch,
            headless=env.headless,
            driver=self.driver,
            service=self.service,
        )

    async def begin_test(
        self, ctx: ProcessContext, test_name: str, app_name: Optional[str] = None,
    ) -> CheckpointSession:
        """Open a fresh context and page, and a checkpoint session watching the page."""
        if ctx.finalized:
            raise HarnessStateError("Process already finalized")
        context = await ctx.driver.new_context(viewport=ctx.config.viewport)
        try:
            page = await ctx.driver.new_page(context)
            service_session = await ctx.service.open(
                page, app_name or ctx.config.app_name, test_name, ctx.config.viewport,
            )
        except Exception:
            await ctx.driver.close_context(context)
            raise
        ctx.handles[service_session.session_id] = []
        logger.debug("Began test '%s' (session %s)", test_name, service_session.session_id)
        return CheckpointSession(
            test_name=test_name, context=context, page=page,
            service_session=service_session,
        )

    async def submit_checkpoint(
        self,
        ctx: ProcessContext,
        session: CheckpointSession,
        name: str,
        fully: bool = True,
        match_level: MatchLevel = MatchLevel.STRICT,
    ) -> ResultHandle:
        """Send a named snapshot to the service; returns before the comparison finishes."""
        if session.closed:
            raise HarnessStateError(
                f"Checkpoint '{name}' submitted after '{session.test_name}' ended"
            )
        options = CheckpointOptions(name=name, fully=fully, match_level=match_level)
        handle = await ctx.service.check(session.service_session, options)
        ctx.handles[session.session_id].append(handle)
        logger.info("Checkpoint '%s' submitted for '%s'", name, session.test_name)
        if ctx.config.synchronous_checks:
            await handle.wait()
        return handle

    async def end_test(self, ctx: ProcessContext, session: CheckpointSession) -> SessionResult:
        """Close the checkpoint session, then the page and its context.

        In ``blocking`` close mode this waits for every checkpoint of the
        session and raises CheckpointMismatchError if any did not match.
        """
        if session.closed:
            raise HarnessStateError(f"Test '{session.test_name}' already ended")
        session.closed = True
        blocking = ctx.config.close_mode == "blocking"
        try:
            result = await ctx.service.close(session.service_session, blocking=blocking)
        finally:
            try:
                await ctx.driver.close_page(session.page)
            finally:
                await ctx.driver.close_context(session.context)

        logger.debug("Ended test '%s': %s", session.test_name, result.status.value)
        if result.status == SessionStatus.FAILED:
            raise CheckpointMismatchError(
                session.test_name,
                [f"{r.key}: {r.outcome.value} ({r.message})" for r in result.failures],
            )
        return result

    async def finalize_process(
        self, ctx: ProcessContext, timeout: float | None = None,
    ) -> RunSummary:
        """Release the browser, wait for every checkpoint, and summarize the run."""
        if ctx.finalized:
            raise HarnessStateError("finalize_process() already called")
        ctx.finalized = True
        if timeout is None:
            timeout = ctx.config.finalize_timeout_seconds

        await ctx.driver.dispose()

        logger.info("Waiting for %d checkpoint(s) to resolve...", len(ctx.all_handles()))
        summary = await ctx.service.get_all_results(timeout=timeout)
        await asyncio.to_thread(ctx.service.flush)

        logger.info("Batch %s: %d matched, %d different, %d unresolved",
                    ctx.batch.batch_id, summary.matched, summary.different, summary.unresolved)
        return summary
