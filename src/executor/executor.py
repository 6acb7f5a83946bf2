"""Journey executor: runs journeys as tests through the session orchestrator."""

from __future__ import annotations

import asyncio
import logging
import time

from src.errors import CheckpointMismatchError, DriverError, HarnessError
from src.models.journey import Journey, JourneyFile
from src.models.run_report import JourneyResult, RunReport, StepResult
from src.orchestrator import ProcessContext, SessionOrchestrator

from .action_runner import run_step

logger = logging.getLogger(__name__)


class JourneyExecutor:
    """Runs every journey in a file, each as one isolated test."""

    def __init__(self, orchestrator: SessionOrchestrator):
        self.orchestrator = orchestrator
        self.config = orchestrator.config

    async def execute(self, journey_file: JourneyFile, timeout: float | None = None) -> RunReport:
        """Initialize the process, run all journeys, finalize and report.

        Configuration and browser launch errors propagate: they are fatal
        to the whole run.
        """
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ")
        start_time = time.time()
        app_name = journey_file.app_name or self.config.app_name
        total = len(journey_file.journeys)

        ctx = await self.orchestrator.initialize_process()
        try:
            semaphore = asyncio.Semaphore(self.config.max_parallel_tests)

            async def _run_one(index: int, journey: Journey) -> JourneyResult:
                async with semaphore:
                    logger.info("Running test [%d/%d]: %s", index + 1, total, journey.name)
                    result = await self._run_journey(ctx, journey, app_name)
                    logger.info("[%s] %s (%.1fs)", result.result.upper(), journey.name,
                                result.duration_seconds)
                    return result

            journey_results = list(await asyncio.gather(
                *(_run_one(i, j) for i, j in enumerate(journey_file.journeys))
            ))
        finally:
            summary = await self.orchestrator.finalize_process(ctx, timeout=timeout)

        duration = time.time() - start_time
        report = RunReport(
            batch_id=ctx.batch.batch_id,
            batch_name=ctx.batch.name,
            app_name=app_name,
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            total_tests=len(journey_results),
            passed=sum(1 for r in journey_results if r.result == "pass"),
            failed=sum(1 for r in journey_results if r.result == "fail"),
            errors=sum(1 for r in journey_results if r.result == "error"),
            duration_seconds=round(duration, 2),
            journey_results=journey_results,
            summary=summary,
        )
        logger.info("Execution complete: %d passed, %d failed, %d errors (%.1fs)",
                    report.passed, report.failed, report.errors, duration)
        return report

    async def _run_journey(
        self, ctx: ProcessContext, journey: Journey, app_name: str,
    ) -> JourneyResult:
        test_start = time.time()
        step_results: list[StepResult] = []
        checkpoints = 0
        status = "pass"
        failure_reason = None
        session_result = None

        try:
            session = await self.orchestrator.begin_test(ctx, journey.name, app_name=app_name)
        except DriverError as e:
            logger.error("Could not start '%s': %s", journey.name, e)
            return JourneyResult(
                test_name=journey.name, result="error", failure_reason=str(e),
                duration_seconds=round(time.time() - test_start, 2),
            )

        try:
            for idx, step in enumerate(journey.steps):
                if status != "pass":
                    step_results.append(StepResult(
                        step_index=idx, action_type=step.action_type,
                        selector=step.selector, description=step.description,
                        status="skip", error_message="Skipped due to earlier failure",
                    ))
                    continue
                try:
                    handle = await run_step(self.orchestrator, ctx, session, step)
                    if handle is not None:
                        checkpoints += 1
                    step_results.append(StepResult(
                        step_index=idx, action_type=step.action_type,
                        selector=step.selector, description=step.description,
                    ))
                except (DriverError, ValueError) as e:
                    logger.warning("Step %d of '%s' failed: %s", idx, journey.name, e)
                    step_results.append(StepResult(
                        step_index=idx, action_type=step.action_type,
                        selector=step.selector, description=step.description,
                        status="fail", error_message=str(e),
                    ))
                    status = "error"
                    failure_reason = str(e)
        finally:
            try:
                session_result = await self.orchestrator.end_test(ctx, session)
            except CheckpointMismatchError as e:
                if status == "pass":
                    status = "fail"
                    failure_reason = str(e)
            except HarnessError as e:
                logger.error("Teardown of '%s' failed: %s", journey.name, e)
                if status == "pass":
                    status = "error"
                    failure_reason = str(e)

        return JourneyResult(
            test_name=journey.name,
            result=status,
            duration_seconds=round(time.time() - test_start, 2),
            failure_reason=failure_reason,
            checkpoints_submitted=checkpoints,
            step_results=step_results,
            session=session_result,
        )
