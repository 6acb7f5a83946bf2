"""Action runner: translates journey steps into driver and checkpoint calls."""

from __future__ import annotations

import logging
import os
import re
from typing import Mapping

from src.checkpoints.service import ResultHandle
from src.models.journey import Step
from src.orchestrator import CheckpointSession, ProcessContext, SessionOrchestrator

logger = logging.getLogger(__name__)

# Values may pull secrets from the environment: {{env:DEMO_PASSWORD}}
_ENV_VAR_RE = re.compile(r"\{\{env:(\w+)\}\}")


def resolve_env_vars(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace ``{{env:NAME}}`` tokens with environment values."""
    env = os.environ if environ is None else environ

    def _replacer(match: re.Match) -> str:
        name = match.group(1)
        if name in env:
            return env[name]
        logger.warning("Environment variable not set: {{env:%s}}", name)
        return match.group(0)

    return _ENV_VAR_RE.sub(_replacer, value)


async def run_step(
    orchestrator: SessionOrchestrator,
    ctx: ProcessContext,
    session: CheckpointSession,
    step: Step,
) -> ResultHandle | None:
    """Execute one step. Returns the handle for checkpoint steps.

    Driver failures propagate as DriverError.
    """
    driver = ctx.driver
    page = session.page
    value = resolve_env_vars(step.value) if step.value else step.value

    logger.debug("Running step: %s | selector=%s | %s",
                 step.action_type, step.selector, step.description or "")

    match step.action_type:
        case "navigate":
            url = value or step.selector or ""
            if not url:
                raise ValueError("navigate step requires a url value")
            await driver.goto(page, url)

        case "fill":
            if not step.selector:
                raise ValueError("fill step requires a selector")
            await driver.fill(page, step.selector, value or "")

        case "click":
            if not step.selector:
                raise ValueError("click step requires a selector")
            await driver.click(page, step.selector)

        case "press":
            await driver.press(page, value or "Enter", selector=step.selector)

        case "wait":
            await driver.wait(page, selector=step.selector, ms=int(value) if value else 1000)

        case "checkpoint":
            name = step.name or step.description or f"Checkpoint {len(session.service_session.handles) + 1}"
            return await orchestrator.submit_checkpoint(
                ctx, session, name, fully=step.fully, match_level=step.match_level,
            )

    return None
