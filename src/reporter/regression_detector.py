"""Regression detection: finds checkpoints that matched last run and no longer do."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.models.checkpoint import CheckpointOutcome, RunSummary

logger = logging.getLogger(__name__)


@dataclass
class Regression:
    test_name: str
    checkpoint_name: str
    render_target: str
    previous_outcome: str
    current_outcome: str
    message: str = ""


def detect_regressions(previous: RunSummary, current: RunSummary) -> list[Regression]:
    """Compare two runs and list checkpoints that went from matched to anything else.

    Checkpoints are matched across runs by test, checkpoint name and render target.
    """
    prev_by_key = {r.key: r for r in previous.renderings}

    regressions = []
    for result in current.renderings:
        prev = prev_by_key.get(result.key)
        if (
            prev is not None
            and prev.outcome == CheckpointOutcome.MATCHED
            and result.outcome != CheckpointOutcome.MATCHED
        ):
            regressions.append(Regression(
                test_name=result.test_name,
                checkpoint_name=result.checkpoint_name,
                render_target=result.render_target,
                previous_outcome=prev.outcome.value,
                current_outcome=result.outcome.value,
                message=result.message,
            ))

    if regressions:
        logger.warning("Detected %d regressions", len(regressions))
    return regressions
