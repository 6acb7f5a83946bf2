"""Checkpoint data structures: options, per-rendering results, per-checkpoint entries, run summaries."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MatchLevel(str, Enum):
    EXACT = "exact"
    STRICT = "strict"
    IGNORE_COLORS = "ignore_colors"
    LAYOUT = "layout"


class CheckpointOutcome(str, Enum):
    MATCHED = "matched"
    DIFFERENT = "different"
    UNRESOLVED = "unresolved"


class SessionStatus(str, Enum):
    PENDING = "pending"  # closed without waiting
    PASSED = "passed"
    FAILED = "failed"
    NO_CHECKPOINTS = "no_checkpoints"


class BatchIdentity(BaseModel):
    """Run label shared by every test in one process."""

    model_config = ConfigDict(frozen=True)

    name: str
    batch_id: str = Field(default_factory=lambda: f"batch_{uuid.uuid4().hex[:8]}")
    started_at: str = Field(default_factory=lambda: time.strftime("%Y-%m-%dT%H:%M:%SZ"))


class CheckpointOptions(BaseModel):
    name: str
    fully: bool = True  # full page vs. viewport only
    match_level: MatchLevel = MatchLevel.STRICT


class CheckpointResult(BaseModel):
    test_name: str
    checkpoint_name: str
    step_index: int
    render_target: str = "default"
    match_level: MatchLevel = MatchLevel.STRICT
    outcome: CheckpointOutcome
    new_baseline: bool = False
    diff_ratio: Optional[float] = None
    message: str = ""
    baseline_path: Optional[str] = None
    current_path: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.test_name} / {self.checkpoint_name} / {self.render_target}"


class CheckpointEntry(BaseModel):
    """One submitted checkpoint, with a result per render target."""

    test_name: str
    checkpoint_name: str
    step_index: int
    match_level: MatchLevel = MatchLevel.STRICT
    outcome: CheckpointOutcome
    new_baseline: bool = False
    message: str = ""
    renderings: list[CheckpointResult] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.test_name} / {self.checkpoint_name}"

    @classmethod
    def rollup(
        cls,
        test_name: str,
        checkpoint_name: str,
        step_index: int,
        renderings: list[CheckpointResult],
    ) -> "CheckpointEntry":
        """Combine per-target results: any unresolved wins, then any different."""
        outcomes = {r.outcome for r in renderings}
        if not renderings or CheckpointOutcome.UNRESOLVED in outcomes:
            outcome = CheckpointOutcome.UNRESOLVED
        elif CheckpointOutcome.DIFFERENT in outcomes:
            outcome = CheckpointOutcome.DIFFERENT
        else:
            outcome = CheckpointOutcome.MATCHED

        if outcome == CheckpointOutcome.MATCHED:
            message = renderings[0].message if len(renderings) == 1 else ""
        else:
            message = "; ".join(
                f"{r.render_target}: {r.message}" if len(renderings) > 1 else r.message
                for r in renderings if r.outcome != CheckpointOutcome.MATCHED
            ) or "No renderings produced"

        return cls(
            test_name=test_name,
            checkpoint_name=checkpoint_name,
            step_index=step_index,
            match_level=renderings[0].match_level if renderings else MatchLevel.STRICT,
            outcome=outcome,
            new_baseline=bool(renderings) and all(r.new_baseline for r in renderings),
            message=message,
            renderings=renderings,
        )


class SessionResult(BaseModel):
    test_name: str
    status: SessionStatus
    results: list[CheckpointEntry] = Field(default_factory=list)

    @property
    def failures(self) -> list[CheckpointEntry]:
        return [r for r in self.results if r.outcome != CheckpointOutcome.MATCHED]


class RunSummary(BaseModel):
    """Batch outcome, counted per checkpoint rather than per rendering."""

    batch: BatchIdentity
    entries: list[CheckpointEntry] = Field(default_factory=list)
    matched: int = 0
    different: int = 0
    unresolved: int = 0

    @classmethod
    def from_entries(cls, batch: BatchIdentity, entries: list[CheckpointEntry]) -> "RunSummary":
        return cls(
            batch=batch,
            entries=entries,
            matched=sum(1 for e in entries if e.outcome == CheckpointOutcome.MATCHED),
            different=sum(1 for e in entries if e.outcome == CheckpointOutcome.DIFFERENT),
            unresolved=sum(1 for e in entries if e.outcome == CheckpointOutcome.UNRESOLVED),
        )

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def renderings(self) -> list[CheckpointResult]:
        return [r for e in self.entries for r in e.renderings]

    @property
    def passed(self) -> bool:
        return self.different == 0 and self.unresolved == 0
