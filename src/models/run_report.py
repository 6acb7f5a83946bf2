"""Result data structures produced by the journey runner."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.models.checkpoint import RunSummary, SessionResult


class StepResult(BaseModel):
    """Result of executing a single journey step."""
    step_index: int
    action_type: str
    selector: Optional[str] = None
    description: str = ""
    status: str = "pass"  # pass, fail, skip
    error_message: Optional[str] = None


class JourneyResult(BaseModel):
    test_name: str
    result: str  # pass, fail, error
    duration_seconds: float = 0.0
    failure_reason: Optional[str] = None
    checkpoints_submitted: int = 0
    step_results: list[StepResult] = Field(default_factory=list)
    session: Optional[SessionResult] = None


class RunReport(BaseModel):
    batch_id: str
    batch_name: str
    app_name: str
    started_at: str
    completed_at: str
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    journey_results: list[JourneyResult] = Field(default_factory=list)
    summary: Optional[RunSummary] = None

    @property
    def succeeded(self) -> bool:
        return self.failed == 0 and self.errors == 0
