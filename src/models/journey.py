"""Journey data structures: the declarative tests the runner executes."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.models.checkpoint import MatchLevel


class Step(BaseModel):
    action_type: Literal["navigate", "fill", "click", "press", "wait", "checkpoint"]
    selector: Optional[str] = None
    value: Optional[str] = None
    # checkpoint steps only
    name: Optional[str] = None
    fully: bool = True
    match_level: MatchLevel = MatchLevel.STRICT
    description: str = ""


class Journey(BaseModel):
    name: str
    description: str = ""
    steps: list[Step] = Field(default_factory=list)


class JourneyFile(BaseModel):
    app_name: Optional[str] = None  # overrides HarnessConfig.app_name when set
    journeys: list[Journey] = Field(default_factory=list)

    @classmethod
    def load(cls, path: str | Path) -> "JourneyFile":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Journey file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)
