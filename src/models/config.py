"""Configuration models for the visual checkpoint harness."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.errors import ConfigurationError

DEFAULT_API_KEY_ENV = "VISUAL_CHECKPOINT_API_KEY"
HEADLESS_ENV = "HEADLESS"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class ViewportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1200, gt=0)
    height: int = Field(default=600, gt=0)

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class RunnerConfig(BaseModel):
    """Runner settings shared by every test in a process. Frozen once built."""

    model_config = ConfigDict(frozen=True)

    # Number of visual checkpoints compared in parallel
    concurrency: int = Field(default=5, ge=1)
    mode: Literal["classic", "grid"] = "grid"
    # browser name -> viewport rendered for it in grid mode
    browsers: dict[str, ViewportConfig] = Field(
        default_factory=lambda: {
            "chrome": ViewportConfig(width=800, height=600),
            "firefox": ViewportConfig(width=1600, height=1200),
            "safari": ViewportConfig(width=1024, height=768),
        }
    )
    # device name (Playwright device registry) -> orientation
    devices: dict[str, Literal["portrait", "landscape"]] = Field(
        default_factory=lambda: {
            "Pixel 2": "portrait",
            "Nexus 10": "landscape",
        }
    )

    @property
    def runner_name(self) -> str:
        return "Ultrafast Grid" if self.mode == "grid" else "Classic runner"


class HarnessConfig(BaseModel):
    # Application under test; shared by all tests so baselines line up
    app_name: str = "ACME Bank Web App"
    batch_name: str = ""

    # Credentials
    api_key: Optional[str] = None
    api_key_env: str = DEFAULT_API_KEY_ENV

    # Browser
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    action_timeout_seconds: int = 10

    # Runner
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    max_parallel_tests: int = Field(default=1, ge=1)

    # Checkpoint lifecycle
    close_mode: Literal["async", "blocking"] = "async"
    synchronous_checks: bool = False
    finalize_timeout_seconds: Optional[float] = None
    fail_on_differences: bool = True

    # Local baseline service
    store_dir: str = "./.visual-checkpoints"
    visual_diff_tolerance: float = Field(default=0.01, ge=0.0, le=1.0)
    layout_tolerance: float = Field(default=0.05, ge=0.0, le=1.0)

    # Reporting
    report_formats: list[str] = Field(default_factory=lambda: ["json"])
    report_output_dir: str = "./visual-reports"

    @field_validator("api_key", mode="before")
    @classmethod
    def resolve_env_api_key(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    def model_post_init(self, __context) -> None:
        if not self.batch_name:
            self.batch_name = f"Example: Playwright Python with the {self.runner.runner_name}"

    @classmethod
    def load(cls, path: str | Path) -> "HarnessConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(exclude={"api_key"}), f, indent=2)


class EnvironmentSettings(BaseModel):
    """Test control inputs read once per process."""

    api_key: Optional[str] = None
    headless: bool = True


def parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false), got {raw!r}")


def read_environment(
    api_key_env: str = DEFAULT_API_KEY_ENV,
    environ: Mapping[str, str] | None = None,
) -> EnvironmentSettings:
    """Read the credential and headless flag from the environment.

    A missing credential is not an error here; the orchestrator decides
    whether another source can supply it.
    """
    env = os.environ if environ is None else environ
    api_key = env.get(api_key_env) or None
    raw_headless = env.get(HEADLESS_ENV)
    headless = True if raw_headless is None or not raw_headless.strip() else parse_bool(
        HEADLESS_ENV, raw_headless
    )
    return EnvironmentSettings(api_key=api_key, headless=headless)
