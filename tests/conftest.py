"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from src.checkpoints.local_service import LocalCheckpointService
from src.models.checkpoint import BatchIdentity
from src.models.config import HarnessConfig, RunnerConfig, ViewportConfig
from src.models.journey import Journey, JourneyFile, Step
from src.orchestrator import SessionOrchestrator


# ============================================================================
# Image helpers
# ============================================================================


def make_png(color=(255, 255, 255), size=(40, 30)) -> bytes:
    """Encode a solid-color PNG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def write_png(path: Path, color=(255, 255, 255), size=(40, 30)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_png(color, size))
    return path


@pytest.fixture
def png():
    """Factory for solid-color PNG bytes."""
    return make_png


@pytest.fixture
def png_file():
    """Factory that writes a solid-color PNG to a path."""
    return write_png


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def classic_runner() -> RunnerConfig:
    return RunnerConfig(mode="classic", concurrency=2)


@pytest.fixture
def harness_config(tmp_path: Path, classic_runner: RunnerConfig) -> HarnessConfig:
    """Config that keeps all files under tmp_path."""
    return HarnessConfig(
        app_name="ACME Bank Web App",
        api_key="test-key",
        viewport=ViewportConfig(width=1200, height=600),
        runner=classic_runner,
        store_dir=str(tmp_path / "store"),
        report_output_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def batch() -> BatchIdentity:
    return BatchIdentity(name="Test batch")


# ============================================================================
# Playwright Fixtures
# ============================================================================


def make_mock_page(screenshot: bytes | None = None):
    """AsyncMock page whose screenshot() returns PNG bytes."""
    page = AsyncMock()
    page.url = "https://demo.applitools.com/"
    page.on = Mock()
    page.set_default_timeout = Mock()
    page.screenshot = AsyncMock(return_value=screenshot or make_png())
    return page


@pytest.fixture
def mock_page():
    return make_mock_page()


@pytest.fixture
def mock_driver():
    """Driver double: every new_context() yields a distinct context and page."""
    driver = AsyncMock()
    driver.contexts = []

    async def _new_context(viewport=None):
        ctx = AsyncMock()
        ctx.page = make_mock_page()
        driver.contexts.append(ctx)
        return ctx

    async def _new_page(context):
        return context.page

    driver.new_context = AsyncMock(side_effect=_new_context)
    driver.new_page = AsyncMock(side_effect=_new_page)
    driver.device_viewport = Mock(return_value=ViewportConfig(width=411, height=731))
    return driver


@pytest.fixture
def local_service(harness_config: HarnessConfig) -> LocalCheckpointService:
    return LocalCheckpointService(harness_config.store_dir)


@pytest.fixture
def orchestrator(harness_config, local_service, mock_driver) -> SessionOrchestrator:
    return SessionOrchestrator(
        harness_config, service=local_service, driver=mock_driver, environ={},
    )


# ============================================================================
# Journey Fixtures
# ============================================================================


@pytest.fixture
def acme_journey() -> Journey:
    return Journey(
        name="Log into bank account",
        steps=[
            Step(action_type="navigate", value="https://demo.applitools.com"),
            Step(action_type="checkpoint", name="Login page"),
            Step(action_type="fill", selector="#username", value="andy"),
            Step(action_type="fill", selector="#password", value="i<3pandas"),
            Step(action_type="click", selector="#log-in"),
            Step(action_type="checkpoint", name="Main page", match_level="layout"),
        ],
    )


@pytest.fixture
def acme_journey_file(acme_journey: Journey) -> JourneyFile:
    return JourneyFile(app_name="ACME Bank Web App", journeys=[acme_journey])
