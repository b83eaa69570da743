"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for cloud_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from cloud_mock import FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at t=0."""
    return FakeClock()


@pytest.fixture(autouse=True)
def clean_converge_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables out of configuration-reading tests."""
    for var in (
        "CONVERGE_POLL_INTERVAL",
        "CONVERGE_DEFAULT_TIMEOUT",
        "CONVERGE_TAG_CHUNK_SIZE",
        "AZURE_SUBSCRIPTION_ID",
        "AZURE_MANAGED_IDENTITY_CLIENT_ID",
        "AZURE_CLIENT_SECRET",
        "AZURE_CLIENT_CERTIFICATE_PATH",
        "AZURE_CLIENT_CERTIFICATE_PASSWORD",
        "AZURE_USERNAME",
        "AZURE_PASSWORD",
    ):
        monkeypatch.delenv(var, raising=False)
