"""
Pytest configuration and fixtures for PeerChat tests.

Created by orpheus497

Provides common fixtures and test utilities for unit and integration tests.
"""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List

import pytest

from peerchat.memory import MemoryHub


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="peerchat_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def hub() -> MemoryHub:
    """
    Provide a fresh in-memory hub so peers of one test never see another's.

    Returns:
        MemoryHub: Empty hub
    """
    return MemoryHub()


@pytest.fixture
def sent_frames() -> List[dict]:
    """
    Provide a list that records frames passed to a fake send function.

    Returns:
        list: Initially empty list of frames
    """
    return []


@pytest.fixture
def wait_until() -> Callable:
    """
    Provide an async helper that polls a predicate until it holds.

    Returns:
        Coroutine function wait_until(predicate, timeout=2.0)
    """

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait_until


@pytest.fixture
def sample_config_toml() -> str:
    """
    Provide a sample configuration file body.

    Returns:
        str: TOML text
    """
    return (
        "[identity]\n"
        'display_name = "alice"\n'
        "\n"
        "[network]\n"
        "port = 6000\n"
        "\n"
        "[presence]\n"
        "typing_timeout = 1.5\n"
    )


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "network: mark test as using loopback sockets")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        # Add unit marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Session scenarios run two peers end to end
        if "test_session" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
