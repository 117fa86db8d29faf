"""Shared fixtures for Spoolman adapter tests."""

from __future__ import annotations

import pytest

from spoolsync.config import ResilienceConfig, RetryPolicy, SpoolmanConfig
from tests.helpers.spoolman import FakeSpoolman

BASE_URL = "http://spoolman.test"


@pytest.fixture
def fake_spoolman() -> FakeSpoolman:
    return FakeSpoolman()


@pytest.fixture
def spoolman_config() -> SpoolmanConfig:
    return SpoolmanConfig(
        base_url=BASE_URL,
        resilience=ResilienceConfig(
            name="spoolman",
            base_url=BASE_URL,
            retry=RetryPolicy(total=0),
        ),
    )
