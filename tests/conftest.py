from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from intune_assignments.config.settings import ENV_PREFIX, Settings
from intune_assignments.graph.rate_limiter import RateLimiter, RateLimitPolicy
from tests.factories import FakeGroupSource, FakeObjectSource, make_settings


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep a developer's INTUNE_ASSIGNMENTS_* variables out of test runs."""

    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(
        output_dir=tmp_path / "exports",
        token_cache_path=tmp_path / "cache.bin",
    )


@pytest.fixture
def group_source() -> FakeGroupSource:
    return FakeGroupSource({"g1": "Finance", "g2": "Sales", "g3": "Engineering"})


@pytest.fixture
def object_source() -> FakeObjectSource:
    return FakeObjectSource()


@pytest.fixture
def fast_limiter() -> RateLimiter:
    """Limiter whose retry back-off does not sleep for real."""

    return RateLimiter(RateLimitPolicy(retry_base_delay=0.0, retry_max_delay=0.0))
