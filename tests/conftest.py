"""
Pytest configuration and fixtures for pykairos tests.

Provides registry backends, a runtime whose retry backoff does not sleep,
and small workflows reused across tests.
"""

import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

from pykairos.config import Settings
from pykairos.core import Call, Complete, StageContext
from pykairos.decorators import stage, step, workflow
from pykairos.executor import Runtime, StepExecutor
from pykairos.models import RetryPolicy
from pykairos.storage import InMemoryRunRegistry, SqliteRunRegistry
from pykairos.workflows import standard_catalog


class InstantExecutor(StepExecutor):
    """StepExecutor that records backoff delays instead of sleeping."""

    def __init__(self, default_policy: RetryPolicy | None = None):
        super().__init__(default_policy)
        self.pauses: list[float] = []

    async def _pause(self, seconds: float) -> None:
        self.pauses.append(seconds)


def make_runtime(registry, **settings) -> Runtime:
    return Runtime(
        registry,
        executor=InstantExecutor(),
        catalog=standard_catalog(),
        settings=Settings(**settings),
    )


def token_from_url(url: str) -> str:
    """Hook token embedded in an approval link."""
    return parse_qs(urlparse(url).query)["token"][0]


@pytest.fixture
async def in_memory_registry() -> AsyncGenerator[InMemoryRunRegistry, None]:
    """In-memory registry with automatic cleanup."""
    registry = InMemoryRunRegistry()
    yield registry
    await registry.reset()


@pytest.fixture
async def sqlite_memory_registry() -> AsyncGenerator[SqliteRunRegistry, None]:
    """SQLite in-memory registry with automatic cleanup."""
    registry = await SqliteRunRegistry.in_memory()
    yield registry
    await registry.close()


@pytest.fixture(params=["memory", "sqlite"])
async def registry(request) -> AsyncGenerator:
    """Each registry backend in turn."""
    if request.param == "memory":
        backend = InMemoryRunRegistry()
        yield backend
        await backend.reset()
    else:
        backend = await SqliteRunRegistry.in_memory()
        yield backend
        await backend.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "test.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
async def runtime(in_memory_registry) -> AsyncGenerator[Runtime, None]:
    """Runtime over an in-memory registry, shut down after the test."""
    rt = make_runtime(in_memory_registry)
    yield rt
    await rt.shutdown()


# Sample workflows for reuse across tests


@workflow(name="counter")
class CounterWorkflow:
    """Two sequential steps that count their invocations."""

    def __init__(self):
        self.calls = {"add_one": 0, "double": 0}

    @step
    async def add_one(self, input: dict) -> int:
        self.calls["add_one"] += 1
        return input["value"] + 1

    @step
    async def double(self, input: int) -> int:
        self.calls["double"] += 1
        return input * 2

    @stage
    def first(self, ctx: StageContext):
        return Call(self.add_one, {"value": ctx.input["value"]}, save_as="added", then="second")

    @stage
    def second(self, ctx: StageContext):
        return Call(self.double, ctx.state["added"], save_as="doubled", then="finish")

    @stage
    def finish(self, ctx: StageContext):
        return Complete({"value": ctx.state["doubled"]})


@pytest.fixture
def counter_workflow() -> CounterWorkflow:
    return CounterWorkflow()


@pytest.fixture
async def runtime_factory():
    """Builds runtimes with InstantExecutor; all are shut down after the test."""
    built: list[Runtime] = []

    def build(registry, **settings) -> Runtime:
        rt = make_runtime(registry, **settings)
        built.append(rt)
        return rt

    yield build
    for rt in built:
        await rt.shutdown()
