"""Shared test helpers: controllable loaders and loop flushing."""

import asyncio

import pytest

from lazyfx import hooks


class ControlledLoader:
    """Loader whose futures are settled by the test, like a manual promise."""

    def __init__(self):
        self.calls = 0
        self.futures = []

    def __call__(self):
        self.calls += 1
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return future

    def resolve(self, value):
        self.futures[-1].set_result(value)

    def reject(self, error):
        self.futures[-1].set_exception(error)


async def _flush():
    """Let pending done-callbacks run (source → shared → activation)."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def loader():
    return ControlledLoader()


@pytest.fixture
def flush():
    return _flush


@pytest.fixture
def handler():
    """Install a recording global error handler."""
    calls = []
    hooks.set_error_handler(calls.append)
    yield calls
    hooks.set_error_handler(None)


@pytest.fixture(autouse=True)
def _reset_error_handler():
    yield
    hooks.set_error_handler(None)
