"""
pytest configuration and fixtures.
"""

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from moa import Dispatcher, EngineConfig, Scope, StateStore
from moa.demo import build_greeting_app


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> StateStore:
    """Fresh in-memory state store."""
    return StateStore()


@pytest.fixture
def config() -> EngineConfig:
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def dispatcher(config: EngineConfig, store: StateStore) -> Dispatcher:
    """Dispatcher with no routes registered."""
    return Dispatcher(config, store)


@pytest.fixture
def events(dispatcher: Dispatcher) -> list:
    """Events emitted by the dispatcher fixture, in order."""
    received = []
    dispatcher.add_listener(received.append)
    return received


@pytest.fixture
def greeting_app(store: StateStore) -> Dispatcher:
    """The greeting app with "Ada" stored at global scope."""
    app = build_greeting_app(store=store)
    store.set(Scope.GLOBAL, "name", "Ada")
    return app
