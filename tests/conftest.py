"""
Pytest Configuration and Fixtures.

Shared fixtures: a controllable clock, the two storage tiers and an engine
factory that never starts the background ticker unless asked to.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from timed_cbt.services.bank_loader import parse_bank  # noqa: E402
from timed_cbt.services.session_engine import SessionEngine  # noqa: E402
from timed_cbt.services.session_store import JsonFileStore, MemoryStore  # noqa: E402


SAMPLE_CSV = (
    "Question,Option A,Option B,Option C,Option D,Answer\n"
    "What is 1+1?,1,2,3,4,b\n"
    "\"Capital of France, in Europe?\",Paris,Rome,Berlin,Madrid,a\n"
    "Largest planet?,Mars,Venus,Jupiter,Saturn,Option C\n"
    "Which number is odd?,2,4,8,7,D\n"
    "\n"
)


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "storage.json"


@pytest.fixture
def persistent(store_path):
    return JsonFileStore(store_path)


@pytest.fixture
def session_store():
    return MemoryStore()


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV


@pytest.fixture
def sample_bank():
    return parse_bank(SAMPLE_CSV)


@pytest.fixture
def make_engine(persistent, session_store, clock):
    """Build an engine over the shared stores (simulates a page reload when called twice)."""
    engines = []

    def _make(persistent_store=None, session=None, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", random.Random(7))
        kwargs.setdefault("tick_interval", None)
        engine = SessionEngine.create(
            persistent_store if persistent_store is not None else persistent,
            session if session is not None else session_store,
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.dispose()


@pytest.fixture
def loaded_engine(make_engine, sample_bank):
    engine = make_engine()
    engine.apply_bank(sample_bank)
    return engine
