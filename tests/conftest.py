"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path
from typing import List, Tuple, Union

import pytest

# Add the backend directory to sys.path so ``typetutor`` imports without install
BACKEND_ROOT = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(BACKEND_ROOT))

from typetutor.circuit import FailureTracker  # noqa: E402
from typetutor.models import PerformanceSnapshot, SessionErrors, KeystrokeError  # noqa: E402
from typetutor.service import TutorService  # noqa: E402
from typetutor.settings import Settings  # noqa: E402


Outcome = Union[str, BaseException]


class FakeProvider:
    """Scripted provider: returns (or raises) the queued outcomes in order.

    The last outcome repeats once the queue is exhausted.
    """

    def __init__(self, *outcomes: Outcome) -> None:
        self.outcomes: List[Outcome] = list(outcomes) or ["{}"]
        self.calls: List[Tuple[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def payload(intent: str, text=None, reply: str = "Sure thing!") -> str:
    return json.dumps({"intent": intent, "typing-text": text, "response": reply})


@pytest.fixture
def config() -> Settings:
    return Settings(
        GEMINI_API_KEY=None,
        OPENROUTER_API_KEY=None,
        TUTOR_FAILURE_THRESHOLD=3,
        TUTOR_FAILURE_COOLDOWN_SECONDS=300,
        TUTOR_MAX_RETRIES=2,
        TUTOR_RETRY_BACKOFF_SECONDS=1.0,
        TUTOR_PROVIDER_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock) -> FailureTracker:
    return FailureTracker(threshold=3, cooldown_seconds=300, clock=clock)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_service(config, tracker, sleep):
    def _make(provider) -> TutorService:
        return TutorService(provider, tracker=tracker, config=config, sleep=sleep)

    return _make


@pytest.fixture
def new_user() -> PerformanceSnapshot:
    return PerformanceSnapshot()


@pytest.fixture
def regular_user() -> PerformanceSnapshot:
    return PerformanceSnapshot(
        total_sessions=5,
        average_wpm=45,
        average_accuracy=92,
        weak_keys=["q", "z"],
        improvement_trend="improving",
    )


@pytest.fixture
def session_errors() -> SessionErrors:
    return SessionErrors(
        key_error_map={"e": 4, "r": 2, "t": 1},
        detailed_errors=[
            KeystrokeError(position=3, expected="e", typed="r", timestamp=1.0),
            KeystrokeError(position=9, expected="e", typed="r", timestamp=2.0),
            KeystrokeError(position=12, expected="r", typed="t", timestamp=3.0),
        ],
    )
