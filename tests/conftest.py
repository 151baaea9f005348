import pytest

from fakes import FakeSession, MutableClock


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()
