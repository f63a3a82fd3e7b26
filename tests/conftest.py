import pytest

from tests.fakes import FakeSession


@pytest.fixture
def session():
    return FakeSession()
