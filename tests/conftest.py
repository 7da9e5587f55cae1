import pytest

from starlette_oauth_server import OAuth2Server
from tests.helpers import FakeEngine, NextRecorder


@pytest.fixture
def make_server():
    def _make(**options) -> OAuth2Server:
        options.setdefault("model", object())
        options.setdefault("engine_factory", FakeEngine)
        return OAuth2Server(**options)

    return _make


@pytest.fixture
def next_recorder():
    return NextRecorder()
