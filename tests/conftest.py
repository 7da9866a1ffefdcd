from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from echoes.config import Settings, load_env_file
from echoes.session import init_session, reset_session_for_tests


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI we don't auto-load `.env` unless explicitly opted in with
    ECHOES_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("ECHOES_LOAD_DOTENV_FOR_TESTS") != "1":
        return
    load_env_file()


@pytest.fixture(autouse=True)
def _fresh_session() -> Generator[None, None, None]:
    """Every test starts without an app-wide game session.

    The API startup hook builds one lazily unless a test initialized its own first.
    """

    reset_session_for_tests()
    yield
    reset_session_for_tests()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """FastAPI TestClient over a deterministic session with a long voting window.

    The window never expires during a test, so tallies only change through the API.
    """

    from echoes.main import app

    init_session(Settings(voting_period_s=600.0, seed=7))
    with TestClient(app) as c:
        yield c
