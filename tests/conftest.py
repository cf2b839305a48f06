"""Shared fixtures: an app wired to a fake environment and a stubbed Gemini."""

from __future__ import annotations

from typing import Any, Iterator
from unittest.mock import MagicMock, patch

import pytest
from flask import Flask
from flask.testing import FlaskClient

from main import create_app

API_KEY = "test-gemini-key"


@pytest.fixture
def env() -> dict[str, str]:
    return {"GEMINI_API_KEY": API_KEY, "RATE_LIMIT": "1000 per minute"}


@pytest.fixture
def app(env: dict[str, str]) -> Flask:
    app = create_app(env)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()


@pytest.fixture
def make_upstream_response():
    """Build a stand-in for ``requests.Response``."""

    def _make(status_code: int = 200, json_body: Any = None, text: str = "") -> MagicMock:
        resp = MagicMock()
        resp.status_code = status_code
        resp.text = text
        resp.json.return_value = json_body
        return resp

    return _make


@pytest.fixture
def upstream(make_upstream_response) -> Iterator[MagicMock]:
    """Patch the outbound POST; answers 200 with an empty candidate list by default."""
    with patch("gateway.requests.post") as post:
        post.return_value = make_upstream_response(200, {"candidates": []})
        yield post
