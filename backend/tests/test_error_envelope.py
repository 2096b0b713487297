"""Tests for the unhandled-exception envelope."""

import json

import pytest
from starlette.requests import Request

from app.core.config import settings
from app.core.errors import INTERNAL_ERROR_MESSAGE, general_exception_handler


def _request() -> Request:
    request = Request({"type": "http", "method": "POST", "path": "/v1/signup-with-otp", "headers": []})
    request.state.request_id = "req-500"
    return request


@pytest.mark.asyncio
@pytest.mark.parametrize("env", ["staging", "prod"])
async def test_internal_details_hidden_outside_local_envs(monkeypatch, env: str):
    monkeypatch.setattr(settings, "ENV", env)

    response = await general_exception_handler(
        _request(), RuntimeError("connection to db-replica-2:5432 refused")
    )

    assert response.status_code == 500
    body = json.loads(response.body)
    assert body == {
        "error": INTERNAL_ERROR_MESSAGE,
        "code": "INTERNAL_ERROR",
        "request_id": "req-500",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("env", ["dev", "test"])
async def test_internal_details_shown_in_local_envs(monkeypatch, env: str):
    monkeypatch.setattr(settings, "ENV", env)

    response = await general_exception_handler(_request(), RuntimeError("boom"))

    body = json.loads(response.body)
    assert body["error"] == "boom"
    assert body["details"] == {"type": "RuntimeError"}
