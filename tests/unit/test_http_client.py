"""Unit tests for HTTP client."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from docqueue.errors import RemoteHttpError
from docqueue.http_client import AppHttpClient


def mock_session(resp=None, post_side_effect=None):
    """Build a ClientSession stand-in whose post() yields resp."""
    post_ctx = MagicMock()
    post_ctx.__aenter__ = AsyncMock(return_value=resp)
    post_ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=post_ctx, side_effect=post_side_effect)

    session_ctx = MagicMock()
    session_ctx.__aenter__ = AsyncMock(return_value=session)
    session_ctx.__aexit__ = AsyncMock(return_value=False)
    return session_ctx, session


def mock_response(status=200, json_body=None, text=None):
    resp = MagicMock()
    resp.status = status
    resp.reason = "Reason"
    resp.text = AsyncMock(return_value=json.dumps(json_body) if text is None else text)
    return resp


@pytest.mark.asyncio
async def test_post_json_success():
    """Test a successful POST."""
    client = AppHttpClient("http://app.example.com/", secret="s3cret")
    session_ctx, session = mock_session(mock_response(json_body={"has_more": False}))

    with patch("aiohttp.ClientSession", return_value=session_ctx):
        result = await client.post_json("/api/scheduled-tasks/credit-refresh", {"cursor": None})

    assert result == {"has_more": False}
    args, kwargs = session.post.call_args
    assert args[0] == "http://app.example.com/api/scheduled-tasks/credit-refresh"
    assert kwargs["json"] == {"cursor": None}
    assert kwargs["headers"]["Authorization"] == "Bearer s3cret"
    assert kwargs["headers"]["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_post_json_without_secret_or_body():
    """Test that no Authorization header is sent without a secret."""
    client = AppHttpClient("http://app.example.com")
    session_ctx, session = mock_session(mock_response(json_body={}))

    with patch("aiohttp.ClientSession", return_value=session_ctx):
        await client.post_json("api/ping")

    args, kwargs = session.post.call_args
    assert args[0] == "http://app.example.com/api/ping"
    assert kwargs["json"] == {}
    assert "Authorization" not in kwargs["headers"]


@pytest.mark.asyncio
async def test_post_json_http_error():
    """Test that HTTP errors raise RemoteHttpError."""
    client = AppHttpClient("http://app.example.com")
    session_ctx, _ = mock_session(mock_response(status=500, text='{"error": "boom"}'))

    with patch("aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(RemoteHttpError) as exc_info:
            await client.post_json("/api/google-place-details", {"place_id": "p1"})

    assert exc_info.value.status_code == 500
    assert exc_info.value.response_body == '{"error": "boom"}'


@pytest.mark.asyncio
async def test_post_json_network_error():
    """Test that network errors raise RemoteHttpError."""
    client = AppHttpClient("http://app.example.com")
    session_ctx, _ = mock_session(
        post_side_effect=aiohttp.ClientError("Connection failed")
    )

    with patch("aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(RemoteHttpError) as exc_info:
            await client.post_json("/api/ping")

    assert exc_info.value.status_code == 0
    assert "Connection failed" in str(exc_info.value)


@pytest.mark.parametrize(
    "text",
    ["<html>Service Unavailable</html>", "", "[1, 2]"],
)
@pytest.mark.asyncio
async def test_post_json_rejects_non_object_body(text):
    """Test that a success status without a JSON object raises with that status."""
    client = AppHttpClient("http://app.example.com")
    session_ctx, _ = mock_session(mock_response(status=200, text=text))

    with patch("aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(RemoteHttpError) as exc_info:
            await client.post_json("/api/scheduled-tasks/credit-refresh")

    assert exc_info.value.status_code == 200
    assert exc_info.value.response_body == text
    assert "Network error" not in str(exc_info.value)
