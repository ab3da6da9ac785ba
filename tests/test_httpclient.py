"""Tests for the shared HTTP fetch helper."""

import asyncio

import httpx
import pytest
from tenacity import wait_none

from ddi_miner.httpclient import fetch, is_transient

URL = "https://api.example.org/items"


def sequence(*statuses):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(statuses[min(len(calls), len(statuses)) - 1], json={"ok": True})

    return handler, calls


def run(handler, **kwargs):
    fast_fetch = fetch.retry_with(wait=wait_none())
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return asyncio.run(fast_fetch(client, URL, **kwargs))


def test_not_found_is_none():
    handler, calls = sequence(404)
    assert run(handler) is None
    assert len(calls) == 1


def test_throttling_is_retried():
    handler, calls = sequence(429, 503, 200)
    response = run(handler, params={"q": "warfarin"})
    assert response.json() == {"ok": True}
    assert len(calls) == 3
    assert calls[0].url.params["q"] == "warfarin"


def test_retries_are_bounded():
    handler, calls = sequence(503)
    with pytest.raises(httpx.HTTPStatusError):
        run(handler)
    assert len(calls) == 3


def test_server_error_is_not_retried():
    handler, calls = sequence(500)
    with pytest.raises(httpx.HTTPStatusError):
        run(handler)
    assert len(calls) == 1


def test_is_transient():
    request = httpx.Request("GET", URL)
    assert is_transient(httpx.ConnectError("refused", request=request))
    assert not is_transient(ValueError("bad json"))
    response = httpx.Response(502, request=request)
    assert is_transient(httpx.HTTPStatusError("bad gateway", request=request, response=response))
