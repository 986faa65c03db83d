import json

import httpx
import pytest

from nexa.clients.nexa_client import NexaAPIClient
from nexa.exceptions import (
    BackendUnreachableError,
    BadRequestError,
    NexaAPIError,
    NotFoundError,
    RestrictedError,
    ServiceUnavailableError,
)
from nexa.schemas import Message


def make_client(handler):
    return NexaAPIClient(base_url="http://nexa.test", transport=httpx.MockTransport(handler), backoff=0)


async def test_get_messages_uses_get_with_cache_buster():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json=[
            {"id": "a", "userId": "u1", "userName": "Budi", "text": "hi", "timestamp": 1, "role": "user"},
        ])

    async with make_client(handler) as client:
        msgs = await client.get_messages()

    assert [m.id for m in msgs] == ["a"]
    assert seen[0].method == "GET"
    assert seen[0].url.params["action"] == "get_messages"
    assert "t" in seen[0].url.params


async def test_send_message_posts_action_and_payload():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    async with make_client(handler) as client:
        ok = await client.send_message(Message(id="m1", userId="u1", userName="Budi", text="halo"))

    assert ok is True
    assert bodies[0]["action"] == "send_message"
    assert bodies[0]["payload"]["message"]["id"] == "m1"
    assert "imageUrl" not in bodies[0]["payload"]["message"]


async def test_retries_transient_errors_then_succeeds():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(502, json={"error": "bad gateway"})
        return httpx.Response(200, json=[])

    async with make_client(handler) as client:
        assert await client.get_tickets() == []
    assert len(calls) == 3


async def test_gives_up_after_max_attempts():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(500, json={"error": "INTERNAL CORE ERROR"})

    async with make_client(handler) as client:
        with pytest.raises(NexaAPIError) as exc:
            await client.get_suggestions()
    assert exc.value.status == 500
    assert len(calls) == 5


async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(403, json={"error": "RESTRICTED ACCESS"})

    async with make_client(handler) as client:
        with pytest.raises(RestrictedError) as exc:
            await client.delete("tickets", "t1", {"email": "x@y.z", "password": "no"})
    assert exc.value.message == "RESTRICTED ACCESS"
    assert len(calls) == 1


async def test_bad_request_maps_to_exception():
    def handler(request: httpx.Request):
        return httpx.Response(400, json={"error": "INVALID EMAIL"})

    async with make_client(handler) as client:
        with pytest.raises(BadRequestError):
            await client.auth("nope", "x")


async def test_ping_is_a_single_attempt():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(503, json={"error": "SERVICE UNAVAILABLE"})

    async with make_client(handler) as client:
        with pytest.raises(ServiceUnavailableError):
            await client.ping()
    assert len(calls) == 1


async def test_transport_failure_is_unreachable():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(BackendUnreachableError):
            await client.ping()


async def test_non_json_error_body_uses_text():
    def handler(request: httpx.Request):
        return httpx.Response(404, text="not here")

    async with make_client(handler) as client:
        with pytest.raises(NotFoundError) as exc:
            await client.call("get_messages", method="GET")
    assert exc.value.message == "not here"


async def test_html_success_body_is_an_api_error():
    # 잘못 라우팅된 /api 가 index.html 을 200 으로 돌려주는 경우
    def handler(request):
        return httpx.Response(200, text="<!doctype html><html></html>", headers={"Content-Type": "text/html"})

    async with make_client(handler) as client:
        with pytest.raises(NexaAPIError) as exc:
            await client.ping()
    assert exc.value.status == 200
    assert exc.value.message == "MALFORMED RESPONSE"
