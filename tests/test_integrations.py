"""
Storage and identity clients against mocked HTTP transports.
"""

import httpx
import pytest

from conftest import FakeIdentity, photo
from fieldgate.engine.errors import UpstreamFailure
from fieldgate.integrations.identity import CachedIdentity, HttpIdentityClient
from fieldgate.integrations.storage import HttpStorageClient
from fieldgate.models import Worker


def _storage(handler, **kwargs):
    return HttpStorageClient(
        endpoint="http://storage.test",
        auth_token="tok",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_upload_returns_refs():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["type"] = request.headers.get("Content-Type", "")
        return httpx.Response(
            200,
            json={
                "objects": [
                    {"id": "a1", "filename": "site.jpg", "mime_type": "image/jpeg", "size_bytes": 9},
                    {"id": "a2", "url": "https://cdn.test/a2"},
                ]
            },
        )

    refs = await _storage(handler).upload([photo(), photo("second.jpg")])

    assert seen["url"] == "http://storage.test/v1/objects"
    assert seen["auth"] == "Bearer tok"
    assert seen["type"].startswith("multipart/form-data")
    assert [r.ref_id for r in refs] == ["a1", "a2"]
    assert refs[1].filename == "second.jpg"
    assert refs[1].url == "https://cdn.test/a2"


@pytest.mark.asyncio
async def test_upload_of_nothing_skips_the_call():
    def handler(request):
        raise AssertionError("no request expected")

    assert await _storage(handler).upload([]) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json={"objects": []}),
        httpx.Response(200, json={"objects": [{"filename": "no id"}]}),
    ],
)
async def test_upload_failures_become_upstream_failure(response):
    with pytest.raises(UpstreamFailure) as exc:
        await _storage(lambda request: response).upload([photo()])
    assert exc.value.code == "STORAGE_UPLOAD_FAILED"


@pytest.mark.asyncio
async def test_upload_timeout():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(UpstreamFailure):
        await _storage(handler).upload([photo()])


@pytest.mark.asyncio
async def test_unconfigured_storage():
    with pytest.raises(UpstreamFailure) as exc:
        await HttpStorageClient(endpoint="").upload([photo()])
    assert exc.value.code == "STORAGE_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_identity_lists_active_workers():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/users"
        assert request.url.params["active"] == "true"
        return httpx.Response(
            200,
            json={
                "users": [
                    {"id": "w1", "first_name": "An", "last_name": "Nguyen"},
                    {"id": "w9", "first_name": "Old", "last_name": "Hand", "active": False},
                ]
            },
        )

    client = HttpIdentityClient(endpoint="http://identity.test", transport=httpx.MockTransport(handler))
    workers = await client.list_active_workers()

    assert [w.id for w in workers] == ["w1"]
    assert workers[0].full_name == "An Nguyen"


@pytest.mark.asyncio
async def test_identity_outage():
    client = HttpIdentityClient(
        endpoint="http://identity.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(UpstreamFailure) as exc:
        await client.list_active_workers()
    assert exc.value.code == "IDENTITY_UNAVAILABLE"


@pytest.mark.asyncio
async def test_cached_identity_reuses_result_within_ttl():
    inner = FakeIdentity([Worker(id="w1")])
    cached = CachedIdentity(inner, ttl_seconds=60)

    await cached.list_active_workers()
    await cached.list_active_workers()
    assert inner.calls == 1

    cached.invalidate()
    await cached.list_active_workers()
    assert inner.calls == 2


@pytest.mark.asyncio
async def test_cached_identity_with_zero_ttl_always_refreshes():
    inner = FakeIdentity([Worker(id="w1")])
    cached = CachedIdentity(inner, ttl_seconds=0)

    await cached.list_active_workers()
    await cached.list_active_workers()
    assert inner.calls == 2
