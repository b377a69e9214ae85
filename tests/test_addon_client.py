"""Tests for the upstream add-on HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from app.models import Source, UpstreamManifest
from app.protocol import RequestDescriptor
from app.services.addon_client import AddonClient, UpstreamPayloadError

CATALOGS = [{"id": "top", "type": "movie"}]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def legacy_source(base_url: str) -> Source:
    return Source(base_url, UpstreamManifest.model_validate({"catalogs": CATALOGS}))


def structured_source(base_url: str) -> Source:
    return Source(
        base_url,
        UpstreamManifest.model_validate({"manifestVersion": "4", "catalogs": CATALOGS}),
    )


@pytest.mark.anyio("asyncio")
async def test_fetch_manifest_builds_source(addon_network) -> None:
    base = addon_network.add(
        "a.example.com", {"name": "Alpha", "catalogs": CATALOGS, "types": ["movie"]}
    )

    async with addon_network.client() as http_client:
        source = await AddonClient(http_client).fetch_manifest(base)

    assert source.base_url == base
    assert source.manifest.types == ["movie"]
    assert str(addon_network.requests[0].url) == "https://a.example.com/manifest.json"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("manifest", "error"),
    [
        ({"name": "No catalogs"}, UpstreamPayloadError),
        ({"catalogs": []}, UpstreamPayloadError),
        (["not", "an", "object"], UpstreamPayloadError),
        (500, httpx.HTTPStatusError),
    ],
)
async def test_fetch_manifest_rejects_unusable_manifests(
    addon_network, manifest, error
) -> None:
    base = addon_network.add("a.example.com", manifest)

    async with addon_network.client() as http_client:
        with pytest.raises(error):
            await AddonClient(http_client).fetch_manifest(base)


@pytest.mark.anyio("asyncio")
async def test_legacy_source_is_queried_by_path(addon_network) -> None:
    base = addon_network.add(
        "a.example.com", {}, responses={"catalog": {"metas": [{"id": "tt1"}]}}
    )
    descriptor = RequestDescriptor("catalog", "movie", "top", (("skip", "20"),))

    async with addon_network.client() as http_client:
        payload = await AddonClient(http_client).fetch_resource(
            legacy_source(base), descriptor
        )

    assert payload == {"metas": [{"id": "tt1"}]}
    (request,) = addon_network.resource_calls()
    assert request.method == "GET"
    assert str(request.url) == "https://a.example.com/catalog/movie/top.json?skip=20"


@pytest.mark.anyio("asyncio")
async def test_structured_source_is_queried_with_json_body(addon_network) -> None:
    base = addon_network.add(
        "a.example.com", {}, responses={"stream": {"streams": [{"url": "u"}]}}
    )
    descriptor = RequestDescriptor("stream", "movie", "tt1")

    async with addon_network.client() as http_client:
        payload = await AddonClient(http_client).fetch_resource(
            structured_source(base), descriptor
        )

    assert payload == {"streams": [{"url": "u"}]}
    (request,) = addon_network.resource_calls()
    assert request.method == "POST"
    assert request.url.path == "/stream"
    assert json.loads(request.content) == {"type": "movie", "id": "tt1"}


@pytest.mark.anyio("asyncio")
async def test_rejected_generation_falls_back_once(addon_network) -> None:
    base = addon_network.add(
        "a.example.com",
        {},
        responses={"meta": {"meta": {"id": "tt1"}}},
        accepts_post=False,
    )
    descriptor = RequestDescriptor("meta", "movie", "tt1")

    async with addon_network.client() as http_client:
        payload = await AddonClient(http_client).fetch_resource(
            structured_source(base), descriptor
        )

    assert payload == {"meta": {"id": "tt1"}}
    assert [request.method for request in addon_network.resource_calls()] == [
        "POST",
        "GET",
    ]


@pytest.mark.anyio("asyncio")
async def test_fallback_can_be_disabled(addon_network) -> None:
    base = addon_network.add("a.example.com", {}, accepts_get=False)
    descriptor = RequestDescriptor("stream", "movie", "tt1")

    async with addon_network.client() as http_client:
        client = AddonClient(http_client, protocol_fallback=False)
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_resource(legacy_source(base), descriptor)

    assert len(addon_network.resource_calls()) == 1


@pytest.mark.anyio("asyncio")
async def test_server_errors_do_not_trigger_fallback(addon_network) -> None:
    base = addon_network.add("a.example.com", {}, responses={"stream": 502})
    descriptor = RequestDescriptor("stream", "movie", "tt1")

    async with addon_network.client() as http_client:
        with pytest.raises(httpx.HTTPStatusError):
            await AddonClient(http_client).fetch_resource(legacy_source(base), descriptor)

    assert len(addon_network.resource_calls()) == 1


@pytest.mark.anyio("asyncio")
async def test_non_object_payload_is_rejected(addon_network) -> None:
    base = addon_network.add("a.example.com", {}, responses={"stream": [1, 2, 3]})
    descriptor = RequestDescriptor("stream", "movie", "tt1")

    async with addon_network.client() as http_client:
        with pytest.raises(UpstreamPayloadError):
            await AddonClient(http_client).fetch_resource(legacy_source(base), descriptor)
