"""HTTP client for talking to upstream add-ons."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..models import Source, UpstreamManifest
from ..protocol import (
    OutboundRequest,
    RequestDescriptor,
    build_outbound_request,
    preferred_generation,
)

logger = logging.getLogger(__name__)

# Statuses meaning "this add-on does not speak that request shape".
PROTOCOL_MISMATCH_STATUSES = frozenset({404, 405})


class UpstreamPayloadError(ValueError):
    """Raised when an upstream answers with something other than a JSON object."""


class AddonClient:
    """Wrapper around the manifest and resource endpoints of upstream add-ons.

    Errors are raised, not swallowed; the fan-out dispatcher decides what a
    failure means for the aggregated response.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        protocol_fallback: bool = True,
    ) -> None:
        self._client = http_client
        self._protocol_fallback = protocol_fallback

    async def fetch_manifest(self, base_url: str) -> Source:
        """Fetch ``{base_url}/manifest.json`` and wrap it as a :class:`Source`.

        A manifest without catalogs is rejected as not belonging to a usable
        add-on.
        """

        response = await self._client.get(f"{base_url}/manifest.json")
        response.raise_for_status()
        manifest = UpstreamManifest.model_validate(self._json_object(response))
        if not manifest.catalogs:
            raise UpstreamPayloadError(f"Manifest at {base_url} declares no catalogs")
        return Source(base_url=base_url, manifest=manifest)

    async def fetch_resource(
        self, source: Source, descriptor: RequestDescriptor
    ) -> dict[str, Any]:
        """Query one source for ``descriptor`` in the shape it prefers."""

        generation = preferred_generation(source.manifest)
        try:
            return await self._send(
                build_outbound_request(source.base_url, descriptor, generation)
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if not (self._protocol_fallback and status in PROTOCOL_MISMATCH_STATUSES):
                raise
            fallback = generation.other
            logger.debug(
                "%s rejected %s request with %s, retrying as %s",
                source.base_url,
                generation.value,
                status,
                fallback.value,
            )
            return await self._send(
                build_outbound_request(source.base_url, descriptor, fallback)
            )

    async def _send(self, outbound: OutboundRequest) -> dict[str, Any]:
        if outbound.method == "POST":
            response = await self._client.post(outbound.url, json=outbound.json)
        else:
            response = await self._client.get(outbound.url)
        response.raise_for_status()
        return self._json_object(response)

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        data = response.json()
        if not isinstance(data, dict):
            raise UpstreamPayloadError(
                f"Expected a JSON object from {response.request.url}"
            )
        return data


def describe_source(source: Source) -> str:
    return source.base_url
