"""Merge partial upstream responses and route resource requests."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from ..models import Source
from ..protocol import RequestDescriptor, extract_items
from .addon_client import AddonClient, describe_source
from .dispatcher import FanOutDispatcher
from .registry import Tenant, TenantNotFoundError, TenantRegistry

logger = logging.getLogger(__name__)


def aggregate(resource: str, payloads: Iterable[Mapping[str, Any] | None]) -> list[Any]:
    """Concatenate the items of every present payload, in payload order.

    Nothing is de-duplicated or re-sorted; a missing payload adds nothing.
    """

    merged: list[Any] = []
    for payload in payloads:
        if payload is None:
            continue
        merged.extend(extract_items(resource, payload))
    return merged


class AggregationService:
    """Resolves inbound resource requests against a tenant's sources."""

    def __init__(
        self,
        registry: TenantRegistry,
        client: AddonClient,
        dispatcher: FanOutDispatcher,
    ) -> None:
        self._registry = registry
        self._client = client
        self._dispatcher = dispatcher

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    def get_tenant(self, name: str) -> Tenant:
        tenant = self._registry.lookup(name)
        if tenant is None:
            raise TenantNotFoundError(name)
        return tenant

    async def resolve(
        self, tenant: Tenant, descriptor: RequestDescriptor
    ) -> dict[str, list[Any]]:
        """Fan ``descriptor`` out to the relevant sources and merge the results."""

        targets = tenant.targets_for(descriptor)
        if not targets:
            return {descriptor.result_key: []}

        async def _call(source: Source) -> dict[str, Any]:
            return await self._client.fetch_resource(source, descriptor)

        payloads = await self._dispatcher.dispatch(
            targets, _call, describe=describe_source
        )
        items = aggregate(descriptor.resource, payloads)
        logger.debug(
            "[%s] %s %s/%s: %s items from %s sources",
            tenant.name,
            descriptor.resource,
            descriptor.content_type,
            descriptor.item_id,
            len(items),
            len(targets),
        )
        return {descriptor.result_key: items}
