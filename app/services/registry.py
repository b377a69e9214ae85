"""Tenant definitions and the registry that owns them."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..manifest import OwnershipIndex, merge_manifests
from ..models import Source, TenantConfig
from ..protocol import RequestDescriptor
from ..utils import normalize_base_urls
from .addon_client import AddonClient
from .dispatcher import FanOutDispatcher

logger = logging.getLogger(__name__)


class TenantNotFoundError(KeyError):
    """Raised when a request names a tenant that is not registered."""


@dataclass(frozen=True, slots=True)
class Tenant:
    """One named aggregation: its sources and everything derived from them."""

    name: str
    sources: tuple[Source, ...]
    manifest: dict[str, Any]
    ownership: OwnershipIndex

    @classmethod
    def build(
        cls,
        name: str,
        sources: Iterable[Source],
        *,
        app_name: str = "Addon Proxy",
    ) -> "Tenant":
        """Derive the manifest and ownership index together from ``sources``."""

        ordered = tuple(sources)
        manifest, ownership = merge_manifests(
            ordered, tenant_name=name, app_name=app_name
        )
        return cls(
            name=name,
            sources=ordered,
            manifest=manifest,
            ownership=MappingProxyType(ownership),
        )

    @property
    def is_degraded(self) -> bool:
        return not self.sources

    def targets_for(self, descriptor: RequestDescriptor) -> tuple[Source, ...]:
        """Return the sources to query for ``descriptor``.

        Catalog requests go only to the owners of the catalog id, and an id no
        source declares has no targets. Every other resource is broadcast.
        """

        if descriptor.resource == "catalog":
            return self.ownership.get(descriptor.item_id, ())
        return self.sources


class TenantRegistry:
    """Maps tenant names to fully built tenants.

    Each tenant is written once, after its sources, manifest and index are
    complete, and is read-only afterwards.
    """

    def __init__(
        self,
        client: AddonClient,
        dispatcher: FanOutDispatcher,
        *,
        app_name: str = "Addon Proxy",
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._app_name = app_name
        self._tenants: dict[str, Tenant] = {}

    def __len__(self) -> int:
        return len(self._tenants)

    def __contains__(self, name: object) -> bool:
        return name in self._tenants

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._tenants)

    def lookup(self, name: str) -> Tenant | None:
        return self._tenants.get(name)

    def publish(self, tenant: Tenant) -> None:
        if tenant.name in self._tenants:
            raise ValueError(f"Tenant {tenant.name!r} is already registered")
        self._tenants[tenant.name] = tenant

    async def initialize(self, name: str, raw_config: object) -> Tenant | None:
        """Parse ``raw_config``, fetch every upstream manifest and register the tenant.

        Returns ``None`` when the configuration is unusable; the tenant is then
        skipped and other tenants are unaffected.
        """

        if name in self._tenants:
            logger.warning("Tenant %s is already registered, ignoring", name)
            return None
        try:
            config = self._parse_config(raw_config)
        except ValueError as exc:
            logger.error("Failed to load configuration for tenant %s: %s", name, exc)
            return None

        bases = normalize_base_urls(config.addon_bases)
        results = await self._dispatcher.dispatch(bases, self._client.fetch_manifest)

        sources: list[Source] = []
        for base, source in zip(bases, results):
            if source is None:
                logger.warning("[%s] manifest fetch failed for %s", name, base)
                continue
            sources.append(source)

        tenant = Tenant.build(name, sources, app_name=self._app_name)
        self.publish(tenant)

        if tenant.is_degraded:
            logger.warning("[%s] no valid add-on manifests", name)
        else:
            logger.info(
                "[%s] initialized: %s sources, %s catalogs",
                name,
                len(tenant.sources),
                len(tenant.manifest["catalogs"]),
            )
        return tenant

    async def load_directory(self, directory: Path) -> list[str]:
        """Initialise one tenant per ``<name>.json`` file in ``directory``."""

        if not directory.is_dir():
            logger.warning("Configuration directory %s does not exist", directory)
            return []

        async def _load(path: Path) -> Tenant | None:
            try:
                raw = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.error("Failed to read %s: %s", path, exc)
                return None
            return await self.initialize(path.stem, raw)

        paths = sorted(directory.glob("*.json"))
        tenants = await asyncio.gather(*(_load(path) for path in paths))
        names = [tenant.name for tenant in tenants if tenant is not None]
        logger.info("All tenants ready: %s", ", ".join(names) or "none")
        return names

    @staticmethod
    def _parse_config(raw_config: object) -> TenantConfig:
        if isinstance(raw_config, (str, bytes, bytearray)):
            raw_config = json.loads(raw_config)
        if not isinstance(raw_config, Mapping):
            raise ValueError("tenant configuration must be a JSON object")
        return TenantConfig.model_validate(dict(raw_config))
