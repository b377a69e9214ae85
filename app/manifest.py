"""Combine upstream manifests into one aggregate manifest."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from .models import RESOURCE_KINDS, Source
from .utils import slugify, unique_in_order

MANIFEST_ID_PREFIX = "com.addonproxy"
MANIFEST_VERSION = "4"
PROXY_VERSION = "1.0.0"

OwnershipIndex = Mapping[str, tuple[Source, ...]]


def build_ownership_index(sources: Sequence[Source]) -> dict[str, tuple[Source, ...]]:
    """Map each catalog id to the sources declaring it, in source order."""

    owners: dict[str, list[Source]] = {}
    for source in sources:
        for catalog in source.manifest.catalogs:
            bucket = owners.setdefault(catalog.id, [])
            # A source listing the same id twice still owns it once.
            if not bucket or bucket[-1] is not source:
                bucket.append(source)
    return {catalog_id: tuple(bucket) for catalog_id, bucket in owners.items()}


def _first_artwork(sources: Sequence[Source], field: str) -> str:
    for source in sources:
        value = getattr(source.manifest, field)
        if value:
            return value
    return ""


def merge_manifests(
    sources: Sequence[Source],
    *,
    tenant_name: str,
    app_name: str = "Addon Proxy",
) -> tuple[dict[str, Any], dict[str, tuple[Source, ...]]]:
    """Return the aggregate manifest and catalog ownership index for ``sources``.

    ``types`` and ``idPrefixes`` are de-duplicated unions. ``catalogs`` is the
    plain concatenation in source order, so the same catalog id may appear
    once per declaring source. ``logo`` and ``icon`` come from the first source
    that has one. Identity fields belong to the proxy, never to a source.
    """

    manifests = [source.manifest for source in sources]
    manifest = {
        "manifestVersion": MANIFEST_VERSION,
        "id": f"{MANIFEST_ID_PREFIX}.{slugify(tenant_name)}",
        "version": PROXY_VERSION,
        "name": f"{app_name} ({tenant_name})",
        "description": (
            f"Aggregates {len(sources)} add-on"
            f"{'' if len(sources) == 1 else 's'} behind one manifest."
        ),
        "resources": list(RESOURCE_KINDS),
        "types": unique_in_order(
            content_type for item in manifests for content_type in item.types
        ),
        "idPrefixes": unique_in_order(
            prefix for item in manifests for prefix in item.id_prefixes
        ),
        "catalogs": [
            catalog.to_manifest_entry()
            for item in manifests
            for catalog in item.catalogs
        ],
        "logo": _first_artwork(sources, "logo"),
        "icon": _first_artwork(sources, "icon"),
    }
    return manifest, build_ownership_index(sources)
