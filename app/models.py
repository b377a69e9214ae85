"""Pydantic models describing upstream manifests and inbound payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ResourceKind = Literal["catalog", "meta", "stream", "subtitles"]

RESOURCE_KINDS: tuple[ResourceKind, ...] = ("catalog", "meta", "stream", "subtitles")


def _list_or_empty(value: object) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


class CatalogDescriptor(BaseModel):
    """A catalog entry from an upstream manifest.

    Only ``id`` and ``type`` are interpreted; every other key is carried through
    to the aggregate manifest untouched. ``type`` may be absent.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str | None = None

    def to_manifest_entry(self) -> dict[str, Any]:
        entry = self.model_dump(mode="json")
        if self.type is None:
            entry.pop("type")
        return entry


class UpstreamManifest(BaseModel):
    """Manifest document served by an upstream add-on.

    Parsing is permissive: list fields that are missing or not list-shaped
    become empty lists, and unknown fields are preserved.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    name: str | None = None
    version: str | None = None
    manifest_version: str | None = Field(default=None, alias="manifestVersion")
    resources: list[Any] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    id_prefixes: list[str] = Field(default_factory=list, alias="idPrefixes")
    catalogs: list[CatalogDescriptor] = Field(default_factory=list)
    logo: str | None = None
    icon: str | None = None

    @field_validator("resources", mode="before")
    @classmethod
    def _coerce_resources(cls, value: object) -> list[Any]:
        return _list_or_empty(value)

    @field_validator("types", "id_prefixes", mode="before")
    @classmethod
    def _coerce_string_list(cls, value: object) -> list[str]:
        return [entry for entry in _list_or_empty(value) if isinstance(entry, str)]

    @field_validator("catalogs", mode="before")
    @classmethod
    def _coerce_catalogs(cls, value: object) -> list[Any]:
        # Entries without a string id cannot be routed to.
        return [
            entry
            for entry in _list_or_empty(value)
            if isinstance(entry, dict) and isinstance(entry.get("id"), str)
        ]

    @field_validator("manifest_version", mode="before")
    @classmethod
    def _coerce_manifest_version(cls, value: object) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float, str)):
            return str(value).strip() or None
        return None

    @field_validator("logo", "icon", mode="before")
    @classmethod
    def _coerce_artwork(cls, value: object) -> str | None:
        if isinstance(value, str) and value.strip():
            return value
        return None


@dataclass(frozen=True, slots=True, eq=False)
class Source:
    """One upstream add-on: its base endpoint and the manifest it served."""

    base_url: str
    manifest: UpstreamManifest


class TenantConfig(BaseModel):
    """Per-tenant configuration document listing upstream add-on endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    addon_bases: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "TARGET_ADDON_BASES", "targetAddonBases", "addons"
        ),
    )

    @field_validator("addon_bases", mode="before")
    @classmethod
    def _default_missing(cls, value: object) -> object:
        return [] if value is None else value


class ExtraEntry(BaseModel):
    """A single ``{name, value}`` extra argument in a structured request."""

    name: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value


class StructuredRequest(BaseModel):
    """JSON body of a structured (POST) resource request."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    id: str = Field(min_length=1)
    extra: list[ExtraEntry] = Field(default_factory=list)

    @field_validator("extra", mode="before")
    @classmethod
    def _accept_mapping(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, dict):
            return [{"name": key, "value": item} for key, item in value.items()]
        return value


class ResourceResult(BaseModel):
    """Base shape for an upstream resource response.

    Fields that are missing or have the wrong shape parse as empty, so a
    partially broken upstream payload contributes nothing instead of failing.
    """

    model_config = ConfigDict(extra="ignore")

    def items(self) -> list[Any]:
        raise NotImplementedError


class CatalogResult(ResourceResult):
    metas: list[Any] = Field(default_factory=list)

    @field_validator("metas", mode="before")
    @classmethod
    def _coerce(cls, value: object) -> list[Any]:
        return _list_or_empty(value)

    def items(self) -> list[Any]:
        return list(self.metas)


class MetaResult(ResourceResult):
    """Meta responses carry a single ``meta`` object, a ``metas`` list, or both."""

    meta: dict[str, Any] | None = None
    metas: list[Any] = Field(default_factory=list)

    @field_validator("meta", mode="before")
    @classmethod
    def _coerce_meta(cls, value: object) -> dict[str, Any] | None:
        return value if isinstance(value, dict) else None

    @field_validator("metas", mode="before")
    @classmethod
    def _coerce_metas(cls, value: object) -> list[Any]:
        return _list_or_empty(value)

    def items(self) -> list[Any]:
        collected: list[Any] = [self.meta] if self.meta is not None else []
        collected.extend(self.metas)
        return collected


class StreamResult(ResourceResult):
    streams: list[Any] = Field(default_factory=list)

    @field_validator("streams", mode="before")
    @classmethod
    def _coerce(cls, value: object) -> list[Any]:
        return _list_or_empty(value)

    def items(self) -> list[Any]:
        return list(self.streams)


class SubtitlesResult(ResourceResult):
    subtitles: list[Any] = Field(default_factory=list)

    @field_validator("subtitles", mode="before")
    @classmethod
    def _coerce(cls, value: object) -> list[Any]:
        return _list_or_empty(value)

    def items(self) -> list[Any]:
        return list(self.subtitles)


RESULT_SHAPES: dict[str, type[ResourceResult]] = {
    "catalog": CatalogResult,
    "meta": MetaResult,
    "stream": StreamResult,
    "subtitles": SubtitlesResult,
}
