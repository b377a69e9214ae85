"""Translation between the two add-on request encodings.

Clients and upstream add-ons speak one of two generations of the protocol:

* the *path* generation, ``GET <resource>/<type>/<id>.json`` with extras in the
  query string or in a trailing path segment;
* the *structured* generation, ``POST <resource>`` with a JSON body of
  ``{"type", "id", "extra": [{"name", "value"}]}``.

Both are parsed into a :class:`RequestDescriptor`, and a descriptor can be
re-emitted in either shape toward an upstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence
from urllib.parse import parse_qsl, quote, unquote, urlencode

from pydantic import ValidationError

from .models import (
    RESOURCE_KINDS,
    RESULT_SHAPES,
    ResourceKind,
    StructuredRequest,
    UpstreamManifest,
)

RESULT_KEYS: dict[str, str] = {
    "catalog": "metas",
    "meta": "metas",
    "stream": "streams",
    "subtitles": "subtitles",
}

STRUCTURED_MIN_MANIFEST_VERSION = 4

Extras = tuple[tuple[str, str], ...]


class RequestParseError(ValueError):
    """Raised when an inbound request cannot be mapped to a descriptor."""


class ProtocolGeneration(str, Enum):
    PATH = "path"
    STRUCTURED = "structured"

    @property
    def other(self) -> "ProtocolGeneration":
        if self is ProtocolGeneration.PATH:
            return ProtocolGeneration.STRUCTURED
        return ProtocolGeneration.PATH


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Protocol-neutral description of one resource request."""

    resource: ResourceKind
    content_type: str
    item_id: str
    extras: Extras = ()

    @property
    def result_key(self) -> str:
        return RESULT_KEYS[self.resource]

    def to_body(self) -> dict[str, Any]:
        """Return the structured-generation JSON body for this request."""

        body: dict[str, Any] = {"type": self.content_type, "id": self.item_id}
        if self.resource != "meta" and self.extras:
            body["extra"] = [
                {"name": name, "value": value} for name, value in self.extras
            ]
        return body

    def to_path(self) -> str:
        """Return the path-generation route, extras included as a query string."""

        content_type = quote(self.content_type, safe="")
        item_id = quote(self.item_id, safe=":")
        return f"{self.resource}/{content_type}/{item_id}.json{encode_extras(self.extras)}"


@dataclass(frozen=True, slots=True)
class OutboundRequest:
    method: str
    url: str
    json: dict[str, Any] | None = None


def parse_extras(raw: str | None) -> Extras:
    """Parse ``name=value&...`` into ordered pairs."""

    if not raw:
        return ()
    return tuple(parse_qsl(raw, keep_blank_values=True))


def encode_extras(extras: Sequence[tuple[str, str]]) -> str:
    """Serialise extras as a query string, ``?``-prefixed only when non-empty."""

    if not extras:
        return ""
    return "?" + urlencode(list(extras), quote_via=quote)


def _as_resource(value: str) -> ResourceKind:
    if value not in RESOURCE_KINDS:
        raise RequestParseError(f"Unsupported resource: {value}")
    return value  # type: ignore[return-value]


def parse_structured_request(resource: str, body: object) -> RequestDescriptor:
    """Build a descriptor from a structured (JSON body) request."""

    kind = _as_resource(resource)
    if not isinstance(body, Mapping):
        raise RequestParseError("Request body must be a JSON object")
    try:
        request = StructuredRequest.model_validate(dict(body))
    except ValidationError as exc:
        raise RequestParseError(f"Invalid {kind} request: {exc.error_count()} error(s)") from exc

    extras: Extras = ()
    if kind != "meta":
        extras = tuple((entry.name, entry.value) for entry in request.extra)
    return RequestDescriptor(kind, request.type, request.id, extras)


def parse_path_request(path: str, query: str | None = None) -> RequestDescriptor:
    """Build a descriptor from a path-encoded request.

    Accepts ``<resource>/<type>/<id>.json`` and
    ``<resource>/<type>/<id>/<extras>.json``; query-string extras follow any
    extras carried in the path. ``path`` must still be percent-encoded, so an
    escaped ``/`` or ``&`` stays inside its segment or value.
    """

    segments = path.strip("/").split("/")
    if len(segments) not in (3, 4):
        raise RequestParseError(f"Unrecognised path: {path}")
    kind = _as_resource(unquote(segments[0]))
    content_type = unquote(segments[1])
    last = segments[-1]
    if not last.endswith(".json"):
        raise RequestParseError(f"Unrecognised path: {path}")

    if len(segments) == 3:
        item_id = unquote(last.removesuffix(".json"))
        extras = ()
    else:
        item_id = unquote(segments[2])
        extras = parse_extras(last.removesuffix(".json"))
    if not content_type or not item_id:
        raise RequestParseError(f"Unrecognised path: {path}")

    if kind == "meta":
        return RequestDescriptor(kind, content_type, item_id)
    return RequestDescriptor(kind, content_type, item_id, extras + parse_extras(query))


def preferred_generation(manifest: UpstreamManifest) -> ProtocolGeneration:
    """Structured requests go to add-ons declaring manifest version 4 or later."""

    version = manifest.manifest_version
    if version:
        major = version.split(".", 1)[0]
        if major.isdigit() and int(major) >= STRUCTURED_MIN_MANIFEST_VERSION:
            return ProtocolGeneration.STRUCTURED
    return ProtocolGeneration.PATH


def build_outbound_request(
    base_url: str,
    descriptor: RequestDescriptor,
    generation: ProtocolGeneration,
) -> OutboundRequest:
    if generation is ProtocolGeneration.STRUCTURED:
        return OutboundRequest(
            "POST", f"{base_url}/{descriptor.resource}", descriptor.to_body()
        )
    return OutboundRequest("GET", f"{base_url}/{descriptor.to_path()}")


def extract_items(resource: str, payload: object) -> list[Any]:
    """Return the result list for ``resource`` from an upstream payload.

    Missing or malformed fields yield an empty list.
    """

    if not isinstance(payload, Mapping):
        return []
    shape = RESULT_SHAPES[resource]
    return shape.model_validate(dict(payload)).items()
