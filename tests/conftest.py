"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@dataclass
class FakeAddon:
    """Behaviour of one simulated upstream add-on.

    ``manifest`` and each entry of ``responses`` may be a JSON-able payload, an
    HTTP status code to answer with, or an exception to raise.
    """

    manifest: Any
    responses: dict[str, Any] = field(default_factory=dict)
    accepts_post: bool = True
    accepts_get: bool = True


class FakeAddonNetwork:
    """Routes httpx requests to simulated add-ons keyed by host name."""

    def __init__(self) -> None:
        self.addons: dict[str, FakeAddon] = {}
        self.requests: list[httpx.Request] = []

    def add(self, host: str, manifest: Any, **behaviour: Any) -> str:
        self.addons[host] = FakeAddon(manifest=manifest, **behaviour)
        return f"https://{host}"

    def resource_calls(self, host: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if not request.url.path.endswith("/manifest.json")
            and (host is None or request.url.host == host)
        ]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        addon = self.addons.get(request.url.host)
        if addon is None:
            raise httpx.ConnectError("Name or service not known", request=request)

        if request.url.path.endswith("/manifest.json"):
            return self._respond(addon.manifest)

        if request.method == "POST" and not addon.accepts_post:
            return httpx.Response(405)
        if request.method == "GET" and not addon.accepts_get:
            return httpx.Response(404)
        resource = request.url.path.strip("/").split("/", 1)[0]
        return self._respond(addon.responses.get(resource, {}))

    @staticmethod
    def _respond(outcome: Any) -> httpx.Response:
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome)
        return httpx.Response(200, json=outcome)


@pytest.fixture
def addon_network() -> FakeAddonNetwork:
    return FakeAddonNetwork()
