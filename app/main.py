"""Entry point for the FastAPI-powered add-on aggregation proxy."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from urllib.parse import quote

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings
from .models import RESOURCE_KINDS
from .protocol import RequestParseError, parse_path_request, parse_structured_request
from .services.addon_client import AddonClient
from .services.aggregator import AggregationService
from .services.dispatcher import FanOutDispatcher
from .services.registry import Tenant, TenantNotFoundError, TenantRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

CORS_ALLOW_HEADERS = ["Origin", "X-Requested-With", "Content-Type", "Accept"]


def build_http_client(config: Settings, **kwargs: Any) -> httpx.AsyncClient:
    """Return the shared client used for every upstream call."""

    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            config.upstream_timeout_seconds,
            connect=config.upstream_connect_timeout_seconds,
        ),
        limits=httpx.Limits(max_connections=config.upstream_max_connections),
        headers={"User-Agent": f"{config.app_name} (addonproxy)"},
        follow_redirects=True,
        **kwargs,
    )


def build_service(
    http_client: httpx.AsyncClient, config: Settings = settings
) -> AggregationService:
    client = AddonClient(http_client, protocol_fallback=config.protocol_fallback)
    dispatcher = FanOutDispatcher(timeout=config.upstream_timeout_seconds)
    registry = TenantRegistry(client, dispatcher, app_name=config.app_name)
    return AggregationService(registry, client, dispatcher)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(build_http_client(settings))
    service = build_service(http_client)
    await service.registry.load_directory(settings.config_dir)
    fastapi_app.state.proxy_service = service

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Aggregates several add-ons behind a single manifest",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_proxy_service(app: FastAPI) -> AggregationService:
    service = getattr(app.state, "proxy_service", None)
    if not isinstance(service, AggregationService):
        raise RuntimeError("Proxy service not initialised")
    return service


def undecoded_route(request: Request, route: str) -> str:
    """Return the request path after the tenant segment, still percent-encoded."""

    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return quote(route, safe="/=&:,")
    path = raw_path.split(b"?", 1)[0].decode("latin-1")
    return path.lstrip("/").partition("/")[2]


def register_routes(fastapi_app: FastAPI) -> None:
    def _tenant_or_404(tenant_name: str) -> Tenant:
        service = get_proxy_service(fastapi_app)
        try:
            return service.get_tenant(tenant_name)
        except TenantNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Tenant not found") from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, Any]:
        service = get_proxy_service(fastapi_app)
        return {"status": "ok", "tenants": len(service.registry)}

    @fastapi_app.options("/{path:path}")
    async def preflight(path: str) -> Response:
        return Response(status_code=200)

    @fastapi_app.get("/{tenant_name}/manifest.json")
    async def manifest(tenant_name: str) -> JSONResponse:
        tenant = _tenant_or_404(tenant_name)
        return JSONResponse(tenant.manifest)

    @fastapi_app.post("/{tenant_name}/{resource}")
    async def structured_resource(
        request: Request, tenant_name: str, resource: str
    ) -> JSONResponse:
        tenant = _tenant_or_404(tenant_name)
        if resource not in RESOURCE_KINDS:
            raise HTTPException(status_code=404, detail="Not found")
        try:
            body = await request.json()
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        try:
            descriptor = parse_structured_request(resource, body)
        except RequestParseError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        service = get_proxy_service(fastapi_app)
        return JSONResponse(await service.resolve(tenant, descriptor))

    @fastapi_app.get("/{tenant_name}/{route:path}")
    async def path_resource(
        request: Request, tenant_name: str, route: str
    ) -> JSONResponse:
        tenant = _tenant_or_404(tenant_name)
        try:
            descriptor = parse_path_request(
                undecoded_route(request, route), request.url.query
            )
        except RequestParseError as exc:
            raise HTTPException(status_code=404, detail="Not found") from exc

        service = get_proxy_service(fastapi_app)
        return JSONResponse(await service.resolve(tenant, descriptor))


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
