"""
FastAPI application for external collectors.

Responsibility:
    Thin adapter: reads the raw request, hands it to CollectorGateway and
    turns the GatewayResponse into a JSON response.  No ledger logic lives
    here.

Architecture position:
    Outermost layer.  Built from a ServiceContainer by ``create_app``.

Notes:
    JSON bodies are parsed with ``parse_float=Decimal`` so amounts never
    pass through binary floating point.  A body that is not valid JSON is
    handed to the gateway as ``None`` and refused there (400), which keeps
    the CollectorApiLog row for it.
"""

import json
from decimal import Decimal
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from notice_ledger.config import get_active_config
from notice_ledger.container import ServiceContainer, build_container
from notice_ledger.gateway.collector_gateway import CollectorGateway, GatewayResponse
from notice_ledger.logging_config import LogContext, configure_logging, get_logger

logger = get_logger("api")

CORRELATION_HEADER = "X-Correlation-ID"


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw, parse_float=Decimal)
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("request_body_not_json", extra={"path": request.url.path})
        return None


def _correlation_id(request: Request) -> str:
    return request.headers.get(CORRELATION_HEADER) or str(uuid4())


def _to_response(result: GatewayResponse, correlation_id: str) -> JSONResponse:
    headers = dict(result.headers)
    headers[CORRELATION_HEADER] = correlation_id
    return JSONResponse(status_code=result.http_status, content=result.body, headers=headers)


def build_collector_router(gateway: CollectorGateway) -> APIRouter:
    router = APIRouter(prefix="/collector", tags=["collector"])

    @router.post("/login")
    async def login(request: Request) -> JSONResponse:
        body = await _read_json(request)
        correlation_id = _correlation_id(request)
        with LogContext.bind(correlation_id=correlation_id):
            result = await run_in_threadpool(gateway.login, body)
        return _to_response(result, correlation_id)

    @router.post("/payments")
    async def submit_payment(request: Request) -> JSONResponse:
        body = await _read_json(request)
        correlation_id = _correlation_id(request)
        with LogContext.bind(correlation_id=correlation_id):
            result = await run_in_threadpool(
                gateway.submit_payment, request.headers.get("Authorization"), body
            )
        return _to_response(result, correlation_id)

    @router.get("/payments")
    async def lookup_notice(request: Request) -> JSONResponse:
        correlation_id = _correlation_id(request)
        with LogContext.bind(correlation_id=correlation_id):
            result = await run_in_threadpool(
                gateway.lookup_notice,
                request.headers.get("Authorization"),
                request.query_params.get("noticeNumber"),
            )
        return _to_response(result, correlation_id)

    @router.post("/tax-details")
    async def tax_details(request: Request) -> JSONResponse:
        body = await _read_json(request)
        correlation_id = _correlation_id(request)
        with LogContext.bind(correlation_id=correlation_id):
            result = await run_in_threadpool(
                gateway.tax_details, request.headers.get("Authorization"), body
            )
        return _to_response(result, correlation_id)

    return router


def create_app(container: ServiceContainer) -> FastAPI:
    app = FastAPI(title="Notice Ledger Collector API", version="0.1.0")
    app.include_router(build_collector_router(container.gateway), prefix="/api")

    @app.get("/healthz")
    def health() -> dict[str, bool]:
        return {"ok": True}

    return app


def build_app() -> FastAPI:
    """
    Application from the active configuration.

    Usage::

        uvicorn --factory notice_ledger.api:build_app
    """
    config = get_active_config()
    configure_logging(level=config.log_level)
    container = build_container(config)
    return create_app(container)
