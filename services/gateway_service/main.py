"""
Gateway Service -- single HTTP entry point for the OpenSAM dashboard.

Responsibilities:
1. POST /api/chat       -- chat completion through openai / anthropic / huggingface
2. GET  /api/sam-search -- SAM.gov opportunity search with optional semantic ranking
3. GET  /api/config     -- which provider keys are configured (never their values)
4. GET  /health, /metrics

Process-wide state (HTTP client, rate limiters, caches, adapters) is built
once in the lifespan and kept on app.state; handlers only reach it from
there. Every GatewayError is rendered as a structured JSON body with the
error's HTTP status.
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.gateway_service.config import GatewayConfig
from shared.contracts.search import SearchFilters
from shared.errors import GatewayError, RateLimited, ValidationError
from shared.llm_adapter.cache import EmbeddingCache
from shared.llm_adapter.embeddings import EmbeddingClient
from shared.llm_adapter.factory import build_chat_adapters
from shared.llm_adapter.gateway import ChatGateway, parse_model_spec
from shared.llm_adapter.models import EmbeddingBackend, Provider
from shared.logging.logger import register_secret, setup_logging
from shared.observability.metrics import gateway_requests, metrics_response
from shared.sam.opportunities import SamOpportunitySource
from shared.search.orchestrator import SearchOrchestrator
from shared.utils.rate_limiter import FixedWindowRateLimiter, client_identity
from shared.utils.ttl_cache import ResultCache

SERVICE_NAME = "gateway_service"

logger = logging.getLogger(SERVICE_NAME)

_OPERATIONS = {"/api/chat": "chat", "/api/sam-search": "search", "/api/config": "config"}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _operation(request: Request) -> str:
    return _OPERATIONS.get(request.url.path, "other")


def _caller(request: Request) -> str:
    return client_identity(
        request.headers.get("x-forwarded-for"),
        request.headers.get("x-real-ip"),
        request.client.host if request.client else None,
    )


def _bearer(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


def _parse_bool(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.strip().lower() == "true"


def create_app(
    config: GatewayConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    ``config`` defaults to GatewayConfig.from_env(); ``transport``
    replaces the network for the shared HTTP client (tests pass an
    httpx.MockTransport).
    """
    cfg = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        setup_logging(SERVICE_NAME, cfg.log_level)
        register_secret(
            cfg.openai_api_key,
            cfg.anthropic_api_key,
            cfg.huggingface_api_key,
            cfg.sam_api_key,
        )

        http_client = httpx.AsyncClient(timeout=cfg.http_timeout, transport=transport)

        chat_limiter = FixedWindowRateLimiter(
            "chat", cfg.chat_rate_limit_max, cfg.rate_limit_window_seconds
        )
        search_limiter = FixedWindowRateLimiter(
            "search", cfg.search_rate_limit_max, cfg.rate_limit_window_seconds
        )
        result_cache: ResultCache[list[dict[str, Any]]] = ResultCache(
            ttl_seconds=cfg.search_cache_ttl_seconds
        )
        embeddings = EmbeddingClient(
            http_client,
            cache=EmbeddingCache(max_entries=cfg.embedding_cache_max_entries),
            openai_base_url=cfg.openai_base_url,
            openai_model=cfg.openai_embedding_model,
            hf_url=cfg.huggingface_embedding_url,
            timeout=cfg.http_timeout,
        )

        application.state.config = cfg
        application.state.http_client = http_client
        application.state.chat_gateway = ChatGateway(
            build_chat_adapters(
                http_client,
                openai_base_url=cfg.openai_base_url,
                anthropic_base_url=cfg.anthropic_base_url,
                anthropic_api_style=cfg.anthropic_api_style,
                huggingface_base_url=cfg.huggingface_base_url,
                timeout=cfg.http_timeout,
            ),
            rate_limiter=chat_limiter,
            default_api_keys={
                Provider.OPENAI: cfg.openai_api_key,
                Provider.ANTHROPIC: cfg.anthropic_api_key,
                Provider.HUGGINGFACE: cfg.huggingface_api_key,
            },
        )
        application.state.search = SearchOrchestrator(
            SamOpportunitySource(http_client, base_url=cfg.sam_base_url),
            embeddings,
            rate_limiter=search_limiter,
            cache=result_cache,
            top_n=cfg.semantic_top_n,
        )

        result_cache.start_sweeper(cfg.cache_sweep_interval_seconds)
        logger.info(
            "Gateway Service ready (chat limit=%d/%.0fs, search limit=%d/%.0fs)",
            cfg.chat_rate_limit_max,
            cfg.rate_limit_window_seconds,
            cfg.search_rate_limit_max,
            cfg.rate_limit_window_seconds,
        )
        yield

        logger.info("Shutting down")
        await result_cache.stop_sweeper()
        await http_client.aclose()

    application = FastAPI(
        title="OpenSAM - Gateway Service",
        version="0.1.0",
        description="Multi-provider LLM chat and SAM.gov opportunity search gateway",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(application)
    _register_routes(application)
    return application


def _register_error_handlers(application: FastAPI) -> None:
    @application.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        gateway_requests.labels(operation=_operation(request), outcome=exc.kind).inc()
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after_seconds)))}
        return JSONResponse(
            content={**exc.to_dict(), "timestamp": _now_ms()},
            status_code=exc.http_status,
            headers=headers,
        )

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        error = ValidationError(f"Invalid request: {details}")
        return await gateway_error_handler(request, error)

    @application.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        gateway_requests.labels(operation=_operation(request), outcome="internal_error").inc()
        return JSONResponse(
            content={
                "error": "An unexpected error occurred",
                "type": "internal_error",
                "timestamp": _now_ms(),
            },
            status_code=500,
        )


def _register_routes(application: FastAPI) -> None:
    @application.get("/health")
    async def health():
        return {"status": "ok", "service": SERVICE_NAME}

    @application.get("/metrics")
    async def metrics():
        return metrics_response()

    @application.get("/api/config")
    async def get_config(request: Request):
        cfg: GatewayConfig = request.app.state.config
        keys = {
            "openai": cfg.openai_api_key,
            "anthropic": cfg.anthropic_api_key,
            "huggingface": cfg.huggingface_api_key,
            "sam": cfg.sam_api_key,
        }
        return {
            "config": {
                name: {"apiKey": "Set" if value else "Not set", "hasKey": bool(value)}
                for name, value in keys.items()
            },
            "timestamp": _now_ms(),
        }

    @application.post("/api/chat")
    async def chat(request: Request, request_body: dict[str, Any]):
        """
        Accepts both request encodings:

        - structured: {provider, model, messages, temperature?, maxTokens?, apiKey}
        - combined:   {model: "provider:model", messages, context?: {apiKey?,
                      temperature?, maxTokens?, test?}}

        With context.test the request is validated but no provider is called.
        """
        gateway: ChatGateway = request.app.state.chat_gateway
        model = request_body.get("model")
        context = request_body.get("context") or {}
        if not isinstance(context, dict):
            raise ValidationError("context must be an object")

        if "provider" not in request_body and isinstance(model, str) and ":" in model:
            provider, model = parse_model_spec(model)
            api_key = _bearer(request) or context.get("apiKey")
            temperature = context.get("temperature")
            max_tokens = context.get("maxTokens")
        else:
            provider = request_body.get("provider") or Provider.OPENAI.value
            api_key = request_body.get("apiKey") or _bearer(request)
            temperature = request_body.get("temperature")
            max_tokens = request_body.get("maxTokens")

        if context.get("test"):
            gateway.preflight(
                provider,
                model,
                request_body.get("messages"),
                api_key,
                temperature,
                max_tokens,
                caller=_caller(request),
            )
            gateway_requests.labels(operation="chat", outcome="validated").inc()
            return {"success": True, "message": "API key validation successful"}

        response = await gateway.complete(
            provider,
            model,
            request_body.get("messages"),
            api_key,
            temperature,
            max_tokens,
            caller=_caller(request),
        )
        gateway_requests.labels(operation="chat", outcome="ok").inc()
        return {
            "success": True,
            "data": response.model_dump(mode="json"),
            "timestamp": _now_ms(),
        }

    @application.get("/api/sam-search")
    async def sam_search(
        request: Request,
        q: str | None = None,
        start_date: str | None = Query(None, alias="startDate"),
        end_date: str | None = Query(None, alias="endDate"),
        naics_code: str | None = Query(None, alias="naicsCode"),
        state: str | None = None,
        agency: str | None = None,
        notice_type: str | None = Query(None, alias="type"),
        set_aside: str | None = Query(None, alias="setAside"),
        active: str | None = None,
        limit: int | None = Query(None, ge=1),
        offset: int | None = Query(None, ge=0),
        semantic: str | None = None,
        provider: str = "openai",
        sam_api_key: str | None = Query(None, alias="samApiKey"),
    ):
        cfg: GatewayConfig = request.app.state.config
        orchestrator: SearchOrchestrator = request.app.state.search

        filters = SearchFilters(
            keyword=q or None,
            start_date=start_date or None,
            end_date=end_date or None,
            naics_code=naics_code or None,
            state=state or None,
            agency=agency or None,
            notice_type=notice_type or None,
            set_aside=set_aside or None,
            active=_parse_bool(active),
            limit=limit or 50,
            offset=offset or 0,
        )

        semantic_query = None
        backend = None
        embedding_key = None
        if _parse_bool(semantic) and q and q.strip():
            try:
                backend = EmbeddingBackend.parse(provider)
            except ValueError:
                raise ValidationError(f"Unsupported embedding provider: {provider}") from None
            configured = (
                cfg.openai_api_key
                if backend == EmbeddingBackend.OPENAI
                else cfg.huggingface_api_key
            )
            embedding_key = _bearer(request) or configured
            if embedding_key:
                semantic_query = q

        result = await orchestrator.search(
            filters,
            sam_api_key or cfg.sam_api_key,
            semantic_query=semantic_query,
            embedding_backend=backend,
            embedding_api_key=embedding_key,
            caller=_caller(request),
        )
        gateway_requests.labels(
            operation="search", outcome="cache_hit" if result.cached else "ok"
        ).inc()
        return {
            "success": True,
            "data": result.envelope_data(),
            "cached": result.cached,
            "timestamp": _now_ms(),
        }


app = create_app()
