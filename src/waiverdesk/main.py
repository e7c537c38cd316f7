"""HTTP entrypoint for the waiver admin API."""

from __future__ import annotations

import logging
import time
from asyncio import Lock
from collections.abc import Awaitable, Callable
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .auth import (
    Principal,
    authenticate_admin,
    is_authenticated,
    issue_token,
    require_principal,
)
from .bootstrap import build_ranking, build_suggestion_cache, close_resources, open_store
from .cache import SuggestionCache
from .config import Settings
from .errors import AuthError, ValidationError, WaiverDeskError
from .handlers import (
    create_admin_handler,
    delete_admin_handler,
    error_payload,
    list_admins_handler,
    list_records_handler,
    record_detail_handler,
    search_handler,
    submit_waiver_handler,
    suggestions_handler,
)
from .health import SearchHealthMonitor
from .metrics import metrics_payload, record_http_request
from .ranking import RankingQuery
from .store import WaiverStore

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[dict[str, Any] | Response]]


class WaiverDeskRuntime:
    """Shared runtime objects for the HTTP application."""

    def __init__(
        self,
        *,
        settings: Settings,
        store: WaiverStore,
        ranking: RankingQuery | None = None,
        cache: SuggestionCache | None = None,
        monitor: SearchHealthMonitor | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.ranking = ranking or build_ranking(store, settings)
        self.cache = cache or build_suggestion_cache(settings)
        self.monitor = monitor or SearchHealthMonitor()
        self._shutdown_lock = Lock()
        self._is_shutdown = False

    @classmethod
    async def create(cls, settings: Settings) -> "WaiverDeskRuntime":
        store = await open_store(settings)
        return cls(settings=settings, store=store)

    def principal(self, request: Request) -> Principal:
        return require_principal(request.cookies.get(self.settings.cookie_name), self.settings)

    async def shutdown(self) -> None:
        async with self._shutdown_lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            await close_resources(self.store, self.cache)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON body") from exc


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client is not None:
        return request.client.host
    return "unknown"


def _endpoint(path_label: str, handler: Handler) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        start = time.perf_counter()
        try:
            result = await handler(request)
            response = result if isinstance(result, Response) else JSONResponse(result)
        except WaiverDeskError as exc:
            body, status_code = error_payload(exc)
            if status_code >= 500:
                logger.error("request_failed path=%s error=%s", path_label, exc, exc_info=exc)
            else:
                logger.debug("request_rejected path=%s status=%s error=%s", path_label, status_code, exc)
            response = JSONResponse(body, status_code=status_code)
        except Exception:
            logger.exception("request_crashed path=%s", path_label)
            response = JSONResponse({"error": "Internal server error"}, status_code=500)
        record_http_request(
            request.method,
            path_label,
            response.status_code,
            time.perf_counter() - start,
        )
        return response

    return endpoint


def build_http_app(runtime: WaiverDeskRuntime) -> Starlette:
    settings = runtime.settings

    async def suggestions(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        return await suggestions_handler(
            runtime.ranking,
            runtime.cache,
            query=request.query_params.get("q"),
            monitor=runtime.monitor,
        )

    async def search(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        return await search_handler(
            runtime.ranking,
            query=request.query_params.get("q"),
            monitor=runtime.monitor,
        )

    async def records(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        return await list_records_handler(runtime.ranking, monitor=runtime.monitor)

    async def record_detail(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        return await record_detail_handler(
            runtime.store, waiver_id=request.path_params["waiver_id"]
        )

    async def submit_waiver(request: Request) -> dict[str, Any]:
        payload = await _json_body(request)
        return await submit_waiver_handler(
            runtime.store,
            payload,
            ip_address=_client_address(request),
            user_agent=request.headers.get("user-agent", "unknown"),
        )

    async def login(request: Request) -> Response:
        payload = await _json_body(request)
        if not isinstance(payload, dict):
            raise ValidationError("Username and password are required")
        username = str(payload.get("username") or "").strip()
        password = str(payload.get("password") or "")
        if not username or not password:
            raise ValidationError("Username and password are required")
        if not await authenticate_admin(runtime.store, username, password):
            raise AuthError("Invalid credentials")
        logger.info("admin_login username=%s", username)
        response = JSONResponse({"success": True, "username": username})
        response.set_cookie(
            settings.cookie_name,
            issue_token(username, settings),
            max_age=settings.token_ttl_days * 24 * 60 * 60,
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )
        return response

    async def logout(request: Request) -> Response:
        token = request.cookies.get(settings.cookie_name)
        if is_authenticated(token, settings) is not None:
            await runtime.cache.clear()
        response = JSONResponse({"success": True})
        response.delete_cookie(settings.cookie_name)
        return response

    async def session(request: Request) -> dict[str, Any]:
        principal = runtime.principal(request)
        return {"authenticated": True, "username": principal.username}

    async def list_admins(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        return await list_admins_handler(runtime.store)

    async def create_admin(request: Request) -> dict[str, Any]:
        runtime.principal(request)
        payload = await _json_body(request)
        return await create_admin_handler(runtime.store, settings, payload)

    async def delete_admin(request: Request) -> dict[str, Any]:
        principal = runtime.principal(request)
        return await delete_admin_handler(
            runtime.store, principal, user_id=request.path_params["user_id"]
        )

    async def health(_request: Request) -> dict[str, Any]:
        return {
            "status": "ok",
            "match_mode": runtime.ranking.mode,
            "waivers": await runtime.store.count_waivers(),
            "search": runtime.monitor.summary(),
        }

    async def metrics(_request: Request) -> Response:
        payload, content_type = metrics_payload()
        return Response(payload, media_type=content_type)

    routes = [
        Route("/suggestions", endpoint=_endpoint("suggestions", suggestions), methods=["GET"]),
        Route("/search", endpoint=_endpoint("search", search), methods=["GET"]),
        Route("/records", endpoint=_endpoint("records", records), methods=["GET"]),
        Route(
            "/records/{waiver_id}",
            endpoint=_endpoint("record_detail", record_detail),
            methods=["GET"],
        ),
        Route("/waivers", endpoint=_endpoint("waivers", submit_waiver), methods=["POST"]),
        Route("/login", endpoint=_endpoint("login", login), methods=["POST"]),
        Route("/logout", endpoint=_endpoint("logout", logout), methods=["POST"]),
        Route("/session", endpoint=_endpoint("session", session), methods=["GET"]),
        Route("/admin/users", endpoint=_endpoint("admin_users", list_admins), methods=["GET"]),
        Route("/admin/users", endpoint=_endpoint("admin_users", create_admin), methods=["POST"]),
        Route(
            "/admin/users/{user_id}",
            endpoint=_endpoint("admin_user", delete_admin),
            methods=["DELETE"],
        ),
        Route("/healthz", endpoint=_endpoint("healthz", health), methods=["GET"]),
        Route("/metrics", endpoint=_endpoint("metrics", metrics), methods=["GET"]),
    ]

    return Starlette(routes=routes)


async def serve_http(
    settings: Settings,
    *,
    host: str,
    port: int,
    log_level: str,
) -> None:
    runtime = await WaiverDeskRuntime.create(settings)
    app = build_http_app(runtime)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level.lower(),
        loop="asyncio",
    )
    server = uvicorn.Server(config)

    try:
        logger.info("Starting waiver admin API on %s:%s", host, port)
        await server.serve()
    finally:
        await runtime.shutdown()
