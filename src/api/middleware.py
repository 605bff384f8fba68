"""Per-request store, authentication and quota admission.

Every ``/api`` request gets its own store connection, kept on
``request.state`` and closed once the response is produced. All routes
except the health check require an API key and consume one call of the
caller's quota.
"""

import sqlite3
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.auth import authenticate
from src.api.errors import store_unavailable_response
from src.observability.logging import bind_request_context, clear_request_context
from src.quota import QuotaDecision, QuotaTracker
from src.search.errors import AuthError
from src.store import SearchStore, StateStoreError


logger = structlog.get_logger()

API_PREFIX = "/api"
HEALTH_PATH = "/api/health"
REQUEST_ID_HEADER = "X-Request-ID"


def rate_limit_headers(decision: QuotaDecision) -> dict[str, str]:
    """Rate limit headers for an admission decision."""
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": decision.reset_at.isoformat(),
    }


def denial_payload(decision: QuotaDecision) -> dict[str, object]:
    """Body of a 429 response."""
    return {
        "allowed": False,
        "remaining": decision.remaining,
        "limit": decision.limit,
        "resetAt": decision.reset_at.isoformat(),
        "message": decision.message,
    }


class QuotaMiddleware(BaseHTTPMiddleware):
    """Opens the request store, authenticates and admits API calls."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        if not path.startswith(API_PREFIX):
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_request_context(request_id)
        log = logger.bind(component="api", subcomponent="middleware")
        store = SearchStore(request.app.state.settings.db_path, run_id=request_id)
        try:
            try:
                await run_in_threadpool(store.connect)
            except StateStoreError:
                return store_unavailable_response()
            request.state.store = store

            if path == HEALTH_PATH:
                return await call_next(request)

            try:
                caller_id = await run_in_threadpool(
                    authenticate, store, request.headers.get("Authorization")
                )
            except AuthError as e:
                log.info("auth_rejected", path=path, reason=e.message)
                return JSONResponse(status_code=e.status_code, content=e.to_dict())
            request.state.caller_id = caller_id
            bind_request_context(request_id, caller_id)

            tracker = QuotaTracker(store, config=request.app.state.config.quota)
            try:
                decision = await run_in_threadpool(tracker.admit, caller_id)
            except (StateStoreError, sqlite3.Error) as e:
                log.error("admission_failed", error=str(e))
                return store_unavailable_response()

            headers = rate_limit_headers(decision)
            if not decision.allowed:
                response: Response = JSONResponse(
                    status_code=429, content=denial_payload(decision), headers=headers
                )
            else:
                response = await call_next(request)
                response.headers.update(headers)

            await self._log_usage(tracker, caller_id, request, response, decision)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            store.close()
            clear_request_context()

    @staticmethod
    async def _log_usage(
        tracker: QuotaTracker,
        caller_id: str,
        request: Request,
        response: Response,
        decision: QuotaDecision,
    ) -> None:
        try:
            await run_in_threadpool(
                tracker.log_usage,
                caller_id,
                request.url.path,
                request.method,
                response.status_code,
                decision.remaining,
            )
        except (StateStoreError, sqlite3.Error) as e:
            logger.warning(
                "usage_log_failed", component="api", caller_id=caller_id, error=str(e)
            )
