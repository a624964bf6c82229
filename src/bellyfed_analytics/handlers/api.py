"""Lambda handler for the analytics API.

This module handles API Gateway proxy requests. The operation is the last
path segment (``POST /analytics/track-view``, ``GET /analytics/get-trending``).
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

from ..engine import AnalyticsEngine
from ..exceptions import AnalyticsError, InternalError, NotFoundError, ValidationError
from ..structured_logging import StructuredLogger
from . import build_engine

logger = StructuredLogger(__name__)

Route = Callable[[AnalyticsEngine, dict[str, Any]], Awaitable[dict[str, Any]]]

DEFAULT_ENGAGEMENTS_LIMIT = 50


def json_response(
    status_code: int, body: Any, headers: dict[str, str] | None = None
) -> dict[str, Any]:
    """Create an API Gateway response."""
    response_headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, default=str),
    }


def error_response(status_code: int, message: str, code: str) -> dict[str, Any]:
    """Create an error response."""
    return json_response(status_code, {"error": message, "message": message, "code": code})


def _int_param(params: dict[str, Any], name: str, default: int) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    try:
        return int(str(raw))
    except ValueError:
        raise ValidationError(name, raw, f"{name} must be an integer") from None


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


async def handle_track_view(engine: AnalyticsEngine, body: dict[str, Any]) -> dict[str, Any]:
    """POST track-view - Count a view."""
    result = await engine.ingestor.track_view(
        body.get("entityType"),
        body.get("entityId"),
        user_id=body.get("userId"),
        device_type=body.get("deviceType"),
    )
    return json_response(200, {"message": "View tracked successfully", **result.to_dict()})


async def handle_track_engagement(
    engine: AnalyticsEngine, body: dict[str, Any]
) -> dict[str, Any]:
    """POST track-engagement - Record an engagement."""
    result = await engine.ingestor.track_engagement(
        body.get("entityType"),
        body.get("entityId"),
        body.get("engagementType"),
        user_id=body.get("userId"),
        metadata=body.get("metadata"),
        device_type=body.get("deviceType"),
    )
    return json_response(
        200, {"message": "Engagement tracked successfully", **result.to_dict()}
    )


async def handle_cache_data(engine: AnalyticsEngine, body: dict[str, Any]) -> dict[str, Any]:
    """POST cache-data - Store a value in the cache."""
    key = body.get("key")
    if not key:
        raise ValidationError.required("key")
    if "value" not in body:
        raise ValidationError.required("value")

    await engine.cache.put(key, body["value"], ttl_seconds=body.get("ttl"))
    return json_response(200, {"message": "Data cached successfully", "key": key})


async def handle_get_analytics(engine: AnalyticsEngine, params: dict[str, Any]) -> dict[str, Any]:
    """GET get-analytics - Views, engagements and time series for an entity."""
    report = await engine.query.get_analytics(
        params.get("entityType"),
        params.get("entityId"),
        params.get("period") or None,
    )
    return json_response(200, report.to_dict())


async def handle_get_trending(engine: AnalyticsEngine, params: dict[str, Any]) -> dict[str, Any]:
    """GET get-trending - Top entities of a type."""
    entity_type = params.get("entityType")
    trending = await engine.query.get_trending(
        entity_type,
        _int_param(params, "limit", 10),
        params.get("period") or None,
    )
    return json_response(
        200,
        {"entityType": entity_type, "trending": [entity.to_dict() for entity in trending]},
    )


async def handle_get_cached_data(
    engine: AnalyticsEngine, params: dict[str, Any]
) -> dict[str, Any]:
    """GET get-cached-data - Read a cached value."""
    key = params.get("key")
    if not key:
        raise ValidationError.required("key")

    entry = await engine.query.get_cached(key)
    if entry is None:
        raise NotFoundError("Cached data", key)
    return json_response(200, entry.to_dict())


async def handle_get_engagements(
    engine: AnalyticsEngine, params: dict[str, Any]
) -> dict[str, Any]:
    """GET get-engagements - Recent engagement records for an entity."""
    records = await engine.query.get_engagements(
        params.get("entityType"),
        params.get("entityId"),
        limit=_int_param(params, "limit", DEFAULT_ENGAGEMENTS_LIMIT),
        start_after=params.get("startAfter") or None,
    )
    return json_response(
        200,
        {
            "entityType": params.get("entityType"),
            "entityId": params.get("entityId"),
            "engagements": [record.to_dict() for record in records],
        },
    )


POST_ROUTES: dict[str, Route] = {
    "track-view": handle_track_view,
    "track-engagement": handle_track_engagement,
    "cache-data": handle_cache_data,
}

GET_ROUTES: dict[str, Route] = {
    "get-analytics": handle_get_analytics,
    "get-trending": handle_get_trending,
    "get-cached-data": handle_get_cached_data,
    "get-engagements": handle_get_engagements,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def dispatch(event: dict[str, Any]) -> dict[str, Any]:
    """Route one API Gateway event and map errors to responses."""
    method = event.get("httpMethod", "")
    segments = [segment for segment in (event.get("path") or "").split("/") if segment]
    operation = segments[-1] if segments else ""

    if method == "POST":
        routes = POST_ROUTES
    elif method == "GET":
        routes = GET_ROUTES
    else:
        return error_response(405, "Method not allowed", "method_not_allowed")

    route = routes.get(operation)
    if route is None:
        return error_response(400, "Invalid operation", "invalid_operation")

    if method == "POST":
        try:
            payload = json.loads(event.get("body") or "{}")
        except json.JSONDecodeError:
            return error_response(400, "Request body must be valid JSON", "invalid_json")
        if not isinstance(payload, dict):
            return error_response(400, "Request body must be a JSON object", "invalid_json")
    else:
        payload = event.get("queryStringParameters") or {}

    try:
        async with build_engine() as engine:
            return await route(engine, payload)
    except AnalyticsError as e:
        if e.status_code >= 500:
            logger.error("Request failed", exc_info=True, operation=operation, code=e.code)
        else:
            logger.warning("Request rejected", operation=operation, code=e.code, error=str(e))
        return json_response(e.status_code, e.as_dict())
    except Exception:
        logger.error("Request failed", exc_info=True, operation=operation)
        return json_response(500, InternalError().as_dict())


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Main Lambda handler for the analytics API."""
    logger.info(
        "Request received",
        method=event.get("httpMethod"),
        path=event.get("path"),
    )

    # Handle OPTIONS for CORS preflight
    if event.get("httpMethod") == "OPTIONS":
        return json_response(200, {})

    return asyncio.run(dispatch(event))
