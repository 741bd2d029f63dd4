"""OpenAPI customization for rate limited operations.

Every rate limited operation can answer HTTP 429. Those responses come from
middleware, so FastAPI never sees them; this helper documents them in the
generated schema together with the X-RateLimit-* headers and tag metadata.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from fastapi import FastAPI

from app.schemas.rate_limit import RateLimitErrorResponse

_RATE_LIMIT_HEADERS = {
    "X-RateLimit-Limit": "Requests admitted per window for this route class.",
    "X-RateLimit-Remaining": "Requests left in the current window.",
    "X-RateLimit-Reset": "UNIX epoch seconds when the current window ends.",
    "X-RateLimit-Window": "Window length in seconds.",
}

_TAGS = [
    {"name": "Rate limit", "description": "Inspect quotas and the in-process counter store."},
    {"name": "Health", "description": "Liveness checks (never rate limited)."},
]


def _header_objects(names: Iterable[str]) -> Dict[str, Any]:
    return {
        name: {"description": _RATE_LIMIT_HEADERS.get(name, "Seconds to wait before retrying."), "schema": {"type": "integer"}}
        for name in names
    }


def apply_openapi_customizations(app: FastAPI, *, exempt_paths: Iterable[str] = ()) -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting.

    - Registers the 429 error body as ``components.schemas.RateLimitErrorResponse``
    - Adds a 429 response with ``Retry-After`` to every non-exempt operation
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi
    exempt = tuple(exempt_paths)

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        schemas = components.setdefault("schemas", {})
        schemas.setdefault("RateLimitErrorResponse", RateLimitErrorResponse.model_json_schema(
            ref_template="#/components/schemas/{model}"
        ))
        for name, definition in schemas["RateLimitErrorResponse"].pop("$defs", {}).items():
            schemas.setdefault(name, definition)

        too_many_requests = {
            "description": "Rate limit exceeded",
            "headers": _header_objects([*_RATE_LIMIT_HEADERS, "Retry-After"]),
            "content": {
                "application/json": {"schema": {"$ref": "#/components/schemas/RateLimitErrorResponse"}}
            },
        }

        for path, methods in schema.get("paths", {}).items():
            if any(path == p or path.startswith(p.rstrip("/") + "/") for p in exempt):
                continue
            for operation in methods.values():
                if isinstance(operation, dict):
                    operation.setdefault("responses", {}).setdefault("429", too_many_requests)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
