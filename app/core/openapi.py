"""OpenAPI customization utilities.

Adds tags metadata and documents the 429 response shared by the rate
limited endpoints, keeping documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

RATE_LIMITED_PATHS = ("/v1/analyze-image", "/v1/zone-ingredients")

_RATE_LIMIT_RESPONSE: Dict[str, Any] = {
    "description": "Too many requests for this client in the current window.",
    "headers": {
        "Retry-After": {"description": "Seconds until the window resets.", "schema": {"type": "integer"}},
        "X-RateLimit-Limit": {"description": "Requests allowed per window.", "schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"description": "Requests left in the window.", "schema": {"type": "integer"}},
        "X-RateLimit-Reset": {
            "description": "UNIX epoch milliseconds when the window resets.",
            "schema": {"type": "integer"},
        },
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with tags and 429 documentation."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Food",
                "description": "Meal image analysis and ingredient zoning.",
            },
            {
                "name": "Health",
                "description": "Liveness and rate limiter status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path in RATE_LIMITED_PATHS:
            for method_obj in paths.get(path, {}).values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault("429", _RATE_LIMIT_RESPONSE)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
