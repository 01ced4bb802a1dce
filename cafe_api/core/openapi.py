"""OpenAPI customization.

Adds the optional bearer security scheme and tag descriptions to the
generated schema, keeping documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {"name": "Rate limit", "description": "Search quota per identity and network address."},
    {"name": "Search state", "description": "Lifecycle of a user-initiated search."},
    {"name": "Place interactions", "description": "Views/saves and the seen-but-unsaved filter."},
    {"name": "User", "description": "Account operations (bearer token required)."},
    {"name": "Enrichment", "description": "Cached, best-effort café enrichment."},
    {"name": "Health", "description": "Liveness checks."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and tags.

    - Injects a ``BearerAuth`` scheme. Every operation accepts it optionally
      (anonymous callers are identified by address), except ``/v1/user/...``
      operations which require it (except the place-interaction filter, which
      also serves anonymous callers)
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "ID token from the identity provider.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                security: list[dict[str, list[str]]] = []
            elif path.startswith("/v1/user/") and not path.startswith(
                "/v1/user/place-interactions"
            ):
                security = [{"BearerAuth": []}]
            else:
                security = [{"BearerAuth": []}, {}]
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
