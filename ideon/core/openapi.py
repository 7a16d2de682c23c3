"""OpenAPI customization.

Guarded endpoints take the raw ``Request``, so FastAPI cannot infer their
security requirements. This patch declares the two ways to present a
session (bearer token or cookie) and exempts the public paths.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

PUBLIC_PATH_SUFFIXES = (
    "/health",
    "/auth/login",
    "/auth/register",
    "/auth/forgot-password",
    "/auth/reset-password",
)


def apply_openapi_customizations(app: FastAPI, cookie_name: str) -> None:
    """Patch FastAPI's OpenAPI generation to add session security schemes."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "SessionBearer",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "Session token returned by /api/auth/login.",
            },
        )
        security_schemes.setdefault(
            "SessionCookie",
            {"type": "apiKey", "in": "cookie", "name": cookie_name},
        )

        schema.setdefault("security", [{"SessionBearer": []}, {"SessionCookie": []}])

        for path, methods in schema.get("paths", {}).items():
            if path.endswith(PUBLIC_PATH_SUFFIXES) or (
                "/share/" in path and "/projects/" not in path
            ):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
