"""Shared FastAPI dependencies for route handlers."""

import hmac

from fastapi import Depends, HTTPException, Request

from tally_server.services import TallyServices


def get_services(request: Request) -> TallyServices:
    """FastAPI dependency that returns the app's engine services or raises 503."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Monitoring services not available")
    return services


async def require_api_key(
    request: Request,
    services: TallyServices = Depends(get_services),
) -> None:
    """Enforce ``Authorization: Bearer <key>`` when ``TALLY_API_KEY`` is set."""
    expected = services.settings.api_key
    if not expected:
        return

    raw_key: str | None = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        raw_key = auth_header.removeprefix("Bearer ").strip()

    if not raw_key:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    if not hmac.compare_digest(raw_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")
