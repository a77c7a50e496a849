"""HTTP surface: the OAuth redirect target and a health probe."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from veribot.models import to_iso, utc_now
from veribot.orchestrator import VerificationOrchestrator

log = logging.getLogger(__name__)

FALLBACK_IP = "127.0.0.1"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return FALLBACK_IP


def create_app(orchestrator: VerificationOrchestrator) -> FastAPI:
    app = FastAPI(title="Verification Gateway", docs_url=None, redoc_url=None)

    @app.get("/verify", response_class=HTMLResponse)
    async def verify(
        request: Request, code: str | None = None, state: str | None = None
    ) -> HTMLResponse:
        page = await orchestrator.handle_callback(code, state, client_ip(request))
        return HTMLResponse(content=page, status_code=200)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": to_iso(utc_now())}

    return app


__all__ = ["client_ip", "create_app"]
