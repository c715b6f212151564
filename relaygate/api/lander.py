"""
Lander endpoint — GET /

Flow:
  1. Resolve the client IP (X-Forwarded-For → X-Real-IP → socket)
  2. Guard: bot / VPN / emulator / burst checks → verdict
  3. Build outbound headers (white identity when suspicious)
  4. Fetch the upstream lander and normalize its answer

Never rejects: the caller always gets 200 {"image_url", "site_url"}.
"""

import time

from fastapi import APIRouter, Depends, Request

from relaygate.config import Settings
from relaygate.core.client_ip import client_ip_from_request
from relaygate.core.forwarder import LanderPayload, fetch_lander
from relaygate.core.guard import Guard
from relaygate.core.identity import build_outbound_headers

import structlog

logger = structlog.get_logger()
router = APIRouter()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_guard(request: Request) -> Guard:
    return request.app.state.guard


@router.get("/", response_model=LanderPayload)
async def lander(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    guard: Guard = Depends(get_guard),
):
    started = time.monotonic()
    try:
        ip = client_ip_from_request(request, trust_proxy=settings.trust_proxy)
        verdict = await guard.classify(ip, request.headers.get("user-agent"))

        outbound = build_outbound_headers(
            request.headers,
            real_ip=ip,
            verdict=verdict,
            settings=settings,
            scheme=request.url.scheme,
            host=request.url.netloc,
        )
        payload = await fetch_lander(outbound, settings)
    except Exception:
        logger.exception("lander_failed", path=request.url.path)
        return LanderPayload()

    logger.info(
        "lander_resolved",
        ip=ip,
        suspicious=verdict.suspicious,
        reason=verdict.reason.value,
        req_id=outbound["X-Req-Id"],
        redirected=bool(payload.site_url),
        elapsed_ms=int((time.monotonic() - started) * 1000),
    )
    return payload
