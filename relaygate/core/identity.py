"""
Outbound identity — the headers sent to the upstream lander.

Suspicious requests get the configured white IP and a marked User-Agent;
clean requests keep their real IP and UA. The chosen IP always leads the
X-Forwarded-For chain and is repeated in every IP header the upstream might read.
"""

import uuid
from collections.abc import Mapping

from relaygate.config import Settings
from relaygate.core.guard import Verdict

REQUEST_ID_HEADERS = ("x-req-id", "x-request-id", "x-correlation-id")
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"
DEFAULT_ACCEPT = "*/*"


def substitute_user_agent(user_agent: str, suspicious: bool, mode: str = "suffix") -> str:
    if not suspicious:
        return user_agent
    if mode == "empty":
        return ""
    return f"{user_agent} bot" if user_agent else "bot"


def build_forwarded_for(incoming: str | None, client_ip: str) -> str:
    parts = [p.strip() for p in (incoming or "").split(",")]
    rest = [p for p in parts if p and p != client_ip and p != "unknown"]
    chain = [client_ip, *rest] if client_ip else rest
    return ", ".join(chain)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def request_id(headers: Mapping[str, str]) -> str:
    for name in REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return generate_request_id()


def build_outbound_headers(
    headers: Mapping[str, str],
    real_ip: str,
    verdict: Verdict,
    settings: Settings,
    scheme: str = "http",
    host: str = "",
) -> dict[str, str]:
    """headers must be case-insensitive (Starlette Headers or lower-cased keys)."""
    client_ip = settings.white_ip if verdict.suspicious else real_ip
    ua = substitute_user_agent(
        headers.get("user-agent") or "",
        verdict.suspicious,
        settings.white_ua_mode,
    )

    return {
        "User-Agent": ua,
        "Accept-Language": headers.get("accept-language") or DEFAULT_ACCEPT_LANGUAGE,
        "Accept": headers.get("accept") or DEFAULT_ACCEPT,
        "X-Forwarded-For": build_forwarded_for(headers.get("x-forwarded-for"), client_ip),
        "CF-Connecting-IP": client_ip,
        "True-Client-IP": client_ip,
        "X-Real-IP": client_ip,
        "X-Forwarded-Proto": headers.get("x-forwarded-proto") or scheme,
        "X-Forwarded-Host": headers.get("x-forwarded-host") or headers.get("host") or host,
        "X-Req-Id": request_id(headers),
    }
