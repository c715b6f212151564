"""
Client IP resolution.

Priority chain:
  1. First entry of X-Forwarded-For (the original client, by convention)
  2. Peer address as resolved by the server's proxy layer, when trust_proxy is on
  3. Transport remote address

Only trust forwarding headers when the service sits behind a proxy you control.
Client-settable headers such as X-Real-IP are never read.
"""

from fastapi import Request

IPV4_MAPPED_PREFIX = "::ffff:"


def normalize_ip(raw: str | None) -> str:
    """Strip IPv4-mapped-IPv6 notation and whitespace. Never raises."""
    if not raw:
        return ""
    ip = str(raw).strip()
    if ip.lower().startswith(IPV4_MAPPED_PREFIX):
        ip = ip[len(IPV4_MAPPED_PREFIX):]
    return ip.strip()


def resolve_client_ip(
    forwarded_for: str | None,
    platform_ip: str | None,
    remote_addr: str | None,
    trust_proxy: bool = True,
) -> str:
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return normalize_ip(first)

    if trust_proxy and platform_ip and platform_ip.strip():
        return normalize_ip(platform_ip)

    return normalize_ip(remote_addr)


def client_ip_from_request(request: Request, trust_proxy: bool = True) -> str:
    # request.client is the socket peer, or the proxy-resolved peer when
    # uvicorn runs with proxy_headers (see main.py); both come from the server.
    peer = request.client.host if request.client else ""
    return resolve_client_ip(
        request.headers.get("x-forwarded-for"),
        peer,
        peer,
        trust_proxy=trust_proxy,
    )
