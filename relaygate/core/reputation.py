"""
IP reputation lookup (proxycheck.io).

Flags an IP when the service reports proxy == "yes" or a VPN / Hosting type.
Fails open: any network, status or decode error counts as "not flagged".
Results are memoized in the ReputationCache until their TTL runs out; failed
lookups get a short TTL so a transient outage does not stick.
"""

import httpx

from relaygate.config import Settings
from relaygate.core.cache import ReputationCache

import structlog

logger = structlog.get_logger()

FLAGGED_TYPES = {"VPN", "Hosting"}


class ReputationLookupError(Exception):
    """Reputation service unreachable or returned something unusable."""


def is_flagged(info: dict | None) -> bool:
    if not isinstance(info, dict):
        return False
    return info.get("proxy") == "yes" or info.get("type") in FLAGGED_TYPES


class ReputationClient:
    def __init__(self, cache: ReputationCache, settings: Settings):
        self.cache = cache
        self.settings = settings

    def _lookup_url(self, ip: str) -> str:
        return self.settings.reputation_url.format(ip=ip)

    async def _fetch(self, ip: str) -> dict:
        params = {}
        if self.settings.reputation_api_key:
            params["key"] = self.settings.reputation_api_key

        async with httpx.AsyncClient(timeout=self.settings.reputation_timeout_seconds) as client:
            try:
                resp = await client.get(self._lookup_url(ip), params=params or None)
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                raise ReputationLookupError(str(e)) from e

        if not isinstance(data, dict):
            raise ReputationLookupError(f"unexpected payload type {type(data).__name__}")
        return data

    async def is_proxy_or_vpn(self, ip: str) -> bool:
        if not ip:
            return False

        cached = self.cache.cached_verdict(ip)
        if cached is not None:
            return cached

        ttl = self.settings.reputation_ttl_seconds
        try:
            data = await self._fetch(ip)
            result = is_flagged(data.get(ip))
        except ReputationLookupError as e:
            logger.warning("reputation_lookup_failed", ip=ip, error=str(e))
            result = False
            ttl = self.settings.reputation_failure_ttl_seconds

        self.cache.record_lookup(ip, result, ttl)
        return result
