"""
Relaygate configuration.
All tunables come from environment variables (or a local .env file).
"""

import ipaddress
from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # --- App ---
    app_name: str = "Relaygate"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # --- Upstream lander ---
    upstream_url: str = Field(
        default="https://origin.skytalonsacademy.lol/skytalonsplaying",
        validation_alias=AliasChoices("upstream_url", "keitaro_url"),
    )
    upstream_timeout_seconds: float = 10.0
    lander_name: str = "skytalons"

    # --- Substituted identity for suspicious traffic ---
    white_ip: str = Field(
        default="23.239.11.1",
        validation_alias=AliasChoices("white_ip", "white_us_ip"),
    )
    white_ua_mode: Literal["empty", "suffix"] = "suffix"

    # --- Client IP resolution ---
    trust_proxy: bool = True  # use the peer resolved by uvicorn's proxy_headers
    forwarded_allow_ips: str = "127.0.0.1"  # proxies uvicorn trusts for that

    # --- Reputation lookup (proxycheck.io) ---
    reputation_url: str = "https://proxycheck.io/v2/{ip}?vpn=1&asn=1"
    reputation_api_key: str = ""
    reputation_timeout_seconds: float = 5.0
    reputation_ttl_seconds: int = 3600 * 6
    reputation_failure_ttl_seconds: int = 60

    # --- Rate limit / cache ---
    burst_window_ms: int = 2000
    burst_limit: int = 5
    cache_max_entries: int = 100_000

    # --- Flag log ---
    flag_log_path: str = "logs/blocked.log"
    flag_log_backlog: int = 10_000

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @field_validator("white_ua_mode", mode="before")
    @classmethod
    def _lower_ua_mode(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("white_ip")
    @classmethod
    def _valid_ip(cls, v: str) -> str:
        ipaddress.ip_address(v.strip())
        return v.strip()

    @field_validator("upstream_url")
    @classmethod
    def _absolute_http_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("upstream_url must be an absolute http(s) URL")
        return v

    @field_validator("reputation_url")
    @classmethod
    def _has_ip_placeholder(cls, v: str) -> str:
        if "{ip}" not in v:
            raise ValueError("reputation_url must contain an {ip} placeholder")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
