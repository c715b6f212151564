"""
Request guard — decides whether a request gets the substituted ("white") identity.

Checks, always all four, in this order:
  1. Bot signature in the User-Agent (or no User-Agent at all)
  2. VPN / proxy / hosting IP (reputation lookup, cached)
  3. Emulator signature in the User-Agent
  4. Burst rate limit (> burst_limit requests inside the burst window)

Design: nothing is blocked. The first matching check sets the verdict; later
checks still run, still update the cache and still write their flag line.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from relaygate.core.cache import ReputationCache

import structlog

logger = structlog.get_logger()


class Reason(str, Enum):
    NONE = "none"
    BOT = "bot"
    VPN_PROXY = "vpn_proxy"
    EMULATOR = "emulator"
    RATE_LIMIT = "rate_limit"


FLAG_TAGS: dict[Reason, str] = {
    Reason.BOT: "BOT->WHITE",
    Reason.VPN_PROXY: "VPN/PROXY->WHITE",
    Reason.EMULATOR: "EMULATOR->WHITE",
    Reason.RATE_LIMIT: "RATE_LIMIT->WHITE",
}

# Crawlers, headless browsers, uptime probes, HTTP client libraries
BOT_UA_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in [
        r"bot",
        r"spider",
        r"crawl",
        r"headless",
        r"render\s?bot",
        r"monitor",
        r"curl",
        r"wget",
        r"pingdom",
        r"uptime",
        r"facebookexternalhit",
        r"python-requests",
        r"node-fetch",
        r"httpclient",
        r"postmanruntime",
        r"cf-network",
        r"datadog",
        r"newrelic",
    ]
]

# Emulator builds that announce themselves
STRONG_EMULATOR_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in [
        r"sdk_gphone",
        r"google_sdk",
        r"android sdk built for",
        r"genymotion",
        r"bluestacks",
        r"noxplayer|nox",
        r"ldplayer",
        r"memu",
        r"mumu",
        r"virtualbox|vbox",
        r"\bemulator\b",
        r"arc ?hon",
    ]
]

ANDROID_PATTERN = re.compile(r"android", re.IGNORECASE)
X86_PATTERN = re.compile(r"x86_64|\bx86\b|i686|amd64", re.IGNORECASE)
REAL_DEVICE_BRANDS = re.compile(
    r"pixel|samsung|sm-|huawei|honor|xiaomi|redmi|oneplus|oppo|vivo|sony|xperia"
    r"|motorola|moto|nokia|nothing|realme|lenovo|tecno|infinix",
    re.IGNORECASE,
)


def detect_bot(user_agent: str | None) -> bool:
    ua = user_agent or ""
    if not ua.strip():
        return True
    return any(p.search(ua) for p in BOT_UA_PATTERNS)


def detect_emulator(user_agent: str | None) -> bool:
    """Strong signature, or Android on x86 without a known handset brand."""
    ua = user_agent or ""
    if any(p.search(ua) for p in STRONG_EMULATOR_PATTERNS):
        return True
    return bool(
        ANDROID_PATTERN.search(ua)
        and X86_PATTERN.search(ua)
        and not REAL_DEVICE_BRANDS.search(ua)
    )


@dataclass(frozen=True)
class Verdict:
    suspicious: bool = False
    reason: Reason = Reason.NONE


CLEAN = Verdict()


class ProxyChecker(Protocol):
    async def is_proxy_or_vpn(self, ip: str) -> bool: ...


class FlagSink(Protocol):
    def emit(self, tag: str, ip: str, ua: str) -> None: ...


class Guard:
    def __init__(
        self,
        cache: ReputationCache,
        reputation: ProxyChecker,
        flag_log: FlagSink,
        burst_limit: int = 5,
    ):
        self.cache = cache
        self.reputation = reputation
        self.flag_log = flag_log
        self.burst_limit = burst_limit

    async def classify(self, ip: str, user_agent: str | None) -> Verdict:
        ua = user_agent or ""
        matched: list[Reason] = []

        def flag(reason: Reason) -> None:
            matched.append(reason)
            self.flag_log.emit(FLAG_TAGS[reason], ip, ua)

        # --- 1. Bot signature ---
        if detect_bot(ua):
            flag(Reason.BOT)

        # --- 2. VPN / proxy (always looked up, even for bots) ---
        if await self.reputation.is_proxy_or_vpn(ip):
            flag(Reason.VPN_PROXY)

        # --- 3. Emulator ---
        if detect_emulator(ua):
            flag(Reason.EMULATOR)

        # --- 4. Burst rate limit (always counts) ---
        count = self.cache.register_hit(ip)
        if count > self.burst_limit:
            flag(Reason.RATE_LIMIT)

        if not matched:
            return CLEAN

        verdict = Verdict(suspicious=True, reason=matched[0])
        logger.debug("request_classified", ip=ip, reason=verdict.reason.value,
                     matched=[r.value for r in matched], burst_count=count)
        return verdict
