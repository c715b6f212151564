"""
Per-IP reputation cache.

One entry per client IP, shared by:
  - the reputation lookup (memoized is_proxy verdict)
  - the burst rate limiter (last-seen timestamp + request count)

All mutations are synchronous, so on a single event loop a read-modify-write
never interleaves with another request. Concurrent lookups for an IP that is
not cached yet can still both hit the reputation service; that is accepted.

Bounded: least-recently-used entries are evicted past max_entries.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    is_proxy: bool | None = None
    proxy_expires_at: float | None = None  # time.monotonic() deadline
    last: int = 0  # epoch ms of the latest request
    count: int = 0

    def has_fresh_verdict(self, monotonic_now: float) -> bool:
        if self.is_proxy is None:
            return False
        return self.proxy_expires_at is None or monotonic_now < self.proxy_expires_at


class ReputationCache:
    def __init__(self, max_entries: int = 100_000, burst_window_ms: int = 2000):
        self.max_entries = max_entries
        self.burst_window_ms = burst_window_ms
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ip: str) -> bool:
        return ip in self._entries

    def get(self, ip: str) -> CacheEntry | None:
        entry = self._entries.get(ip)
        if entry is not None:
            self._entries.move_to_end(ip)
        return entry

    def _get_or_create(self, ip: str) -> CacheEntry:
        entry = self.get(ip)
        if entry is None:
            entry = CacheEntry()
            self._entries[ip] = entry
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return entry

    def cached_verdict(self, ip: str) -> bool | None:
        """Cached is_proxy for ip, or None when absent or stale."""
        entry = self.get(ip)
        if entry is None or not entry.has_fresh_verdict(time.monotonic()):
            return None
        return entry.is_proxy

    def record_lookup(self, ip: str, is_proxy: bool, ttl_seconds: float | None) -> CacheEntry:
        """
        Store a lookup result. count is preserved. last is only stamped on a new
        entry; a re-lookup after expiry must not hide an idle gap from register_hit.
        """
        is_new = ip not in self._entries
        entry = self._get_or_create(ip)
        entry.is_proxy = is_proxy
        entry.proxy_expires_at = time.monotonic() + ttl_seconds if ttl_seconds is not None else None
        if is_new:
            entry.last = now_ms()
        return entry

    def register_hit(self, ip: str, at_ms: int | None = None) -> int:
        """
        Count a request against the burst window and return the new count.
        A gap shorter than the window continues the burst, anything else resets it.
        """
        at_ms = now_ms() if at_ms is None else at_ms
        entry = self._get_or_create(ip)
        if at_ms - entry.last < self.burst_window_ms:
            entry.count += 1
        else:
            entry.count = 1
        entry.last = at_ms
        return entry.count
