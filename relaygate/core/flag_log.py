"""
Flag log — append-only text sink, one line per flagged check:

    [2024-05-01T12:00:00.000Z] [BOT->WHITE] IP=1.2.3.4 UA=curl/8.0

emit() never blocks the request path: lines go through a bounded queue and a
background task appends them in order. Write failures are reported through
structlog and never reach the request.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from user_agents import parse as parse_ua

import structlog

logger = structlog.get_logger()


def format_flag_line(tag: str, ip: str, ua: str, at: datetime | None = None) -> str:
    at = at or datetime.now(timezone.utc)
    stamp = at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"[{stamp}] [{tag}] IP={ip} UA={ua}\n"


def _ua_summary(ua: str) -> dict:
    if not ua:
        return {}
    parsed = parse_ua(ua)
    return {
        "ua_os": parsed.os.family,
        "ua_browser": parsed.browser.family,
        "ua_device": parsed.device.family,
    }


class FlagLogger:
    def __init__(self, path: str | Path, max_backlog: int = 10_000):
        self.path = Path(path)
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_backlog)
        self._task: asyncio.Task | None = None

    def emit(self, tag: str, ip: str, ua: str) -> None:
        logger.info("request_flagged", tag=tag, ip=ip, **_ua_summary(ua))
        try:
            self._queue.put_nowait(format_flag_line(tag, ip, ua))
        except asyncio.QueueFull:
            logger.warning("flag_log_backlog_full", tag=tag, ip=ip, path=str(self.path))

    def _append(self, lines: list[str]) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            fh.writelines(lines)

    async def _run(self) -> None:
        while True:
            lines = [await self._queue.get()]
            # Drain whatever piled up so a burst becomes one write.
            while not self._queue.empty():
                lines.append(self._queue.get_nowait())
            try:
                await asyncio.to_thread(self._append, lines)
            except Exception as e:
                # The writer must outlive any failure, or close() would wait forever.
                logger.error("flag_log_write_failed", path=str(self.path), lines=len(lines),
                             error=str(e), error_type=type(e).__name__)
            finally:
                for _ in lines:
                    self._queue.task_done()

    async def start(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("flag_log_dir_unavailable", path=str(self.path), error=str(e))
        self._task = asyncio.create_task(self._run())

    async def flush(self) -> None:
        """Wait until every queued line has been written (or failed)."""
        await self._queue.join()

    async def close(self) -> None:
        if self._task is None:
            return
        await self.flush()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
