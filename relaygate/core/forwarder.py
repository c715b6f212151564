"""
Upstream forwarder — one GET to the lander, following redirects.

  redirected  → {"image_url": "", "site_url": <final url>}
  HTML page   → {"image_url": <first <img> src, absolute>, "site_url": ""}
  any failure → {"image_url": "", "site_url": ""}
"""

import httpx
from pydantic import BaseModel

from relaygate.config import Settings
from relaygate.core.lander import absolutize_image_url, first_image_src

import structlog

logger = structlog.get_logger()


class LanderPayload(BaseModel):
    image_url: str = ""
    site_url: str = ""


async def fetch_lander(headers: dict[str, str], settings: Settings) -> LanderPayload:
    url = settings.upstream_url

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=settings.upstream_timeout_seconds,
    ) as client:
        try:
            resp = await client.get(url, headers=headers)
            if resp.url != httpx.URL(url):
                logger.info("lander_redirect", site_url=str(resp.url), hops=len(resp.history))
                return LanderPayload(site_url=str(resp.url))
            html = resp.text
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("upstream_fetch_failed", url=url, error=str(e),
                           req_id=headers.get("X-Req-Id"))
            return LanderPayload()

    src = first_image_src(html)
    image_url = absolutize_image_url(src, url, settings.lander_name)
    logger.info("lander_page", status=resp.status_code, image_found=bool(image_url))
    return LanderPayload(image_url=image_url)
