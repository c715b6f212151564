"""
Lander HTML handling — pull the first <img> src out of the upstream page.

Only the first <img> tag counts: if it has no src, there is no image, even
when a later tag has one.
"""

import re
from html.parser import HTMLParser
from urllib.parse import urlparse

ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


class _FirstImageParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.seen_img = False
        self.src: str | None = None

    def handle_starttag(self, tag, attrs):
        if self.seen_img or tag != "img":
            return
        self.seen_img = True
        for name, value in attrs:
            if name == "src":
                self.src = value
                break


def first_image_src(html: str) -> str:
    """src of the first <img> tag, stripped; "" when absent."""
    if not html or "<img" not in html.lower():
        return ""
    parser = _FirstImageParser()
    parser.feed(html)
    parser.close()
    return (parser.src or "").strip()


def absolutize_image_url(src: str, base_url: str, lander_name: str) -> str:
    """Relative src → {origin of base_url}/lander/{lander_name}/{src}."""
    if not src or ABSOLUTE_URL.match(src):
        return src
    parsed = urlparse(base_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    return f"{origin}/lander/{lander_name}/{src.lstrip('/')}"
