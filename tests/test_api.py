"""End-to-end tests for GET / through the FastAPI app."""

import httpx
import pytest
from fastapi.testclient import TestClient

from relaygate.main import create_app

REAL_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CLIENT_IP = "198.51.100.7"
LANDER_HTML = '<html><body><img id="x" src="/img/pic.png"></body></html>'


class Upstream:
    """Fake proxycheck.io + lander behind one MockTransport."""

    def __init__(self, lander=None, flagged_ips=()):
        self.lander = lander or (lambda request: httpx.Response(200, text=LANDER_HTML))
        self.flagged_ips = set(flagged_ips)
        self.lander_requests: list[httpx.Request] = []
        self.reputation_requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "proxycheck.io":
            self.reputation_requests.append(request)
            ip = request.url.path.rsplit("/", 1)[-1]
            proxy = "yes" if ip in self.flagged_ips else "no"
            return httpx.Response(200, json={"status": "ok", ip: {"proxy": proxy, "type": "Residential"}})
        self.lander_requests.append(request)
        return self.lander(request)


@pytest.fixture
def upstream(mock_http):
    def install(**kwargs):
        fake = Upstream(**kwargs)
        mock_http(fake)
        return fake
    return install


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


def _get(client, ua=REAL_CHROME_UA, **headers):
    return client.get("/", headers={"User-Agent": ua, "X-Forwarded-For": CLIENT_IP, **headers})


class TestLanderEndpoint:
    def test_clean_visitor_gets_image_and_real_identity(self, client, upstream):
        fake = upstream()
        resp = _get(client)

        assert resp.status_code == 200
        assert resp.json() == {
            "image_url": "https://origin.example/lander/skytalons/img/pic.png",
            "site_url": "",
        }
        sent = fake.lander_requests[0].headers
        assert sent["user-agent"] == REAL_CHROME_UA
        assert sent["x-forwarded-for"] == CLIENT_IP
        assert sent["cf-connecting-ip"] == CLIENT_IP
        assert sent["x-real-ip"] == CLIENT_IP

    def test_redirect_returns_site_url(self, client, upstream):
        def lander(request):
            if request.url.host == "origin.example":
                return httpx.Response(302, headers={"Location": "https://example.com/x"})
            return httpx.Response(200, text="offer page")

        upstream(lander=lander)
        resp = _get(client)
        assert resp.json() == {"image_url": "", "site_url": "https://example.com/x"}

    def test_no_image_returns_empty_payload(self, client, upstream):
        upstream(lander=lambda request: httpx.Response(200, text="<p>nothing</p>"))
        assert _get(client).json() == {"image_url": "", "site_url": ""}

    def test_upstream_failure_still_200(self, client, upstream):
        def lander(request):
            raise httpx.ConnectError("down")

        upstream(lander=lander)
        resp = _get(client)
        assert resp.status_code == 200
        assert resp.json() == {"image_url": "", "site_url": ""}

    def test_bot_gets_white_identity(self, client, upstream):
        fake = upstream()
        _get(client, ua="MyBot/1.0", **{"X-Forwarded-For": f"{CLIENT_IP}, unknown, 10.0.0.1"})

        sent = fake.lander_requests[0].headers
        assert sent["user-agent"] == "MyBot/1.0 bot"
        assert sent["x-forwarded-for"] == f"23.239.11.1, {CLIENT_IP}, 10.0.0.1"
        assert sent["cf-connecting-ip"] == "23.239.11.1"
        assert sent["true-client-ip"] == "23.239.11.1"
        assert sent["x-real-ip"] == "23.239.11.1"
        # Reputation is still consulted for the real IP
        assert fake.reputation_requests[0].url.path == f"/v2/{CLIENT_IP}"

    def test_vpn_visitor_gets_white_identity(self, client, upstream):
        fake = upstream(flagged_ips={CLIENT_IP})
        _get(client)
        assert fake.lander_requests[0].headers["x-real-ip"] == "23.239.11.1"
        assert fake.lander_requests[0].headers["user-agent"] == f"{REAL_CHROME_UA} bot"

    def test_burst_flags_sixth_request(self, client, upstream):
        fake = upstream()
        for _ in range(6):
            _get(client)

        ips = [r.headers["x-real-ip"] for r in fake.lander_requests]
        assert ips == [CLIENT_IP] * 5 + ["23.239.11.1"]
        assert len(fake.reputation_requests) == 1

    def test_request_id_forwarded(self, client, upstream):
        fake = upstream()
        _get(client, **{"X-Request-Id": "rid-42"})
        assert fake.lander_requests[0].headers["x-req-id"] == "rid-42"

    def test_request_id_generated(self, client, upstream):
        fake = upstream()
        _get(client)
        assert fake.lander_requests[0].headers["x-req-id"]

    def test_transport_address_used_without_forwarding(self, client, upstream):
        fake = upstream()
        client.get("/", headers={"User-Agent": REAL_CHROME_UA})
        # TestClient reports its peer as "testclient"
        assert fake.lander_requests[0].headers["x-real-ip"] == "testclient"

    def test_client_sent_real_ip_header_is_not_trusted(self, client, upstream):
        fake = upstream()
        client.get("/", headers={"User-Agent": REAL_CHROME_UA, "X-Real-IP": "6.6.6.6"})
        sent = fake.lander_requests[0].headers
        assert sent["x-real-ip"] == "testclient"
        assert sent["x-forwarded-for"] == "testclient"
        assert fake.reputation_requests[0].url.path == "/v2/testclient"


class TestUaModes:
    def test_empty_mode(self, settings, upstream):
        settings.white_ua_mode = "empty"
        fake = upstream()
        with TestClient(create_app(settings)) as c:
            _get(c, ua="curl/8.4.0")
        assert fake.lander_requests[0].headers["user-agent"] == ""


class TestFlagLogFile:
    def test_flagged_checks_written_on_shutdown(self, settings, upstream):
        upstream(flagged_ips={CLIENT_IP})
        with TestClient(create_app(settings)) as c:
            _get(c, ua="curl/8.4.0")

        lines = open(settings.flag_log_path).read().splitlines()
        assert len(lines) == 2
        assert f"[BOT->WHITE] IP={CLIENT_IP} UA=curl/8.4.0" in lines[0]
        assert f"[VPN/PROXY->WHITE] IP={CLIENT_IP} UA=curl/8.4.0" in lines[1]


class TestCorsAndHealth:
    def test_options_short_circuits(self, client):
        resp = client.options("/anything")
        assert resp.status_code == 204
        assert resp.content == b""
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
        assert "X-Correlation-Id" in resp.headers["access-control-allow-headers"]

    def test_cors_headers_on_get(self, client, upstream):
        upstream()
        resp = _get(client)
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["cache-control"].startswith("no-store")

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
