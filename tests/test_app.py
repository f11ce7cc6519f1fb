"""
test_app.py — HTTP surface of the cover API

Uses FastAPI's TestClient with a fake CoverClient transport, so no request
ever leaves the process.
"""

from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

import app as app_module
import cover_client as cc


SMALL_URL  = "https://i.scdn.co/image/ab67616d00001e02abc"
MEDIUM_URL = "https://i.scdn.co/image/ab67616d0000b273abc"
MAX_URL    = "https://i.scdn.co/image/ab67616d000082c1abc"


def _response(status=200, chunks=(b"",)):
    resp = MagicMock()
    resp.status_code = status
    resp.iter_content.return_value = iter(chunks)
    return resp


@pytest.fixture
def routes():
    return {}


@pytest.fixture
def transport(routes):
    transport = MagicMock()
    transport.prepare.side_effect = lambda method, url: (method, url)

    def send(request, stream=False):
        outcome = routes[request]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    transport.send.side_effect = send
    return transport


@pytest.fixture
def client(monkeypatch, transport):
    monkeypatch.setattr(cc, "_default_client", cc.CoverClient(transport))
    return TestClient(app_module.app)


def test_root_lists_sizes(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["sizes"] == {"SMALL": 300, "MEDIUM": 640, "MAX": 2000}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert r.json()["client_ready"] is True


def test_resolve_medium(client):
    r = client.get("/cover/resolve", params={"url": SMALL_URL})
    assert r.status_code == 200
    assert r.json() == {"url": MEDIUM_URL, "size": "MEDIUM", "max_quality": False}


def test_resolve_max(client, routes):
    routes[("HEAD", MAX_URL)] = _response(200)
    r = client.get("/cover/resolve", params={"url": SMALL_URL, "max_quality": "true"})
    assert r.json() == {"url": MAX_URL, "size": "MAX", "max_quality": True}


def test_resolve_max_falls_back(client, routes):
    routes[("HEAD", MAX_URL)] = requests.Timeout("slow")
    r = client.get("/cover/resolve", params={"url": SMALL_URL, "max_quality": "true"})
    assert r.status_code == 200
    assert r.json()["url"] == MEDIUM_URL


def test_resolve_unknown_url_passes_through(client):
    r = client.get("/cover/resolve", params={"url": "https://example.com/a.jpg"})
    assert r.json() == {
        "url": "https://example.com/a.jpg", "size": None, "max_quality": False,
    }


def test_download_returns_image_bytes(client, routes):
    routes[("GET", MEDIUM_URL)] = _response(200, chunks=(b"\xff\xd8\xff", b"rest"))
    r = client.get("/cover/download", params={"url": SMALL_URL})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert r.content == b"\xff\xd8\xffrest"


def test_download_empty_url_is_400(client):
    r = client.get("/cover/download", params={"url": ""})
    assert r.status_code == 400
    assert r.json()["detail"] == "no URL provided"


def test_download_upstream_404_is_404(client, routes):
    routes[("GET", MEDIUM_URL)] = _response(404)
    r = client.get("/cover/download", params={"url": MEDIUM_URL})
    assert r.status_code == 404
    assert "HTTP 404" in r.json()["detail"]


def test_download_upstream_500_is_502(client, routes):
    routes[("GET", MEDIUM_URL)] = _response(500)
    r = client.get("/cover/download", params={"url": MEDIUM_URL})
    assert r.status_code == 502


def test_download_transport_error_is_502(client, routes):
    routes[("GET", MEDIUM_URL)] = requests.ConnectionError("refused")
    r = client.get("/cover/download", params={"url": MEDIUM_URL})
    assert r.status_code == 502
    assert r.json()["detail"].startswith("failed to download")


def test_download_malformed_url_is_400(client, transport):
    transport.prepare.side_effect = requests.exceptions.MissingSchema("no scheme")
    r = client.get("/cover/download", params={"url": "nonsense"})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("failed to create request")


def test_download_truncated_body_is_502(client, routes):
    resp = _response(200)
    resp.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("truncated")
    routes[("GET", MEDIUM_URL)] = resp
    r = client.get("/cover/download", params={"url": MEDIUM_URL})
    assert r.status_code == 502
    assert r.json()["detail"].startswith("failed to read data")
    resp.close.assert_called_once()


def test_shutdown_closes_default_client(monkeypatch, transport):
    monkeypatch.setattr(cc, "_default_client", cc.CoverClient(transport))
    with TestClient(app_module.app) as test_client:
        assert test_client.get("/health").json()["client_ready"] is True
    transport.close.assert_called_once()
    assert cc._default_client is None
