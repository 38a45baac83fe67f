import json
from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from webapp import create_app
from tests.conftest import make_response

SAB_KEY = "sabkey0123456789"

QUEUE = {"queue": {
    "status": "Downloading", "paused": False, "speed": "1 M", "sizeleft": "1 GB", "timeleft": "0:10:00",
    "slots": [{"nzo_id": "SABnzbd_nzo_1", "filename": "Some.Release", "status": "Downloading",
               "mb": "100", "mbleft": "50", "timeleft": "0:05:00"}],
}}
HISTORY = {"history": {"slots": []}}


class FakeSab:
    """Answers SABnzbd API calls; records every request's params."""

    def __init__(self):
        self.calls = []

    def __call__(self, method, url, params=None, json=None, headers=None, timeout=None):
        params = params or {}
        self.calls.append(dict(params))
        mode, name, value = params.get("mode"), params.get("name"), params.get("value")
        if name == "delete" and value == "gone":
            return make_response(404, text="Not Found", content_type="text/plain")
        if name == "delete" and value == "broken":
            return make_response(500, text="Internal Error", content_type="text/plain")
        if mode == "queue" and not name:
            return make_response(200, QUEUE)
        if mode == "history" and not name:
            return make_response(200, HISTORY)
        return make_response(200, {"status": True})

    def deletes(self):
        return [c for c in self.calls if c.get("name") == "delete"]


@pytest.fixture
def fake():
    return FakeSab()


@pytest.fixture
def settings_path(tmp_path):
    p = tmp_path / "settings.json"
    p.write_text(json.dumps({
        "sabnzbdUrl": "http://sab:8080",
        "sabnzbdKey": SAB_KEY,
        "enablePersistence": True,
    }), encoding="utf-8")
    return p


@pytest.fixture
def client(fake, settings_path):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = fake
    app = create_app(settings_path=settings_path, session=session, sleep=lambda s: None)
    with TestClient(app) as c:
        yield c


def test_index_lists_services(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Home Server Companion" in r.text
    assert 'data-service="sabnzbd"' in r.text


def test_config_read_and_validation(client, settings_path):
    assert client.get("/api/config").json()["sabnzbdUrl"] == "http://sab:8080"
    bad = client.post("/api/config", json={"sonarrKey": "short"})
    assert bad.status_code == 400
    ok = client.post("/api/config", json={"sonarrUrl": "sonarr:8989/", "sonarrKey": "0123456789abcdef"})
    assert ok.status_code == 200
    saved = json.loads(settings_path.read_text(encoding="utf-8"))
    assert saved["sonarrUrl"] == "http://sonarr:8989"
    assert saved["sabnzbdKey"] == SAB_KEY


def test_open_panel_renders_regions_and_remembers_service(client, settings_path):
    r = client.post("/api/panel/sabnzbd/open")
    assert r.status_code == 200
    body = r.json()
    assert body["service"] == "sabnzbd"
    assert body["error"] == ""
    assert "Some.Release" in body["regions"]["queue"]
    assert "History is empty" in body["regions"]["history"]
    assert body["poll"]["active"] is True
    saved = json.loads(settings_path.read_text(encoding="utf-8"))
    assert saved["lastActiveService"] == "sabnzbd"


def test_unconfigured_and_unknown_panels(client):
    assert client.post("/api/panel/sonarr/open").status_code == 400
    assert client.post("/api/panel/plex/open").status_code == 404


def test_delete_requires_confirmation(client, fake):
    r = client.post("/api/sabnzbd/queue/SABnzbd_nzo_1/delete", json={})
    assert r.status_code == 409
    assert r.json()["confirm"]
    assert fake.deletes() == []
    r = client.post("/api/sabnzbd/queue/SABnzbd_nzo_1/delete", json={"confirmed": True})
    assert r.status_code == 200
    assert r.json()["outcome"] == "done"
    assert fake.deletes()[0]["value"] == "SABnzbd_nzo_1"


def test_delete_of_missing_item_is_quiet(client):
    r = client.post("/api/sabnzbd/history/gone/delete", json={"confirmed": True})
    assert r.status_code == 200
    assert r.json()["outcome"] == "already_gone"
    assert "notices" not in client.get("/api/badges").json()


def test_delete_failure_is_surfaced(client):
    r = client.post("/api/sabnzbd/queue/broken/delete", json={"confirmed": True})
    assert r.status_code == 502
    assert r.json()["outcome"] == "failed"
    assert "HTTP 500" in r.json()["message"]
    assert set(client.get("/api/badges").json()) == {"badges"}


def test_timed_pause(client, fake):
    r = client.post("/api/sabnzbd/pause", json={"minutes": 15})
    assert r.status_code == 200
    assert any(c.get("mode") == "config" and c.get("name") == "set_pause" and c.get("value") == 15 for c in fake.calls)


def test_connection_test_endpoint(client):
    r = client.post("/api/services/sabnzbd/test", json={})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "message": "Connection Successful!", "status": None}
    r = client.post("/api/services/radarr/test", json={"url": "", "key": ""})
    assert r.status_code == 400


def test_actions_on_unconfigured_service(client):
    assert client.post("/api/tautulli/sessions/abc/terminate", json={"confirmed": True}).status_code == 400
    assert client.post("/api/unraid/containers/c1/start").status_code == 400


def test_settings_form_builds_inputs_without_markup_interpolation(client):
    r = client.get("/")
    assert 'value="${' not in r.text
    assert "i.value = value" in r.text
    assert '"services": ["sabnzbd", "sonarr", "radarr", "tautulli", "overseerr", "prowlarr", "unraid"]' in r.text
    assert 'id="toolbar"' in r.text


def test_sab_status_offers_pause_durations(client):
    body = client.post("/api/panel/sabnzbd/open").json()
    status = body["regions"]["status"]
    assert status.count('data-action="sab-pause"') == 6
    assert 'data-minutes="180"' in status
    assert body["controls"] == ""


OV_KEY = "ovkey0123456789ab"


def overseerr_fake(method, url, params=None, json=None, headers=None, timeout=None):
    if method == "POST":
        return make_response(200, {"id": 7, "status": 2})
    if url.endswith("/api/v1/request"):
        return make_response(200, {"pageInfo": {"results": 0}, "results": []})
    if url.endswith("/api/v1/search"):
        return make_response(500, text="boom", content_type="text/plain")
    return make_response(404, text="nope", content_type="text/plain")


@pytest.fixture
def ov_client(tmp_path):
    p = tmp_path / "settings.json"
    p.write_text(json.dumps({"overseerrUrl": "http://overseerr:5055", "overseerrKey": OV_KEY}), encoding="utf-8")
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = overseerr_fake
    with TestClient(create_app(settings_path=p, session=session)) as c:
        yield c, session, p


def test_overseerr_routes(ov_client):
    client, session, path = ov_client
    body = client.post("/api/panel/overseerr/open").json()
    assert "No pending requests" in body["html"]
    assert 'data-ui="overseerr-filter"' in body["controls"]

    r = client.post("/api/overseerr/requests/7/approve")
    assert r.status_code == 200 and r.json()["outcome"] == "done"
    assert session.request.call_args_list[-2].args[1] == "http://overseerr:5055/api/v1/request/7/approve"

    assert client.post("/api/overseerr/requests/7/decline", json={}).status_code == 409

    r = client.post("/api/panel/overseerr/filter", json={"filter": "available"})
    assert r.status_code == 200 and r.json()["state"]["filter"] == "available"
    assert json.loads(path.read_text(encoding="utf-8"))["overseerrFilter"] == "available"
    assert client.post("/api/panel/overseerr/filter", json={"filter": "mine"}).status_code == 400

    r = client.post("/api/panel/overseerr/search", json={"query": "matrix"})
    assert r.status_code == 502 and "HTTP 500" in r.json()["error"]
    assert client.post("/api/overseerr/request", json={"mediaId": "x", "mediaType": "movie"}).status_code == 400
