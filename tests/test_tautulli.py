from urllib.parse import parse_qs, urlsplit

import pytest

from modules._mod_base import Endpoint, ProtocolError
from modules._mod_TAUTULLI import TautulliClient

from tests.conftest import make_response

KEY = "tautkey012345678"


def _envelope(data, result="success", message=None):
    return {"response": {"result": result, "message": message, "data": data}}


@pytest.fixture
def client(session, quiet_log):
    return TautulliClient(Endpoint("http://tautulli:8181", KEY), session=session, logger=quiet_log)


def test_get_activity_parses_sessions(client, session):
    session.request.return_value = make_response(200, _envelope({
        "stream_count": "2",
        "sessions": [
            {"session_id": "abc", "title": "Ep Title", "grandparent_title": "Show", "parent_media_index": "1",
             "media_index": "3", "user": "alice", "state": "playing", "progress_percent": "40",
             "duration": "3600000", "view_offset": "1800000"},
            {"session_id": "def", "title": "Film", "year": "2021", "user": "bob", "state": "paused"},
        ],
    }))
    act = client.get_activity()
    method, url = session.request.call_args.args
    assert url == "http://tautulli:8181/api/v2"
    assert session.request.call_args.kwargs["params"] == {"apikey": KEY, "cmd": "get_activity"}
    assert act.stream_count == 2
    show, film = act.sessions
    assert show.display_title == "Show"
    assert show.subtitle == "1x3 • Ep Title"
    assert show.minutes_left == 30
    assert film.display_title == "Film" and film.subtitle == "2021"
    assert film.minutes_left is None


def test_error_envelope_raises(client, session):
    session.request.return_value = make_response(200, _envelope(None, result="error", message="Invalid apikey"))
    with pytest.raises(ProtocolError, match="Invalid apikey"):
        client.get_activity()


def test_terminate_uses_default_reason(client, session):
    session.request.return_value = make_response(200, _envelope({}))
    client.terminate_session("abc")
    params = session.request.call_args.kwargs["params"]
    assert params["cmd"] == "terminate_session"
    assert params["session_id"] == "abc"
    assert params["message"] == "Terminated by Admin"
    client.terminate_session("abc", "Bandwidth")
    assert session.request.call_args.kwargs["params"]["message"] == "Bandwidth"


def test_image_proxy_url_carries_key(client):
    url = client.image_url("/library/metadata/1/thumb/2", width=300)
    parts = urlsplit(url)
    assert parts.path == "/pms_image_proxy"
    q = parse_qs(parts.query)
    assert q["img"] == ["/library/metadata/1/thumb/2"]
    assert q["width"] == ["300"]
    assert q["apikey"] == [KEY]
    assert client.image_url("") == ""
