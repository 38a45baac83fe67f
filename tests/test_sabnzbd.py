import pytest

from modules._mod_base import Endpoint, ProtocolError
from modules._mod_SABNZBD import SabnzbdClient
from tests.conftest import make_response

KEY = "sabkey0123456789"

QUEUE = {
    "queue": {
        "status": "Downloading",
        "paused": False,
        "speed": "12.3 M",
        "sizeleft": "1.2 GB",
        "timeleft": "0:10:00",
        "slots": [
            {"nzo_id": "SABnzbd_nzo_1", "filename": "Some.Show.S01E01", "status": "Downloading",
             "mb": "100.0", "mbleft": "25.0", "timeleft": "0:05:00"},
            {"nzo_id": "SABnzbd_nzo_2", "filename": "Other", "status": "Queued",
             "mb": "0", "mbleft": "0", "timeleft": "0:00:00"},
        ],
    }
}


@pytest.fixture
def client(session, quiet_log):
    return SabnzbdClient(Endpoint("http://sab:8080", KEY), session=session, logger=quiet_log)


def _params(session):
    return session.request.call_args.kwargs["params"]


def test_get_queue_builds_url_and_parses_slots(client, session):
    session.request.return_value = make_response(200, QUEUE)
    snap = client.get_queue()
    method, url = session.request.call_args.args
    assert (method, url) == ("GET", "http://sab:8080/api")
    assert _params(session) == {"mode": "queue", "apikey": KEY, "output": "json"}
    assert snap.status == "Downloading" and snap.paused is False
    assert [s.nzo_id for s in snap.slots] == ["SABnzbd_nzo_1", "SABnzbd_nzo_2"]
    assert snap.slots[0].percent == 75
    assert snap.slots[1].percent == 0


def test_get_history_passes_limit(client, session):
    session.request.return_value = make_response(200, {"history": {"slots": [
        {"nzo_id": "h1", "name": "Done", "status": "Completed", "completed": 1714557600, "bytes": 2048},
        {"nzo_id": "h2", "name": "Broken", "status": "Failed", "completed": 1714557000, "bytes": 0,
         "fail_message": "CRC error"},
    ]}})
    snap = client.get_history(limit=10)
    assert _params(session)["mode"] == "history"
    assert _params(session)["limit"] == 10
    assert [h.ok for h in snap.slots] == [True, False]
    assert snap.slots[1].fail_message == "CRC error"


def test_error_envelope_raises(client, session):
    session.request.return_value = make_response(200, {"status": False, "error": "API Key Incorrect"})
    with pytest.raises(ProtocolError, match="API Key Incorrect"):
        client.get_queue()


def test_slot_without_id_is_rejected(client, session):
    session.request.return_value = make_response(200, {"queue": {"slots": [{"filename": "x"}]}})
    with pytest.raises(ProtocolError):
        client.get_queue()


def test_pause_resume_and_timed_pause(client, session):
    session.request.return_value = make_response(200, {"status": True})
    client.pause()
    assert _params(session)["mode"] == "pause"
    client.pause(minutes=30)
    assert _params(session) == {"mode": "config", "apikey": KEY, "output": "json", "name": "set_pause", "value": 30}
    client.resume()
    assert _params(session)["mode"] == "resume"


def test_delete_items(client, session):
    session.request.return_value = make_response(200, {"status": True})
    client.delete_queue_item("SABnzbd_nzo_1")
    assert _params(session) == {"mode": "queue", "apikey": KEY, "output": "json", "name": "delete", "value": "SABnzbd_nzo_1"}
    client.delete_history_item("h1")
    assert _params(session)["mode"] == "history"
    assert _params(session)["value"] == "h1"
