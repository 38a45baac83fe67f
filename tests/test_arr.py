from datetime import datetime, timezone

import pytest

from modules._mod_ARR import ArrImage, find_image
from modules._mod_base import Endpoint, HttpError
from modules._mod_RADARR import RadarrClient
from modules._mod_SONARR import SonarrClient
from tests.conftest import make_response

KEY = "arrkey0123456789"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sonarr(session, quiet_log):
    return SonarrClient(Endpoint("http://sonarr:8989/", KEY), session=session, logger=quiet_log)


@pytest.fixture
def radarr(session, quiet_log):
    return RadarrClient(Endpoint("http://radarr:7878", KEY), session=session, logger=quiet_log)


def test_sonarr_calendar_window_and_parsing(sonarr, session):
    session.request.return_value = make_response(200, [
        {"id": 7, "seasonNumber": 2, "episodeNumber": 5, "title": "Pilot", "airDateUtc": "2024-05-02T01:00:00Z",
         "hasFile": False, "series": {"title": "Show", "titleSlug": "show",
                                      "images": [{"coverType": "Poster", "url": "/MediaCover/1/poster.jpg"}]}},
    ])
    cal = sonarr.get_calendar(NOW)
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("GET", "http://sonarr:8989/api/v3/calendar")
    assert kwargs["params"] == {"start": "2024-05-01", "end": "2024-05-15", "includeSeries": "true"}
    assert kwargs["headers"]["X-Api-Key"] == KEY
    ep = cal.entries[0]
    assert ep.code == "S02E05"
    assert ep.series_title == "Show"
    assert ep.air_date_utc == datetime(2024, 5, 2, 1, 0, tzinfo=timezone.utc)
    assert ep.images[0].cover_type == "poster"


def test_sonarr_history_params(sonarr, session):
    session.request.return_value = make_response(200, {"records": [
        {"id": 1, "eventType": "downloadFolderImported", "date": "2024-05-01T10:00:00Z",
         "series": {"id": 3, "title": "Show"}, "episode": {"seasonNumber": 1, "episodeNumber": 4, "title": "Four"},
         "quality": {"quality": {"name": "WEBDL-1080p"}}},
    ]})
    snap = sonarr.get_history()
    params = session.request.call_args.kwargs["params"]
    assert params["pageSize"] == 200
    assert params["sortDirection"] == "descending"
    assert params["includeSeries"] == "true" and params["includeEpisode"] == "true"
    rec = snap.records[0]
    assert (rec.series_id, rec.season_number, rec.episode_number) == (3, 1, 4)
    assert rec.quality == "WEBDL-1080p"


def test_radarr_calendar_dates(radarr, session):
    session.request.return_value = make_response(200, [
        {"id": 9, "title": "Film", "studio": "Studio", "inCinemas": "2024-05-03T00:00:00Z",
         "digitalRelease": "2024-06-01T00:00:00Z", "hasFile": False, "isAvailable": False},
    ])
    movie = radarr.get_calendar(NOW).entries[0]
    assert movie.in_cinemas.day == 3
    assert movie.physical_release is None
    assert "includeSeries" not in session.request.call_args.kwargs["params"]


def test_queue_needs_attention(radarr, session):
    session.request.return_value = make_response(200, {"totalRecords": 1, "records": [
        {"id": 11, "title": "Film", "status": "downloading", "size": 1000, "sizeleft": 250,
         "trackedDownloadStatus": "warning", "statusMessages": [{"title": "No files found"}]},
    ]})
    snap = radarr.get_queue()
    rec = snap.records[0]
    assert snap.total_records == 1
    assert rec.needs_attention is True
    assert rec.status_messages == ("No files found",)
    assert rec.percent == 75.0


def test_delete_queue_item_flags_and_empty_body(sonarr, session):
    session.request.return_value = make_response(200, text="")
    assert sonarr.delete_queue_item(42, blocklist=True) == {}
    method, url = session.request.call_args.args
    assert (method, url) == ("DELETE", "http://sonarr:8989/api/v3/queue/42")
    assert session.request.call_args.kwargs["params"] == {"removeFromClient": "true", "blocklist": "true"}


def test_delete_queue_item_missing_raises_404(sonarr, session):
    session.request.return_value = make_response(404, text="Not Found", content_type="text/plain")
    with pytest.raises(HttpError) as ei:
        sonarr.delete_queue_item(42)
    assert ei.value.status == 404


def test_image_url_resolution(sonarr):
    assert sonarr.image_url(None) == ""
    local = ArrImage("poster", url="/MediaCover/1/poster.jpg")
    assert sonarr.image_url(local) == f"http://sonarr:8989/MediaCover/1/poster.jpg?apikey={KEY}"
    stamped = ArrImage("poster", url="/MediaCover/1/poster.jpg?lastWrite=1")
    assert sonarr.image_url(stamped).endswith(f"?lastWrite=1&apikey={KEY}")
    remote = ArrImage("poster", url="https://img.example/p.jpg")
    assert sonarr.image_url(remote) == "https://img.example/p.jpg"
    assert sonarr.image_url(ArrImage("poster", remote_url="https://r.example/p.jpg")) == "https://r.example/p.jpg"


def test_find_image_respects_preference_order():
    imgs = (ArrImage("banner", url="/b"), ArrImage("poster", url="/p"))
    assert find_image(imgs, "poster", "banner").url == "/p"
    assert find_image(imgs, "fanart") is None


def test_status_probe(radarr, session):
    session.request.return_value = make_response(200, {"appName": "Radarr", "version": "5.0"})
    res = radarr.test_connection()
    assert res.ok
    assert session.request.call_args.args[1] == "http://radarr:7878/api/v3/system/status"
