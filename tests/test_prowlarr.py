from datetime import datetime, timezone

import pytest

from modules._mod_base import Endpoint, ProtocolError
from modules._mod_PROWLARR import ProwlarrClient
from tests.conftest import make_response

KEY = "prowlarrkey01234"
UTC = timezone.utc

INDEXERS = [
    {"id": 1, "name": "NZBgeek", "enable": True, "protocol": "usenet", "priority": 25,
     "fields": [{"name": "baseUrl", "value": "https://api.nzbgeek.info"},
                {"name": "vipExpiration", "value": "2024-06-01"}]},
    {"id": 2, "name": "Tracker", "enable": False, "protocol": "torrent", "priority": 10, "fields": []},
    {"id": 3, "name": "Plain", "priority": 1},
]

STATS = {
    "indexers": [{"indexerId": 1, "indexerName": "NZBgeek", "numberOfQueries": 10, "numberOfRssQueries": 4,
                  "numberOfGrabs": 2, "numberOfFailedQueries": 1, "numberOfFailedGrabs": 1,
                  "averageResponseTime": 250}],
    "userAgents": [{"userAgent": "Sonarr", "numberOfQueries": 8, "numberOfGrabs": 1}],
}


@pytest.fixture
def client(session, quiet_log):
    return ProwlarrClient(Endpoint("http://prowlarr:9696", KEY), session=session, logger=quiet_log)


def route(method, url, **kw):
    if url.endswith("/indexer"):
        return make_response(200, INDEXERS)
    if url.endswith("/indexerstats"):
        return make_response(200, STATS)
    if url.endswith("/indexerstatus"):
        return make_response(200, [{"indexerId": 2, "disabledTill": "2024-05-01T13:00:00Z"}])
    return make_response(404, text="nope", content_type="text/plain")


def test_indexers_parse_flags_and_vip_expiry(client, session):
    session.request.return_value = make_response(200, INDEXERS)
    rows = client.get_indexers()
    assert session.request.call_args.args == ("GET", "http://prowlarr:9696/api/v1/indexer")
    assert session.request.call_args.kwargs["headers"]["X-Api-Key"] == KEY
    geek, tracker, plain = rows
    assert geek.vip_expires == datetime(2024, 6, 1, tzinfo=UTC)
    assert tracker.enabled is False and tracker.vip_expires is None
    assert plain.enabled is True and plain.protocol == "Unknown"


def test_stats_without_hosts_leave_totals_open(client, session):
    session.request.return_value = make_response(200, STATS)
    stats = client.get_stats()
    assert stats.host_queries is None and stats.host_grabs is None
    ix = stats.indexers[0]
    assert (ix.queries, ix.rss_queries, ix.grabs, ix.failed, ix.average_response_ms) == (10, 4, 2, 2, 250)
    assert stats.clients[0].user_agent == "Sonarr"


def test_overview_joins_statuses(client, session):
    session.request.side_effect = route
    snap = client.get_overview()
    assert len(snap.indexers) == 3
    assert snap.disabled_till(2) == datetime(2024, 5, 1, 13, tzinfo=UTC)
    assert snap.disabled_till(1) is None


def test_status_endpoint_failure_is_tolerated(client, session):
    def broken_status(method, url, **kw):
        if url.endswith("/indexerstatus"):
            return make_response(500, text="boom", content_type="text/plain")
        return route(method, url, **kw)

    session.request.side_effect = broken_status
    snap = client.get_overview()
    assert snap.statuses == ()
    assert len(snap.indexers) == 3


def test_indexer_list_must_be_a_list(client, session):
    session.request.return_value = make_response(200, {"records": []})
    with pytest.raises(ProtocolError):
        client.get_indexers()


def test_polls_every_minute():
    assert ProwlarrClient.info.period_ms == 60000
