from datetime import timezone

import pytest
import requests

from modules._mod_base import (
    Endpoint, HttpError, ModuleInfo, NetworkError, ProtocolError, ServiceClient,
    as_list, parse_dt, to_int,
)
from tests.conftest import make_response


class PingClient(ServiceClient):
    info = ModuleInfo(name="PING")

    def _probe(self, timeout):
        self._get_json("ping", timeout=timeout)


def test_endpoint_url_joins_without_double_slash():
    ep = Endpoint("http://host:8080/", "k")
    assert ep.url("/api") == "http://host:8080/api"
    assert ep.url("api/v3/queue") == "http://host:8080/api/v3/queue"
    assert ep.url("") == "http://host:8080"


def test_parse_dt_returns_aware_utc_or_none():
    dt = parse_dt("2024-05-01T10:00:00Z")
    assert dt is not None and dt.tzinfo == timezone.utc and dt.hour == 10
    assert parse_dt("not a date") is None
    assert parse_dt(None) is None


def test_payload_helpers():
    assert as_list(None, "x") == []
    assert to_int("12.7") == 12
    assert to_int("abc", 3) == 3
    with pytest.raises(ProtocolError):
        as_list({"a": 1}, "x")


def test_connection_success_uses_five_second_timeout(session, endpoint, quiet_log):
    session.request.return_value = make_response(200, {"ok": True})
    res = PingClient(endpoint, session=session, logger=quiet_log).test_connection()
    assert res.ok is True
    assert res.message == "Connection Successful!"
    assert session.request.call_args.kwargs["timeout"] == 5.0


def test_connection_reports_http_status(session, endpoint, quiet_log):
    session.request.return_value = make_response(401, text="Unauthorized", content_type="text/plain")
    res = PingClient(endpoint, session=session, logger=quiet_log).test_connection()
    assert (res.ok, res.message, res.status) == (False, "Error: 401", 401)


def test_connection_reports_network_failure(session, endpoint, quiet_log):
    session.request.side_effect = requests.ConnectionError("refused")
    res = PingClient(endpoint, session=session, logger=quiet_log).test_connection()
    assert res.ok is False
    assert res.message == "Connection Failed (Network)"


def test_html_body_is_a_protocol_error(session, endpoint, quiet_log):
    session.request.return_value = make_response(200, text="<html>login</html>", content_type="text/html")
    client = PingClient(endpoint, session=session, logger=quiet_log)
    with pytest.raises(ProtocolError):
        client._get_json("ping")
    assert client.test_connection().message.startswith("Unexpected response")


def test_request_maps_transport_and_status_errors(session, endpoint, quiet_log):
    client = PingClient(endpoint, session=session, logger=quiet_log)
    session.request.side_effect = requests.Timeout("slow")
    with pytest.raises(NetworkError):
        client._request("GET", "ping")
    session.request.side_effect = None
    session.request.return_value = make_response(503, text="down", content_type="text/plain")
    with pytest.raises(HttpError) as ei:
        client._request("GET", "ping")
    assert ei.value.status == 503


def test_empty_body_uses_fallback_or_raises(session, endpoint, quiet_log):
    client = PingClient(endpoint, session=session, logger=quiet_log)
    r = make_response(200, text="")
    assert client._json(r, empty={}) == {}
    with pytest.raises(ProtocolError):
        client._json(r)
