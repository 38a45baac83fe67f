import pytest

from _render import Node
from home_server_companion import main, node_text, parse_bind


def test_parse_bind():
    assert parse_bind("127.0.0.1:9000") == ("127.0.0.1", 9000)
    assert parse_bind("tower") == ("tower", 8787)
    assert parse_bind(":8080") == ("0.0.0.0", 8080)
    with pytest.raises(SystemExit):
        parse_bind("host:abc")


def test_node_text_strips_markup():
    n = Node("item", '<span class="title">Tom &amp; Jerry</span>\n  <span>S01E02</span>')
    assert node_text(n) == "Tom & Jerry S01E02"


def test_version(capsys):
    assert main(["--version"]) == 0
    assert "Home Server Companion version" in capsys.readouterr().out


def test_unconfigured_service_exits_with_config_error(tmp_path, capsys):
    cfg = tmp_path / "settings.json"
    assert main(["--test", "sonarr", "--config", str(cfg)]) == 2
    assert "sonarrUrl is not set" in capsys.readouterr().out
    assert main(["--show", "radarr", "--config", str(cfg)]) == 2
