import json

import pytest

from _config import (
    DEFAULT_SETTINGS, badge_interval_ms, endpoint_for, is_configured, load_settings,
    normalize_url, save_settings, service_order, update_service, validate_api_key,
)
from modules._mod_base import ConfigError


def test_load_creates_defaults(tmp_path):
    p = tmp_path / "settings.json"
    cfg = load_settings(p)
    assert p.exists()
    assert cfg["serviceOrder"] == DEFAULT_SETTINGS["serviceOrder"]
    assert cfg["badgeCheckInterval"] == 5000
    assert cfg["overseerrFilter"] == "pending"


def test_load_merges_and_keeps_unknown_keys(tmp_path):
    p = tmp_path / "settings.json"
    p.write_text(json.dumps({"sonarrUrl": "http://sonarr:8989", "customFlag": 1}), encoding="utf-8")
    cfg = load_settings(p)
    assert cfg["sonarrUrl"] == "http://sonarr:8989"
    assert cfg["customFlag"] == 1
    assert cfg["sabnzbdEnabled"] is True


def test_broken_json_raises_config_error(tmp_path):
    p = tmp_path / "settings.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(p)


def test_save_roundtrip(tmp_path):
    p = tmp_path / "nested" / "settings.json"
    save_settings({"darkMode": True}, p)
    assert json.loads(p.read_text(encoding="utf-8")) == {"darkMode": True}


def test_normalize_url():
    assert normalize_url(" tower.local:8080/ ") == "http://tower.local:8080"
    assert normalize_url("https://sab.example/") == "https://sab.example"
    assert normalize_url("") == ""


@pytest.mark.parametrize("key", ["short", "x" * 501, "abc<script>defgh"])
def test_invalid_api_keys(key):
    with pytest.raises(ConfigError):
        validate_api_key(key)


def test_update_service_validates(tmp_path):
    cfg = update_service(dict(DEFAULT_SETTINGS), "radarr", url="radarr:7878", key=" 0123456789abcdef ", enabled=False)
    assert cfg["radarrUrl"] == "http://radarr:7878"
    assert cfg["radarrKey"] == "0123456789abcdef"
    assert cfg["radarrEnabled"] is False
    with pytest.raises(ConfigError):
        update_service(cfg, "plex", url="x")


def test_configured_and_endpoint():
    cfg = dict(DEFAULT_SETTINGS, unraidUrl="http://tower", sonarrUrl="http://sonarr")
    # a url alone is not enough, for unraid too
    assert is_configured(cfg, "unraid") is False
    assert is_configured(cfg, "sonarr") is False
    assert is_configured(dict(cfg, unraidKey="0123456789abcdef"), "unraid") is True
    assert endpoint_for(cfg, "unraid").base_url == "http://tower"
    with pytest.raises(ConfigError):
        endpoint_for(cfg, "radarr")


def test_service_order_filters_and_completes():
    cfg = dict(DEFAULT_SETTINGS, serviceOrder=["unraid", "bogus", "sonarr"], radarrEnabled=False)
    assert service_order(cfg) == ["unraid", "sonarr", "sabnzbd", "tautulli", "overseerr", "prowlarr"]


def test_badge_interval_floor():
    assert badge_interval_ms({"badgeCheckInterval": 200}) == 1000
    assert badge_interval_ms({"badgeCheckInterval": "oops"}) == 5000
    assert badge_interval_ms({}) == 5000
