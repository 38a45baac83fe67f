import io
import json
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
import requests

from _logging import Logger
from modules._mod_base import Endpoint


def make_response(
    status: int = 200,
    payload: Any = None,
    *,
    text: Optional[str] = None,
    content_type: str = "application/json",
) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    if text is None:
        text = "" if payload is None else json.dumps(payload)
    r._content = text.encode("utf-8")
    r.headers["content-type"] = content_type
    r.encoding = "utf-8"
    r.url = "http://test.local/"
    return r


@pytest.fixture
def quiet_log() -> Logger:
    return Logger(stream=io.StringIO(), level="debug", use_color=False)


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def endpoint() -> Endpoint:
    return Endpoint("http://svc.local:8080/", "0123456789abcdef")
