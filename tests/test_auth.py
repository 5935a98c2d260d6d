import base64
import logging

import pytest

from cdn_server.app.services.auth import Authenticator, parse_basic_auth
from cdn_server.config import Settings
from cdn_server.monitor import FailureMonitor


def basic(value: str) -> str:
    return "Basic " + base64.b64encode(value.encode()).decode()


@pytest.fixture
def authenticator(tmp_path):
    settings = Settings(uploads_dir=tmp_path, username="admin", password="secret")
    return Authenticator(settings, logging.getLogger("cdn_server.tests"))


@pytest.mark.parametrize("header, expected", [
    (basic("admin:secret"), ("admin", "secret")),
    ("basic " + base64.b64encode(b"admin:secret").decode(), ("admin", "secret")),
    (basic("admin:pa:ss"), ("admin", "pa:ss")),
    (basic(":"), ("", "")),
    (basic("admin"), None),
    ("Basic !!!", None),
    ("Basic", None),
    ("Bearer token", None),
    ("", None),
    (None, None),
])
def test_parse_basic_auth(header, expected):
    assert parse_basic_auth(header) == expected


def test_authenticate_success(authenticator):
    assert authenticator.authenticate(basic("admin:secret"), "GET", "/a.txt") is True


@pytest.mark.parametrize("header", [
    None,
    basic("admin:wrong"),
    basic("Admin:secret"),
    basic("admin:secret "),
    basic("admin:"),
])
def test_authenticate_failure(authenticator, header):
    assert authenticator.authenticate(header, "GET", "/a.txt") is False


def test_authenticate_disabled(tmp_path):
    settings = Settings(uploads_dir=tmp_path, require_auth=False)
    authenticator = Authenticator(settings, logging.getLogger("cdn_server.tests"))
    assert authenticator.authenticate(None) is True


def test_authenticate_logs_outcome(authenticator, caplog):
    caplog.set_level(logging.INFO, logger="cdn_server")
    authenticator.authenticate(basic("admin:secret"), "POST", "/upload")
    authenticator.authenticate(basic("admin:nope"), "GET", "/x.png")

    success, failure = caplog.records[-2:]
    assert success.levelno == logging.INFO
    assert success.getMessage() == "Authentication successful event=auth_succeeded method=POST path=/upload"
    assert failure.levelno == logging.WARNING
    assert failure.getMessage() == "Authentication failed event=auth_failed method=GET path=/x.png"


def test_authenticate_feeds_monitor(tmp_path):
    alerts = []
    monitor = FailureMonitor(failure_threshold=2, alert_handler=alerts.append)
    settings = Settings(uploads_dir=tmp_path, username="admin", password="secret")
    authenticator = Authenticator(settings, logging.getLogger("cdn_server.tests"), monitor)

    authenticator.authenticate(basic("admin:secret"))
    authenticator.authenticate(basic("admin:bad"))
    authenticator.authenticate(None)

    assert monitor.stats["total_passes"] == 1
    assert monitor.stats["total_failures"] == 2
    assert len(alerts) == 1
