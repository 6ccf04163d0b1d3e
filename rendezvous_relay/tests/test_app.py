from http import HTTPStatus
from types import SimpleNamespace

import pytest

from rendezvous_relay import app
from rendezvous_relay.constants import HEALTH_PATH, WS_PATH


class FakeHandshake:
    def respond(self, status, text):
        return SimpleNamespace(status_code=status, body=text)


@pytest.mark.parametrize("path", [HEALTH_PATH, HEALTH_PATH + "?check=lb"])
def test_health_check_answers_without_upgrade(path):
    response = app.route_request(FakeHandshake(), SimpleNamespace(path=path))
    assert response.status_code == HTTPStatus.OK
    assert response.body == "ok\n"


@pytest.mark.parametrize("path", [WS_PATH, WS_PATH + "?room=baby1"])
def test_signaling_path_proceeds_to_handshake(path):
    assert app.route_request(FakeHandshake(), SimpleNamespace(path=path)) is None


@pytest.mark.parametrize("path", ["/", "/index.html", WS_PATH + "/extra"])
def test_other_paths_are_refused(path):
    response = app.route_request(FakeHandshake(), SimpleNamespace(path=path))
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_plain_ws_without_certificates():
    assert app.build_ssl_context("", "") is None
    assert app.build_ssl_context("cert.pem", "") is None


def test_unhandled_errors_are_logged(caplog):
    caplog.set_level("ERROR")
    app.log_unhandled(None, {"message": "Task exception was never retrieved",
                             "exception": RuntimeError("boom")})
    assert "Task exception was never retrieved" in caplog.text
    assert "RuntimeError: boom" in caplog.text
