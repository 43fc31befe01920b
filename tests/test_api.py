"""Tests for the HTTP endpoint."""

import pytest

from reach_probe.api import create_app
from reach_probe.config import AppConfig

from fakes import FakeClientFactory, SocketOpenerSpy, make_session_factory


def _client(factory: FakeClientFactory, opener=None, config=None):
    app = create_app(
        config or AppConfig(),
        session_factory=make_session_factory(factory, opener),
    )
    app.testing = True
    return app.test_client()


class TestConnectionEndpoint:
    def test_success(self):
        factory = FakeClientFactory()
        response = _client(factory).post(
            "/api/connection/test",
            json={"ipAddress": "10.0.0.5", "username": "root", "password": "pw"},
        )

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "message": "Connection successful"}
        assert factory.clients[0].kwargs["password"] == "pw"
        assert factory.clients[0].kwargs["port"] == 22

    @pytest.mark.parametrize("body", [{}, {"ipAddress": "10.0.0.5"}, {"username": "root"}])
    def test_validation_failure(self, body):
        factory = FakeClientFactory()
        response = _client(factory).post("/api/connection/test", json=body)

        assert response.status_code == 400
        assert response.get_json() == {
            "success": False,
            "message": "IP address and username are required",
        }
        assert factory.clients == []

    def test_timeout_is_408(self):
        config = AppConfig()
        config.probe.connect_timeout = 0.2
        config.probe.overall_timeout = 0.2
        factory = FakeClientFactory(block_connect=True)
        response = _client(factory, config=config).post(
            "/api/connection/test",
            json={"ipAddress": "10.0.0.5", "username": "root"},
        )

        assert response.status_code == 408
        assert response.get_json()["message"] == (
            "Connection timed out. Please verify the IP address is reachable."
        )

    def test_refused_is_400(self):
        opener = SocketOpenerSpy(ConnectionRefusedError(111, "Connection refused"))
        response = _client(FakeClientFactory(), opener).post(
            "/api/connection/test",
            json={"ipAddress": "10.0.0.5", "username": "root", "port": "2222"},
        )

        body = response.get_json()
        assert response.status_code == 400
        assert body["success"] is False
        assert body["message"].startswith("Connection failed: ")
        assert "Connection refused" in body["message"]
        assert opener.calls[0][1] == 2222

    def test_non_zero_exit_is_400(self):
        factory = FakeClientFactory(stderr=b"permission denied", exit_status=1)
        response = _client(factory).post(
            "/api/connection/test",
            json={"ipAddress": "10.0.0.5", "username": "root"},
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Command exited with code 1: permission denied"

    def test_form_body_is_accepted(self):
        factory = FakeClientFactory()
        response = _client(factory).post(
            "/api/connection/test",
            data={"ipAddress": "10.0.0.5", "username": "root", "password": "pw"},
        )
        assert response.status_code == 200

    def test_unexpected_fault_is_500(self):
        factory = FakeClientFactory(connect_error=ValueError("boom"))
        response = _client(factory).post(
            "/api/connection/test",
            json={"ipAddress": "10.0.0.5", "username": "root"},
        )

        assert response.status_code == 500
        assert response.get_json() == {
            "success": False,
            "message": "Server error testing SSH connection",
        }
