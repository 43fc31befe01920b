"""Tests for the probe controller."""

import logging
import random
import threading
import time

import paramiko
import pytest

from reach_probe.config import ProbeConfig
from reach_probe.probe import (
    Classification,
    Latch,
    ProbeController,
    ProbeRequest,
    ProbeState,
    probe,
    run_probe,
)

from fakes import FakeClientFactory, SocketOpenerSpy, make_session_factory


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _request(**overrides) -> ProbeRequest:
    values = dict(host="10.0.0.5", username="deploy", secret="s3cret-value")
    values.update(overrides)
    return ProbeRequest(**values)


class TestValidation:
    """Requests without host or username never touch the network."""

    @pytest.mark.parametrize(
        "host,username",
        [("", "deploy"), ("10.0.0.5", ""), ("", ""), ("   ", "deploy")],
    )
    def test_missing_fields_fail_without_transport(self, host, username):
        factory = FakeClientFactory()
        opener = SocketOpenerSpy()
        outcome = run_probe(
            _request(host=host, username=username),
            session_factory=make_session_factory(factory, opener),
        )

        assert outcome.classification == Classification.VALIDATION_FAILED
        assert outcome.message == "IP address and username are required"
        assert not outcome.succeeded
        assert factory.clients == []
        assert opener.calls == []

    def test_validation_future_is_already_done(self):
        future = probe(_request(host=""))
        assert future.done()

    def test_no_session_or_timer_created(self):
        created = []
        controller = ProbeController(
            _request(username=""),
            session_factory=lambda *args, **kwargs: created.append(args),
        )
        controller.start()
        assert created == []
        assert controller.state == ProbeState.RESOLVED
        assert controller._timer is None


class TestOutcomes:
    def test_exit_zero_succeeds(self):
        factory = FakeClientFactory()
        outcome = run_probe(_request(), session_factory=make_session_factory(factory))

        assert outcome.classification == Classification.SUCCEEDED
        assert outcome.succeeded
        assert outcome.message == "Connection successful"
        assert outcome.exit_status == 0
        assert factory.clients[0].commands == ['echo "Connection successful"']
        assert factory.clients[0].closed

    def test_non_zero_exit_reports_code_and_stderr(self):
        factory = FakeClientFactory(stdout=b"", stderr=b"permission denied\n", exit_status=1)
        outcome = run_probe(_request(), session_factory=make_session_factory(factory))

        assert outcome.classification == Classification.COMMAND_NON_ZERO
        assert "Command exited with code 1" in outcome.message
        assert "permission denied" in outcome.message
        assert factory.clients[0].closed

    def test_connection_refused(self):
        factory = FakeClientFactory()
        opener = SocketOpenerSpy(ConnectionRefusedError(111, "Connection refused"))
        outcome = run_probe(_request(), session_factory=make_session_factory(factory, opener))

        assert outcome.classification == Classification.CONNECT_FAILED
        assert outcome.message.startswith("Connection failed: ")
        assert "Connection refused" in outcome.message
        assert outcome.hint is not None
        assert factory.clients[0].closed

    def test_authentication_rejected(self):
        factory = FakeClientFactory(
            connect_error=paramiko.AuthenticationException("Authentication failed.")
        )
        outcome = run_probe(_request(), session_factory=make_session_factory(factory))

        assert outcome.classification == Classification.CONNECT_FAILED
        assert outcome.message == "Connection failed: Authentication failed."

    def test_exec_failure(self):
        factory = FakeClientFactory(exec_error=paramiko.SSHException("Channel closed."))
        outcome = run_probe(_request(), session_factory=make_session_factory(factory))

        assert outcome.classification == Classification.EXEC_FAILED
        assert outcome.message == "Connected but failed to execute command: Channel closed."
        assert factory.clients[0].closed

    def test_connection_lost_during_command(self):
        factory = FakeClientFactory(drop_connection=True)
        outcome = run_probe(_request(), session_factory=make_session_factory(factory))

        assert outcome.classification == Classification.CONNECT_FAILED
        assert outcome.message == (
            "Connection failed: Connection lost before the command completed"
        )
        assert factory.clients[0].closed

    def test_unexpected_error_reaches_future(self):
        factory = FakeClientFactory(connect_error=ValueError("boom"))
        future = probe(_request(), session_factory=make_session_factory(factory))

        with pytest.raises(ValueError):
            future.result(timeout=5)
        assert factory.clients[0].closed

    def test_same_request_twice_same_classification(self):
        factory = FakeClientFactory(stderr=b"nope", exit_status=2)
        session_factory = make_session_factory(factory)
        request = _request()

        first = run_probe(request, session_factory=session_factory)
        second = run_probe(request, session_factory=session_factory)
        assert first.classification == second.classification == Classification.COMMAND_NON_ZERO
        assert len(factory.clients) == 2

    def test_omitted_port_equals_port_22(self):
        opener = SocketOpenerSpy()
        session_factory = make_session_factory(FakeClientFactory(), opener)

        default = run_probe(ProbeRequest(host="h", username="u"), session_factory=session_factory)
        explicit = run_probe(
            ProbeRequest(host="h", username="u", port=22), session_factory=session_factory
        )
        assert default.classification == explicit.classification
        assert [call[1] for call in opener.calls] == [22, 22]


class TestDeadline:
    def test_deadline_before_authentication_times_out(self):
        factory = FakeClientFactory(block_connect=True)
        started = time.monotonic()
        outcome = run_probe(
            _request(connect_deadline=0.2, overall_deadline=0.2),
            session_factory=make_session_factory(factory),
        )

        assert outcome.classification == Classification.TIMED_OUT
        assert outcome.message == (
            "Connection timed out. Please verify the IP address is reachable."
        )
        assert time.monotonic() - started < 2
        assert factory.clients[0].closed

    def test_deadline_while_command_runs(self):
        factory = FakeClientFactory(complete=False)
        outcome = run_probe(
            _request(connect_deadline=0.3, overall_deadline=0.3),
            config=ProbeConfig(poll_interval=0.01),
            session_factory=make_session_factory(factory),
        )

        assert outcome.classification == Classification.TIMED_OUT
        assert factory.clients[0].closed
        assert factory.clients[0].commands

    def test_worker_stops_after_timeout(self):
        factory = FakeClientFactory(complete=False)
        controller = ProbeController(
            _request(connect_deadline=0.2, overall_deadline=0.2),
            config=ProbeConfig(poll_interval=0.01),
            session_factory=make_session_factory(factory),
        )
        controller.start().result(timeout=5)

        # Completion after the deadline must not change anything
        factory.clients[0].channel.finish()
        time.sleep(0.1)
        assert controller.future.result().classification == Classification.TIMED_OUT
        assert controller.state == ProbeState.RESOLVED

    def test_single_resolution_under_racing_deadline(self):
        results = []
        for _ in range(30):
            factory = FakeClientFactory()
            deadline = random.uniform(0.0, 0.01)
            controller = ProbeController(
                _request(connect_deadline=deadline, overall_deadline=deadline),
                config=ProbeConfig(poll_interval=0.001),
                session_factory=make_session_factory(factory),
            )
            future = controller.start()
            outcome = future.result(timeout=5)
            results.append(outcome.classification)

            assert controller.resolved
            assert controller._finish(outcome) is False
            assert outcome.classification in (
                Classification.SUCCEEDED,
                Classification.TIMED_OUT,
            )
            assert _wait_for(lambda: all(client.closed for client in factory.clients))
        assert len(results) == 30


class TestLatch:
    def test_only_first_fire_wins(self):
        latch = Latch()
        wins = []
        barrier = threading.Barrier(8)

        def contender():
            barrier.wait()
            wins.append(latch.fire())

        threads = [threading.Thread(target=contender) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert wins.count(True) == 1
        assert latch.fired


class TestSecrets:
    def test_secret_not_logged_or_repr(self, caplog):
        caplog.set_level(logging.DEBUG, logger="reach_probe")
        request = _request()
        outcome = run_probe(request, session_factory=make_session_factory(FakeClientFactory()))

        assert outcome.succeeded
        assert "s3cret-value" not in repr(request)
        assert "s3cret-value" not in caplog.text
        assert "s3cret-value" not in outcome.message

    def test_controller_drops_secret_after_resolution(self):
        controller = ProbeController(
            _request(), session_factory=make_session_factory(FakeClientFactory())
        )
        controller.start().result(timeout=5)
        assert controller.request.secret is None
