"""Probe controller: drives one reachability check to exactly one outcome."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import replace
from typing import Callable, Mapping, Optional

from ..config import ProbeConfig
from ..ssh.credentials import AgentDerived, select_credentials
from ..ssh.errors import (
    ProbeCancelled,
    SSHConnectionError,
    SSHExecError,
    describe_connect_error,
)
from ..ssh.session import SSHSession
from ..utils.logging import get_logger
from .models import ProbeOutcome, ProbeRequest, ProbeState

logger = get_logger(__name__)

SessionFactory = Callable[..., SSHSession]


class Latch:
    """Single-fire guard: only the first ``fire()`` returns True."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def fire(self) -> bool:
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True


class ProbeController:
    """Owns the lifecycle of a single probe.

    ``start()`` returns a future immediately. A worker thread walks the
    connect/verify/collect phases while the overall deadline timer races it.
    The connect deadline bounds the socket, banner and auth waits inside the
    session. Whoever resolves first closes the session; every later event is
    a no-op.
    """

    def __init__(
        self,
        request: ProbeRequest,
        *,
        config: Optional[ProbeConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.request = request
        self.config = config or ProbeConfig()
        self.future: "Future[ProbeOutcome]" = Future()
        self._session_factory = session_factory or SSHSession
        self._environ = environ
        self._latch = Latch()
        self._state_lock = threading.Lock()
        self._state = ProbeState.IDLE
        self._cancel = threading.Event()
        self._session: Optional[SSHSession] = None
        self._timer: Optional[threading.Timer] = None
        self._started_at = 0.0
        self._started = False

    @property
    def state(self) -> ProbeState:
        return self._state

    @property
    def resolved(self) -> bool:
        return self._latch.fired

    def start(self) -> "Future[ProbeOutcome]":
        if self._started:
            return self.future
        self._started = True
        self._started_at = time.monotonic()
        request = self.request

        if not request.is_valid:
            logger.warning("Rejected probe request: host and username are required")
            self._finish(ProbeOutcome.validation_failed())
            return self.future

        credentials = select_credentials(request.secret, self._environ)
        if isinstance(credentials, AgentDerived) and not credentials.available:
            logger.warning(
                "No password given and SSH_AUTH_SOCK is not set; agent authentication will likely fail"
            )

        logger.info(
            "Testing SSH connection to %s with username %s (%s auth)",
            request.target,
            request.username,
            credentials.method,
        )
        self._session = self._session_factory(
            request.host,
            request.port,
            request.username,
            credentials,
            connect_timeout=request.connect_deadline,
        )

        self._arm_deadline(request.overall_deadline)
        self._advance(ProbeState.CONNECTING)
        worker = threading.Thread(
            target=self._run,
            name=f"probe-{request.target}",
            daemon=True,
        )
        worker.start()
        return self.future

    def _arm_deadline(self, seconds: float) -> None:
        timer = threading.Timer(seconds, self._on_deadline)
        timer.name = f"probe-deadline-{self.request.target}"
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _advance(self, state: ProbeState) -> bool:
        """Move to ``state`` unless the probe is already resolved."""
        with self._state_lock:
            if self._latch.fired:
                return False
            self._state = state
        logger.debug("Probe %s -> %s", self.request.target, state.value)
        return True

    def _run(self) -> None:
        try:
            self._execute()
        except ProbeCancelled:
            logger.debug("Probe %s worker stopped after resolution", self.request.target)
        except Exception as exc:
            if self._latch.fired:
                logger.debug("Ignoring late error for %s: %s", self.request.target, exc)
                return
            logger.exception("Unexpected error while probing %s", self.request.target)
            self._fail(exc)

    def _execute(self) -> None:
        session = self._session
        assert session is not None
        request = self.request

        logger.info("Attempting to connect to SSH server at %s...", request.target)
        try:
            session.connect(self._cancel)
        except SSHConnectionError as exc:
            logger.error("SSH connection error for %s: %s", request.target, exc)
            message = str(exc)
            self._finish(ProbeOutcome.connect_failed(message, describe_connect_error(message)))
            return

        if not self._advance(ProbeState.AUTHENTICATED):
            return
        logger.info("SSH connection to %s successful", request.target)

        try:
            stdout, _ = session.start_command(
                self.config.verify_command, timeout=request.overall_deadline
            )
        except SSHExecError as exc:
            logger.error("SSH exec error on %s: %s", request.target, exc)
            self._finish(ProbeOutcome.exec_failed(str(exc)))
            return

        if not self._advance(ProbeState.EXECUTING):
            return
        try:
            result = session.collect(
                self.config.verify_command,
                stdout,
                self._cancel,
                poll_interval=self.config.poll_interval,
            )
        except SSHConnectionError as exc:
            logger.error("SSH connection to %s lost: %s", request.target, exc)
            message = str(exc)
            self._finish(ProbeOutcome.connect_failed(message, describe_connect_error(message)))
            return

        logger.info(
            "SSH command on %s exited with code %d", request.target, result.exit_status
        )
        self._finish(ProbeOutcome.from_exit(result.exit_status, result.stdout, result.stderr))

    def _on_deadline(self) -> None:
        if self._finish(ProbeOutcome.timed_out()):
            logger.warning("SSH connection timeout for %s", self.request.target)

    def _claim(self) -> bool:
        with self._state_lock:
            if not self._latch.fire():
                return False
            self._state = ProbeState.RESOLVED
            if self.request.secret is not None:
                self.request = replace(self.request, secret=None)
        self._cancel.set()
        if self._timer is not None:
            self._timer.cancel()
        if self._session is not None:
            self._session.close()
        return True

    def _finish(self, outcome: ProbeOutcome) -> bool:
        """Resolve the probe with ``outcome`` if nobody has yet."""
        if not self._claim():
            logger.debug(
                "Discarding %s for %s: already resolved",
                outcome.classification.value,
                self.request.target,
            )
            return False
        outcome.elapsed = time.monotonic() - self._started_at
        logger.info(
            "Probe of %s resolved: %s",
            self.request.target,
            outcome.classification.value,
        )
        self.future.set_result(outcome)
        return True

    def _fail(self, exc: BaseException) -> bool:
        if not self._claim():
            return False
        self.future.set_exception(exc)
        return True


def probe(
    request: ProbeRequest,
    *,
    config: Optional[ProbeConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> "Future[ProbeOutcome]":
    """Start a probe and return a future for its outcome."""
    controller = ProbeController(
        request,
        config=config,
        session_factory=session_factory,
        environ=environ,
    )
    return controller.start()


def run_probe(
    request: ProbeRequest,
    *,
    config: Optional[ProbeConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProbeOutcome:
    """Run a probe and block until it resolves."""
    return probe(
        request,
        config=config,
        session_factory=session_factory,
        environ=environ,
    ).result()
