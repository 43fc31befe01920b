"""SSH session management built on Paramiko."""

from __future__ import annotations

import contextlib
import socket
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

import paramiko

from ..utils.logging import get_logger
from .credentials import CredentialProvider
from .errors import (
    TRANSPORT_ERRORS,
    ProbeCancelled,
    SSHConnectionError,
    SSHExecError,
    describe_exception,
)

logger = get_logger(__name__)

SocketOpener = Callable[[str, int, float, Callable[[Any], None]], Any]


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def open_socket(
    host: str,
    port: int,
    timeout: float,
    register: Callable[[socket.socket], None],
) -> socket.socket:
    """Open a TCP connection, handing each socket to ``register`` before connecting.

    Registering first lets another thread shut the socket down while
    ``connect()`` is still blocked on it.
    """
    last_error: Optional[OSError] = None
    for family, socktype, proto, _, address in socket.getaddrinfo(
        host, port, 0, socket.SOCK_STREAM
    ):
        sock = socket.socket(family, socktype, proto)
        register(sock)
        sock.settimeout(timeout)
        try:
            sock.connect(address)
            return sock
        except OSError as exc:
            last_error = exc
            sock.close()
    if last_error is None:
        raise OSError(f"No addresses found for {host}:{port}")
    raise last_error


class SSHSession:
    """Single-use wrapper around paramiko.SSHClient.

    The session owns its socket and client. ``close()`` may be called from any
    thread at any time; it aborts whatever the owning thread is blocked on.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        credentials: CredentialProvider,
        *,
        connect_timeout: float = 8.0,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
        socket_opener: SocketOpener | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.connect_timeout = connect_timeout
        self._credentials: Optional[CredentialProvider] = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._socket_opener = socket_opener or open_socket
        self._client: Optional[paramiko.SSHClient] = None
        self._sock: Any = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "SSHSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def _attach_client(self, client: paramiko.SSHClient) -> None:
        with self._lock:
            if self._closed:
                client.close()
                raise ProbeCancelled()
            self._client = client

    def _attach_socket(self, sock: Any) -> None:
        with self._lock:
            if self._closed:
                sock.close()
                raise ProbeCancelled()
            self._sock = sock

    def connect(self, cancel: threading.Event) -> None:
        """Open the transport and authenticate with the selected credentials."""
        if self._client is not None:
            return
        credentials = self._credentials
        if credentials is None:
            raise ProbeCancelled()
        started = time.monotonic()

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        self._attach_client(client)
        try:
            sock = self._socket_opener(
                self.host, self.port, self.connect_timeout, self._attach_socket
            )
            remaining = max(self.connect_timeout - (time.monotonic() - started), 0.1)
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                sock=sock,
                timeout=remaining,
                banner_timeout=remaining,
                auth_timeout=remaining,
                **credentials.connect_kwargs(),
            )
        except TRANSPORT_ERRORS as exc:
            if cancel.is_set() or self._closed:
                raise ProbeCancelled() from exc
            self.close()
            raise SSHConnectionError(describe_exception(exc)) from exc
        finally:
            # The secret is only needed for the handshake
            self._credentials = None

        if cancel.is_set():
            raise ProbeCancelled()

    def start_command(
        self, command: str, *, timeout: Optional[float] = None
    ) -> Tuple[Any, Any]:
        """Issue ``command`` and return its (stdout, stderr) streams."""
        with self._lock:
            client = self._client
            if self._closed or client is None:
                raise ProbeCancelled()
        try:
            _, stdout, stderr = client.exec_command(command, timeout=timeout)
        except TRANSPORT_ERRORS as exc:
            if self._closed:
                raise ProbeCancelled() from exc
            raise SSHExecError(describe_exception(exc)) from exc
        return stdout, stderr

    def collect(
        self,
        command: str,
        stdout: Any,
        cancel: threading.Event,
        *,
        poll_interval: float = 0.1,
    ) -> SSHCommandResult:
        """Accumulate output until the remote process reports its exit status."""
        channel = stdout.channel
        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []

        try:
            while not channel.exit_status_ready():
                self._drain(channel, stdout_chunks, stderr_chunks)
                if cancel.wait(poll_interval):
                    raise ProbeCancelled()

            self._drain(channel, stdout_chunks, stderr_chunks)
            exit_status = channel.recv_exit_status()
            # A dead transport also marks the channel exit-ready, with no status
            if exit_status == -1 and channel.closed:
                if cancel.is_set() or self._closed:
                    raise ProbeCancelled()
                raise SSHConnectionError("Connection lost before the command completed")
        except TRANSPORT_ERRORS as exc:
            if cancel.is_set() or self._closed:
                raise ProbeCancelled() from exc
            raise SSHConnectionError(describe_exception(exc)) from exc

        return SSHCommandResult(
            command=command,
            stdout="".join(stdout_chunks).strip(),
            stderr="".join(stderr_chunks).strip(),
            exit_status=exit_status,
        )

    @staticmethod
    def _drain(channel: Any, stdout_chunks: List[str], stderr_chunks: List[str]) -> None:
        while channel.recv_ready():
            chunk = channel.recv(1024).decode("utf-8", errors="replace")
            if not chunk:
                break
            stdout_chunks.append(chunk)
            logger.debug("STDOUT: %s", chunk.rstrip())
        while channel.recv_stderr_ready():
            chunk = channel.recv_stderr(1024).decode("utf-8", errors="replace")
            if not chunk:
                break
            stderr_chunks.append(chunk)
            logger.debug("STDERR: %s", chunk.rstrip())

    def close(self) -> None:
        """Release the transport. Safe to call repeatedly and from any thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            client, sock = self._client, self._sock
            self._client = None
            self._sock = None
            self._credentials = None
        if client is not None:
            client.close()
        if sock is not None:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            sock.close()
        logger.debug("Closed SSH session to %s:%d", self.host, self.port)
