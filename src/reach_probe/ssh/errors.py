"""Errors raised by the SSH layer."""

from __future__ import annotations

from typing import Optional

import paramiko

# Everything paramiko or the socket layer raises for a broken or refused transport
TRANSPORT_ERRORS = (paramiko.SSHException, OSError, EOFError)


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established or is lost."""

    pass


class SSHExecError(RuntimeError):
    """Raised when a command cannot be issued on an authenticated session."""

    pass


class ProbeCancelled(Exception):
    """Raised inside a phase that noticed its probe has already been resolved."""

    pass


def describe_exception(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


_HINTS = (
    (
        ("authentication failed", "no authentication methods available", "bad authentication type"),
        "SSH authentication failed. Please check your username and password "
        "or ensure SSH agent is configured.",
    ),
    (
        ("timed out", "timeout"),
        "SSH connection timed out. Please verify the server is reachable and the port is correct.",
    ),
    (
        ("connection refused",),
        "SSH connection refused. Please check if SSH is running on the server and the port is correct.",
    ),
    (
        (
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo failed",
            "temporary failure in name resolution",
            "no address associated",
        ),
        "Host not found. Please verify the IP address is correct.",
    ),
)


def describe_connect_error(message: str) -> Optional[str]:
    """Return a friendlier explanation for common connection failures."""
    lowered = message.lower()
    for needles, hint in _HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return None
