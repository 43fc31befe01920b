"""SSH utilities for reach-probe."""

from .credentials import AgentDerived, CredentialProvider, StaticSecret, select_credentials
from .errors import (
    ProbeCancelled,
    SSHConnectionError,
    SSHExecError,
    describe_connect_error,
)
from .session import SSHCommandResult, SSHSession, open_socket

__all__ = [
    "AgentDerived",
    "CredentialProvider",
    "StaticSecret",
    "select_credentials",
    "ProbeCancelled",
    "SSHConnectionError",
    "SSHExecError",
    "describe_connect_error",
    "SSHCommandResult",
    "SSHSession",
    "open_socket",
]
