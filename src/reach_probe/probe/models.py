"""Request and outcome types for a reachability probe."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..config import ProbeConfig

DEFAULT_PORT = 22

VALIDATION_MESSAGE = "IP address and username are required"
TIMEOUT_MESSAGE = "Connection timed out. Please verify the IP address is reachable."
SUCCESS_MESSAGE = "Connection successful"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class Classification(str, Enum):
    """How a probe ended."""
    VALIDATION_FAILED = "ValidationFailed"
    TIMED_OUT = "TimedOut"
    CONNECT_FAILED = "ConnectFailed"
    EXEC_FAILED = "ExecFailed"
    COMMAND_NON_ZERO = "CommandNonZero"
    SUCCEEDED = "Succeeded"


class ProbeState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    EXECUTING = "executing"
    RESOLVED = "resolved"


def parse_port(value: Any, default: int = DEFAULT_PORT) -> int:
    """Read a port the way a lenient form handler would.

    Leading digits win (``"2222abc"`` is 2222); anything unparsable, zero or
    outside 1-65535 falls back to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        port = value
    elif isinstance(value, float):
        port = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return default
        port = int(match.group(1))
    if 1 <= port <= 65535:
        return port
    return default


@dataclass(frozen=True)
class ProbeRequest:
    """One reachability check. The secret never shows up in ``repr``."""

    host: str
    username: str
    port: int = DEFAULT_PORT
    secret: Optional[str] = field(default=None, repr=False)
    connect_deadline: float = 8.0
    overall_deadline: float = 10.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", (self.host or "").strip())
        object.__setattr__(self, "username", (self.username or "").strip())
        object.__setattr__(self, "port", parse_port(self.port))
        if self.overall_deadline < self.connect_deadline:
            object.__setattr__(self, "overall_deadline", self.connect_deadline)

    @property
    def is_valid(self) -> bool:
        return bool(self.host) and bool(self.username)

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], config: Optional[ProbeConfig] = None
    ) -> "ProbeRequest":
        """Build a request from the HTTP body fields."""
        config = config or ProbeConfig()
        host = payload.get("ipAddress")
        username = payload.get("username")
        password = payload.get("password")
        return cls(
            host=str(host) if host else "",
            username=str(username) if username else "",
            port=parse_port(payload.get("port"), config.default_port),
            secret=str(password) if password else None,
            connect_deadline=config.connect_timeout,
            overall_deadline=config.overall_timeout,
        )


@dataclass
class ProbeOutcome:
    succeeded: bool
    message: str
    classification: Classification
    hint: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    exit_status: Optional[int] = None
    elapsed: float = 0.0

    @classmethod
    def validation_failed(cls) -> "ProbeOutcome":
        return cls(False, VALIDATION_MESSAGE, Classification.VALIDATION_FAILED)

    @classmethod
    def timed_out(cls) -> "ProbeOutcome":
        return cls(False, TIMEOUT_MESSAGE, Classification.TIMED_OUT)

    @classmethod
    def connect_failed(cls, error: str, hint: Optional[str] = None) -> "ProbeOutcome":
        return cls(
            False, f"Connection failed: {error}", Classification.CONNECT_FAILED, hint=hint
        )

    @classmethod
    def exec_failed(cls, error: str) -> "ProbeOutcome":
        return cls(
            False,
            f"Connected but failed to execute command: {error}",
            Classification.EXEC_FAILED,
        )

    @classmethod
    def from_exit(cls, exit_status: int, stdout: str = "", stderr: str = "") -> "ProbeOutcome":
        if exit_status == 0:
            return cls(
                True,
                SUCCESS_MESSAGE,
                Classification.SUCCEEDED,
                stdout=stdout,
                stderr=stderr,
                exit_status=exit_status,
            )
        return cls(
            False,
            f"Command exited with code {exit_status}: {stderr}",
            Classification.COMMAND_NON_ZERO,
            stdout=stdout,
            stderr=stderr,
            exit_status=exit_status,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"success": self.succeeded, "message": self.message}
