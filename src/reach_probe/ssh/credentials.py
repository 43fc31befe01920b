"""SSH credential helpers."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional

AGENT_SOCKET_ENV = "SSH_AUTH_SOCK"


class CredentialProvider(ABC):
    """One authentication method, chosen before the connection is opened."""

    method: ClassVar[str] = ""

    @abstractmethod
    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``paramiko.SSHClient.connect``."""


@dataclass(frozen=True)
class StaticSecret(CredentialProvider):
    """Password authentication with a caller-supplied secret."""

    password: str = field(repr=False)
    method: ClassVar[str] = "password"

    def connect_kwargs(self) -> Dict[str, Any]:
        return {
            "password": self.password,
            "allow_agent": False,
            "look_for_keys": False,
        }


@dataclass(frozen=True)
class AgentDerived(CredentialProvider):
    """Key authentication through the SSH agent found in the environment.

    Paramiko reads the agent socket from ``SSH_AUTH_SOCK`` itself; ``socket_path``
    records what was resolved so callers can report a missing agent.
    """

    socket_path: Optional[str] = None
    method: ClassVar[str] = "agent"

    @property
    def available(self) -> bool:
        return bool(self.socket_path)

    def connect_kwargs(self) -> Dict[str, Any]:
        return {
            "allow_agent": True,
            "look_for_keys": False,
        }


def select_credentials(
    secret: Optional[str],
    environ: Optional[Mapping[str, str]] = None,
) -> CredentialProvider:
    """Pick the single authentication method for a probe.

    An empty secret counts as absent and selects the agent.
    """
    if secret:
        return StaticSecret(secret)
    env = os.environ if environ is None else environ
    return AgentDerived(env.get(AGENT_SOCKET_ENV) or None)
