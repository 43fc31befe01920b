"""Remote reachability probe."""

from .controller import Latch, ProbeController, probe, run_probe
from .models import (
    Classification,
    ProbeOutcome,
    ProbeRequest,
    ProbeState,
    parse_port,
)

__all__ = [
    "Latch",
    "ProbeController",
    "probe",
    "run_probe",
    "Classification",
    "ProbeOutcome",
    "ProbeRequest",
    "ProbeState",
    "parse_port",
]
