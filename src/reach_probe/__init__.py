"""reach-probe: verify that a remote host is reachable over SSH before provisioning."""

from .probe import Classification, ProbeOutcome, ProbeRequest, probe, run_probe

__version__ = "0.1.0"

__all__ = [
    "Classification",
    "ProbeOutcome",
    "ProbeRequest",
    "probe",
    "run_probe",
    "__version__",
]
