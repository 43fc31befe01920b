"""HTTP route for testing an SSH connection."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, Response, jsonify, request

from ..config import ProbeConfig
from ..probe import Classification, ProbeRequest, run_probe
from ..probe.controller import SessionFactory
from ..utils.logging import get_logger

logger = get_logger(__name__)

SERVER_ERROR_MESSAGE = "Server error testing SSH connection"

STATUS_CODES: Dict[Classification, int] = {
    Classification.VALIDATION_FAILED: 400,
    Classification.TIMED_OUT: 408,
    Classification.CONNECT_FAILED: 400,
    Classification.EXEC_FAILED: 400,
    Classification.COMMAND_NON_ZERO: 400,
    Classification.SUCCEEDED: 200,
}


def _read_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    return request.form.to_dict()


def build_connection_blueprint(
    probe_config: Optional[ProbeConfig] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Blueprint:
    probe_config = probe_config or ProbeConfig()
    blueprint = Blueprint("connection", __name__)

    @blueprint.post("/test")
    def test_connection() -> Tuple[Response, int]:
        try:
            probe_request = ProbeRequest.from_payload(_read_body(), probe_config)
            outcome = run_probe(
                probe_request,
                config=probe_config,
                session_factory=session_factory,
            )
        except Exception:
            logger.exception("Error testing connection")
            return jsonify({"success": False, "message": SERVER_ERROR_MESSAGE}), 500
        return jsonify(outcome.to_payload()), STATUS_CODES[outcome.classification]

    return blueprint
