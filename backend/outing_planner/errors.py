"""Domain error taxonomy.

Services raise these; ``main.py`` maps them to JSON responses using the
``status_code`` carried by each class.
"""
from typing import Any, Optional


class OrchestratorError(Exception):
    """Base class for every error the orchestrator raises on purpose."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(OrchestratorError):
    status_code = 422
    code = "validation_error"


class PermissionDeniedError(OrchestratorError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(OrchestratorError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} not found", {"entity": entity, "id": str(identifier)})


class ConflictError(OrchestratorError):
    status_code = 409
    code = "conflict"


class StaleVersionError(ConflictError):
    code = "stale_version"

    def __init__(self, event_id: Any, expected_version: int):
        super().__init__(
            f"Event {event_id} changed concurrently (expected version {expected_version}). Re-fetch and retry.",
            {"event_id": str(event_id), "expected_version": expected_version},
        )


class StateError(OrchestratorError):
    status_code = 409
    code = "invalid_state"


class QuorumNotMetError(OrchestratorError):
    status_code = 409
    code = "quorum_not_met"


class DeadlinePassedError(OrchestratorError):
    status_code = 400
    code = "deadline_passed"


class ExternalServiceTimeout(OrchestratorError):
    status_code = 504
    code = "external_service_timeout"
