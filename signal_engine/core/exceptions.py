"""
Engine-wide exception hierarchy.

Services raise these types; blueprints translate them into JSON error
responses once (see signal_engine.utils.errors). Expected absence of data
(no matching SLA policy, no due date, no rule for an event) is never an
exception: those cases return result objects.

Usage:
    from signal_engine.core.exceptions import NotFoundError, EventContractError

    raise NotFoundError(resource="ArtifactEvent", resource_id=42)
    raise EventContractError("payload must be an object", event_id=42)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ArtifactEvent").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class EventContractError(Exception):
    """Raised when an artifact event does not have the shape the router needs.

    This is a programming-contract violation (a collaborator wrote a
    malformed event), not an absence-of-data case. The orchestrator records
    it on the event as a routing error.
    """

    def __init__(self, message: str, event_id: int | None = None) -> None:
        self.event_id = event_id
        if event_id is not None:
            message = f"event {event_id}: {message}"
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when a write the engine depends on could not be committed."""
