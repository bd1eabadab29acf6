"""
AquaSense error taxonomy.

Every core failure derives from :class:`AquaSenseError` and carries the HTTP
status the API layer answers with. Idempotent outcomes (an alert that is
already open, a rule without bounds) are returned as values, not raised.
"""

from __future__ import annotations


class AquaSenseError(Exception):
    """Base class for errors surfaced to callers."""

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(AquaSenseError):
    """Inbound data could not be interpreted (e.g. an unknown topic shape)."""

    http_status: int = 400


class NotFoundError(AquaSenseError):
    """A referenced entity does not exist. Never retried internally."""

    http_status: int = 404

    def __init__(self, entity: str, identifier: object | None = None) -> None:
        message = f"{entity} not found" if identifier is None else f"{entity} not found: {identifier}"
        super().__init__(message, detail={"entity": entity, "identifier": str(identifier) if identifier is not None else None})
        self.entity = entity


class ConflictError(AquaSenseError):
    """A uniqueness constraint would be violated."""

    http_status: int = 409


class CrossTenantReferenceError(ConflictError):
    """The operation would link entities owned by different organizations."""

    def __init__(self, message: str = "Cross-tenant reference rejected", *, detail: dict | None = None) -> None:
        super().__init__(message, detail=detail)


class EvaluationError(AquaSenseError):
    """The reading was stored but evaluating or notifying its alerts failed.

    Callers must not re-ingest: the reading is already durable.
    """

    http_status: int = 500

    def __init__(self, reading_id: object, message: str, *, outcomes: list[dict] | None = None) -> None:
        super().__init__(message, detail={"reading_id": str(reading_id)})
        self.reading_id = reading_id
        self.outcomes = outcomes or []
