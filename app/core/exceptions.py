"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Taxonomy:
  ValidationError   → rejected before any mutation (HTTP 422)
                      e.g. cyclic predecessor assignment, malformed date
  NotFoundError     → record does not exist (HTTP 404)
  ConflictError     → the write would break a stored invariant (HTTP 409)
                      e.g. deleting a referenced predecessor, stale version

I/O errors from the database (``sqlalchemy.exc.SQLAlchemyError``) are not
wrapped: they surface verbatim to the caller of single-record operations
and are caught per record only inside batch passes.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ScheduleItem", resource_id=42)
    raise ValidationError("start_date is not a valid date", details={"start_date": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable model name (e.g. "Activity", "ScheduleItem").
        resource_id: The PK that was looked up.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    The data was well-formed JSON but violated a rule (bad date, negative
    quantity, cyclic predecessor). Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class CyclicDependencyError(ValidationError):
    """Raised when a predecessor assignment would close a loop in the chain."""

    def __init__(self, item_id: int, predecessor_id: int) -> None:
        self.item_id = item_id
        self.predecessor_id = predecessor_id
        if item_id == predecessor_id:
            message = f"ScheduleItem {item_id} cannot be its own predecessor"
        else:
            message = (
                f"Assigning predecessor {predecessor_id} to ScheduleItem {item_id} "
                "would create a cycle"
            )
        super().__init__(
            message,
            details={"item_id": item_id, "predecessor_id": predecessor_id},
        )


class ConflictError(Exception):
    """Raised when an operation conflicts with the stored state. Maps to HTTP 409.

    Args:
        resource: Model name.
        message: Explanation of the conflict.
    """

    def __init__(self, resource: str, message: str) -> None:
        self.resource = resource
        super().__init__(message)


class ReferencedItemError(ConflictError):
    """Raised when deleting a schedule item that other items depend on."""

    def __init__(self, item_id: int, dependent_ids: list[int]) -> None:
        self.item_id = item_id
        self.dependent_ids = list(dependent_ids)
        super().__init__(
            "ScheduleItem",
            f"ScheduleItem {item_id} is the predecessor of "
            f"{len(self.dependent_ids)} item(s): {self.dependent_ids}",
        )


class StaleRecordError(ConflictError):
    """Raised when a concurrent write changed the record since it was read."""

    def __init__(self, resource: str, resource_id: int | None = None) -> None:
        self.resource_id = resource_id
        super().__init__(
            resource,
            f"{resource} id={resource_id} was modified concurrently; reload and retry",
        )
