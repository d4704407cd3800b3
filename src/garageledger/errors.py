from __future__ import annotations


class AppError(Exception):
    """Base error for ledger operations. Carries the HTTP status and a code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: int | str | None = None) -> None:
        self.resource = resource
        self.identifier = identifier
        if identifier is None:
            super().__init__(f"{resource} not found")
        else:
            super().__init__(f"{resource} with ID '{identifier}' not found")


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"


class ValidationError(BadRequestError):
    code = "VALIDATION_ERROR"


class InsufficientStockError(BadRequestError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, part_id: int, available: int, requested: int, part_name: str | None = None) -> None:
        self.part_id = part_id
        self.available = available
        self.requested = requested
        label = f'"{part_name}"' if part_name else f"part_id={part_id}"
        super().__init__(f"Insufficient stock for {label}. Available: {available}, Requested: {requested}")


class SchedulingConflictError(ConflictError, BadRequestError):
    """A mechanic is already booked for an overlapping, buffered interval."""

    code = "SCHEDULING_CONFLICT"
