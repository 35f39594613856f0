"""Typed failures raised by the PDL store, state machine and operations.

Every failure carries a ``kind`` so the operations layer can turn it into a
structured ``Err`` result without inspecting messages.
"""
import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Failure categories surfaced to callers."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    DEPENDENT_CHILDREN = "dependent_children"
    STORAGE = "storage"
    INVALID_STATE = "invalid_state"


class PDLError(Exception):
    """Base class for all PDL failures."""

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PDLError):
    """Raised when an entity id does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(PDLError):
    """Raised for out-of-range values and malformed requests."""

    kind = ErrorKind.VALIDATION


class OutOfRangeError(ValidationError):
    """Raised when a sibling position is outside 1..count+1."""

    def __init__(self, position: int, upper_bound: int):
        super().__init__(
            f"Position {position} is out of range; expected 1..{upper_bound}"
        )
        self.position = position
        self.upper_bound = upper_bound


class InvalidPermutationError(ValidationError):
    """Raised when a reorder list is not an exact permutation of the siblings."""

    def __init__(self, missing: list[str], unexpected: list[str], duplicates: list[str]):
        parts = []
        if missing:
            parts.append(f"missing: {', '.join(missing)}")
        if unexpected:
            parts.append(f"unknown: {', '.join(unexpected)}")
        if duplicates:
            parts.append(f"duplicated: {', '.join(duplicates)}")
        super().__init__(
            "Order list must be an exact permutation of the current items ("
            + "; ".join(parts) + ")"
        )
        self.missing = missing
        self.unexpected = unexpected
        self.duplicates = duplicates


class ConflictError(PDLError):
    """Raised on unique-constraint violations or a held consolidation lock."""

    kind = ErrorKind.CONFLICT


class DependentChildrenError(PDLError):
    """Raised when a delete would orphan children and no reassignment target was given."""

    kind = ErrorKind.DEPENDENT_CHILDREN

    def __init__(self, entity: str, entity_id: str, child_count: int, child_entity: str):
        super().__init__(
            f"{entity} '{entity_id}' still has {child_count} {child_entity}(s). "
            f"Pass a reassignment target to move them before deleting."
        )
        self.child_count = child_count


class StorageError(PDLError):
    """Raised when the underlying database or filesystem fails."""

    kind = ErrorKind.STORAGE


class InvalidStateError(PDLError):
    """Raised when persisted state is corrupted (e.g. a step pointer outside 1..7)."""

    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, phase_id: Optional[str] = None):
        super().__init__(message)
        self.phase_id = phase_id
