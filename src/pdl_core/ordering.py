"""Gapless sibling ordering shared by projects, phases and tasks.

Siblings are loaded in position order, rearranged in memory and renumbered
1..N before flushing, so every caller sees either the old or the new complete
sequence inside its transaction.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from .errors import InvalidPermutationError, OutOfRangeError
from .models import Phase, Project, Task

logger = logging.getLogger("pdl-core.ordering")


@dataclass(frozen=True)
class SiblingScope:
    """Describes which column holds the position and which columns define the parent."""

    model: Any
    position_attr: str
    parent_attrs: tuple[str, ...]

    @property
    def label(self) -> str:
        return self.model.__name__

    def parent_of(self, row) -> tuple:
        return tuple(getattr(row, attr) for attr in self.parent_attrs)


PROJECT_SCOPE = SiblingScope(Project, "order", ("repository_id",))
PHASE_SCOPE = SiblingScope(Phase, "number", ("project_id",))
TASK_SCOPE = SiblingScope(Task, "position", ("phase_id", "step_number"))


def siblings(db: Session, scope: SiblingScope, parent: tuple) -> list:
    """All rows under ``parent`` in position order."""
    query = db.query(scope.model)
    for attr, value in zip(scope.parent_attrs, parent):
        query = query.filter(getattr(scope.model, attr) == value)
    position = getattr(scope.model, scope.position_attr)
    return query.order_by(position, scope.model.created_at, scope.model.id).all()


def _renumber(scope: SiblingScope, rows: list) -> None:
    for index, row in enumerate(rows, start=1):
        if getattr(row, scope.position_attr) != index:
            setattr(row, scope.position_attr, index)


def _check_position(position: Optional[int], count: int) -> int:
    """Resolve an insert position against ``count`` existing siblings (None appends)."""
    if position is None:
        return count + 1
    if position < 1 or position > count + 1:
        raise OutOfRangeError(position, count + 1)
    return position


def insert_at(db: Session, scope: SiblingScope, row, parent: tuple, position: Optional[int] = None):
    """
    Insert a new row at ``position`` under ``parent``, shifting later siblings up.

    Raises:
        OutOfRangeError: If position is outside 1..count+1
    """
    rows = siblings(db, scope, parent)
    position = _check_position(position, len(rows))

    for attr, value in zip(scope.parent_attrs, parent):
        setattr(row, attr, value)
    rows.insert(position - 1, row)
    db.add(row)
    _renumber(scope, rows)
    db.flush()

    logger.debug(f"Inserted {scope.label} at position {position} of {len(rows)}")
    return row


def close_gap(db: Session, scope: SiblingScope, row) -> None:
    """Renumber the siblings of ``row`` as if it were already gone."""
    rows = [r for r in siblings(db, scope, scope.parent_of(row)) if r.id != row.id]
    _renumber(scope, rows)


def resequence(db: Session, scope: SiblingScope, parent: tuple) -> list:
    """Collapse any gaps or duplicates under ``parent`` back to 1..N."""
    rows = siblings(db, scope, parent)
    _renumber(scope, rows)
    db.flush()
    return rows


def apply_permutation(db: Session, scope: SiblingScope, parent: tuple, ordered_ids: list[str]) -> list:
    """
    Reorder the children of ``parent`` to match ``ordered_ids``.

    Raises:
        InvalidPermutationError: If the ids are not exactly the current children
    """
    rows = siblings(db, scope, parent)
    by_id = {row.id: row for row in rows}

    duplicates = sorted(item for item, count in Counter(ordered_ids).items() if count > 1)
    missing = sorted(set(by_id) - set(ordered_ids))
    unexpected = sorted(set(ordered_ids) - set(by_id))
    if duplicates or missing or unexpected:
        raise InvalidPermutationError(missing, unexpected, duplicates)

    reordered = [by_id[row_id] for row_id in ordered_ids]
    _renumber(scope, reordered)
    db.flush()

    logger.debug(f"Reordered {len(reordered)} {scope.label} rows")
    return reordered


def move(db: Session, scope: SiblingScope, row, new_parent: tuple, position: Optional[int] = None):
    """
    Move ``row`` under ``new_parent`` at ``position`` (None appends).

    Removal from the old sequence and insertion into the new one happen in the
    same flush; moving within the same parent is a reposition.

    Raises:
        OutOfRangeError: If position is outside 1..count+1 of the target siblings
    """
    old_parent = scope.parent_of(row)
    old_rows = [r for r in siblings(db, scope, old_parent) if r.id != row.id]

    if tuple(new_parent) == old_parent:
        target_rows = old_rows
    else:
        target_rows = siblings(db, scope, new_parent)
    position = _check_position(position, len(target_rows))

    for attr, value in zip(scope.parent_attrs, new_parent):
        setattr(row, attr, value)
    target_rows.insert(position - 1, row)

    if target_rows is not old_rows:
        _renumber(scope, old_rows)
    _renumber(scope, target_rows)
    db.flush()

    logger.debug(f"Moved {scope.label} {row.id} to position {position}")
    return row
