"""Ordering engine for tasks within columns and columns within boards.

Every collection on the board keeps a *dense rank*: the ``order`` values of
its members are exactly ``0..n-1``.  The functions here take a snapshot of
one or two collections plus a requested position and return the complete
list of ``(id, new_order)`` assignments that restores that property.  They
never touch storage and never return a partial result: a bad request raises
before anything is computed.

Inputs are any objects exposing ``id`` and ``order`` attributes (domain
``Task`` / ``Column`` records, or :class:`Ranked`).
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Protocol, Sequence

from .errors import InvalidIndexError, NotFoundError, OrderInvariantViolation

Assignment = tuple[int, int]


class Rankable(Protocol):
    id: int
    order: int


class Ranked(NamedTuple):
    """Minimal ``(id, order)`` snapshot entry."""

    id: int
    order: int


@dataclass(frozen=True)
class MoveResult:
    """Outcome of :func:`move_across_columns`.

    ``removed_from_source`` is empty when source and destination are the
    same column; the full reorder is then in ``inserted_into_destination``.
    """

    removed_from_source: list[Assignment] = field(default_factory=list)
    inserted_into_destination: list[Assignment] = field(default_factory=list)
    same_column: bool = False

    def all_assignments(self) -> list[Assignment]:
        return list(self.removed_from_source) + list(self.inserted_into_destination)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def sort_by_rank(items: Iterable[Rankable]) -> list:
    """Sort by ``order`` ascending, breaking ties by ``id`` ascending."""
    return sorted(items, key=lambda item: (item.order, item.id))


def _ids_in_rank_order(items: Iterable[Rankable]) -> list[int]:
    return [item.id for item in sort_by_rank(items)]


def _renumber(ids: Sequence[int]) -> list[Assignment]:
    return [(item_id, index) for index, item_id in enumerate(ids)]


def _position(ids: list[int], item_id: int, entity: str) -> int:
    try:
        return ids.index(item_id)
    except ValueError:
        raise NotFoundError(entity, item_id) from None


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def append_at_end(existing_orders: Sequence[int]) -> int:
    """Return the order for a new member appended to a dense collection."""
    return len(existing_orders)


def reorder_within_column(
    tasks: Sequence[Rankable],
    task_id: int,
    target_index: int,
    *,
    entity: str = "task",
) -> list[Assignment]:
    """Move ``task_id`` to ``target_index`` inside a single collection.

    Args:
        tasks: Snapshot of the collection (any order; re-sorted by rank).
        task_id: Member to move.
        target_index: Destination position, ``0 <= target_index < len(tasks)``.
        entity: Name used in ``NotFoundError`` messages (``"column"`` when
            reordering columns within a board).

    Returns:
        Every member with its new positional index, in positional order.

    Raises:
        NotFoundError: ``task_id`` is not in ``tasks``.
        InvalidIndexError: ``target_index`` is outside ``[0, len(tasks) - 1]``.
    """
    ids = _ids_in_rank_order(tasks)
    current = _position(ids, task_id, entity)
    if not 0 <= target_index < len(ids):
        raise InvalidIndexError(target_index, len(ids) - 1)
    ids.pop(current)
    ids.insert(target_index, task_id)
    return _renumber(ids)


def move_across_columns(
    source_tasks: Sequence[Rankable],
    destination_tasks: Sequence[Rankable],
    task_id: int,
    destination_index: int,
) -> MoveResult:
    """Move ``task_id`` from one column snapshot into another.

    The destination range is inclusive: ``destination_index ==
    len(destination_tasks)`` appends.  When the task also appears in
    ``destination_tasks`` both snapshots describe the same column and the
    call is exactly :func:`reorder_within_column`.

    Raises:
        NotFoundError: ``task_id`` is not in ``source_tasks``.
        InvalidIndexError: ``destination_index`` is out of range.
    """
    source_ids = _ids_in_rank_order(source_tasks)
    _position(source_ids, task_id, "task")
    destination_ids = _ids_in_rank_order(destination_tasks)

    if task_id in destination_ids:
        return MoveResult(
            removed_from_source=[],
            inserted_into_destination=reorder_within_column(source_tasks, task_id, destination_index),
            same_column=True,
        )

    if not 0 <= destination_index <= len(destination_ids):
        raise InvalidIndexError(destination_index, len(destination_ids))

    source_ids.remove(task_id)
    destination_ids.insert(destination_index, task_id)
    return MoveResult(
        removed_from_source=_renumber(source_ids),
        inserted_into_destination=_renumber(destination_ids),
    )


def remove_and_compact(
    tasks: Sequence[Rankable],
    task_id: int,
    *,
    entity: str = "task",
) -> list[Assignment]:
    """Drop ``task_id`` and densely renumber what remains."""
    ids = _ids_in_rank_order(tasks)
    ids.pop(_position(ids, task_id, entity))
    return _renumber(ids)


def compact_columns_after_delete(columns: Sequence[Rankable], deleted_column_id: int) -> list[Assignment]:
    """:func:`remove_and_compact` applied to the columns of a board."""
    return remove_and_compact(columns, deleted_column_id, entity="column")


# ---------------------------------------------------------------------------
# Invariant checks and repair
# ---------------------------------------------------------------------------

def find_order_violations(items: Sequence[Rankable]) -> list[str]:
    """Describe every way ``items`` departs from a dense ``0..n-1`` rank."""
    problems: list[str] = []
    counts = Counter(item.order for item in items)
    for order, count in sorted(counts.items()):
        if count > 1:
            ids = sorted(item.id for item in items if item.order == order)
            problems.append(f"duplicate order {order} (ids {', '.join(str(i) for i in ids)})")
    expected = set(range(len(items)))
    for order in sorted(expected - set(counts)):
        problems.append(f"missing order {order}")
    for order in sorted(set(counts) - expected):
        problems.append(f"unexpected order {order}")
    return problems


def ensure_dense(items: Sequence[Rankable], scope: str = "collection") -> None:
    problems = find_order_violations(items)
    if problems:
        raise OrderInvariantViolation(scope, problems)


def dense_ranks(items: Iterable[Rankable]) -> list[Assignment]:
    """Re-rank ``items`` to ``0..n-1`` keeping their relative sequence."""
    return _renumber(_ids_in_rank_order(items))


def changed_assignments(items: Iterable[Rankable], assignments: Iterable[Assignment]) -> list[Assignment]:
    """Keep only the assignments that differ from the snapshot in ``items``."""
    current = {item.id: item.order for item in items}
    return [(item_id, order) for item_id, order in assignments if current.get(item_id) != order]
