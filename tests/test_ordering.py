from __future__ import annotations

import random

import pytest

from kanban_sync.errors import InvalidIndexError, NotFoundError, OrderInvariantViolation
from kanban_sync.ordering import (
    Ranked,
    append_at_end,
    changed_assignments,
    compact_columns_after_delete,
    dense_ranks,
    ensure_dense,
    find_order_violations,
    move_across_columns,
    remove_and_compact,
    reorder_within_column,
    sort_by_rank,
)


def _column(*ids: int) -> list[Ranked]:
    return [Ranked(item_id, order) for order, item_id in enumerate(ids)]


def _apply(items: list[Ranked], assignments: list[tuple[int, int]]) -> list[Ranked]:
    orders = dict(assignments)
    return [Ranked(item.id, orders.get(item.id, item.order)) for item in items]


def test_append_at_end_uses_count() -> None:
    assert append_at_end([]) == 0
    assert append_at_end([0, 1, 2]) == 3


def test_reorder_moves_first_to_last() -> None:
    assert reorder_within_column(_column(1, 2, 3), 1, 2) == [(2, 0), (3, 1), (1, 2)]


def test_reorder_moves_last_to_first() -> None:
    assert reorder_within_column(_column(1, 2, 3), 3, 0) == [(3, 0), (1, 1), (2, 2)]


def test_reorder_sorts_stale_snapshot_by_order_then_id() -> None:
    stale = [Ranked(9, 1), Ranked(4, 0), Ranked(7, 1)]
    # ranked sequence is 4, 7, 9
    assert reorder_within_column(stale, 4, 2) == [(7, 0), (9, 1), (4, 2)]


def test_reorder_rejects_unknown_task_before_index() -> None:
    with pytest.raises(NotFoundError):
        reorder_within_column(_column(1, 2), 99, 50)


@pytest.mark.parametrize("index", [-1, 3])
def test_reorder_rejects_out_of_range_index(index: int) -> None:
    with pytest.raises(InvalidIndexError) as excinfo:
        reorder_within_column(_column(1, 2, 3), 2, index)
    assert excinfo.value.upper_bound == 2


def test_move_no_op_leaves_orders_unchanged() -> None:
    tasks = _column(1, 2, 3, 4)
    for task in tasks:
        result = move_across_columns(tasks, tasks, task.id, task.order)
        assert _apply(tasks, result.all_assignments()) == tasks
        assert changed_assignments(tasks, result.all_assignments()) == []


def test_move_across_columns_concrete_scenario() -> None:
    result = move_across_columns(_column(1, 2), _column(3), 1, 0)
    assert result.removed_from_source == [(2, 0)]
    assert result.inserted_into_destination == [(1, 0), (3, 1)]
    assert result.same_column is False


def test_same_column_degenerates_to_reorder() -> None:
    tasks = _column(10, 11, 12, 13)
    for task in tasks:
        for index in range(len(tasks)):
            result = move_across_columns(tasks, tasks, task.id, index)
            assert result.removed_from_source == []
            assert result.inserted_into_destination == reorder_within_column(tasks, task.id, index)
            assert result.same_column


def test_same_column_uses_reorder_range() -> None:
    tasks = _column(1, 2, 3)
    with pytest.raises(InvalidIndexError):
        move_across_columns(tasks, tasks, 1, 3)


def test_append_boundary_index() -> None:
    source = _column(1, 2)
    destination = _column(3, 4, 5)
    result = move_across_columns(source, destination, 1, len(destination))
    assert result.inserted_into_destination[-1] == (1, 3)
    with pytest.raises(InvalidIndexError) as excinfo:
        move_across_columns(source, destination, 1, len(destination) + 1)
    assert excinfo.value.upper_bound == len(destination)


def test_move_into_empty_column() -> None:
    result = move_across_columns(_column(1), [], 1, 0)
    assert result.removed_from_source == []
    assert result.inserted_into_destination == [(1, 0)]


def test_move_requires_task_in_source() -> None:
    with pytest.raises(NotFoundError):
        move_across_columns(_column(1), _column(2), 2, 0)


def test_cross_column_move_conserves_tasks() -> None:
    source = _column(1, 2, 3)
    destination = _column(4, 5)
    result = move_across_columns(source, destination, 2, 1)
    moved_source = [item_id for item_id, _ in result.removed_from_source]
    moved_destination = [item_id for item_id, _ in result.inserted_into_destination]
    assert len(moved_source) + len(moved_destination) == len(source) + len(destination)
    assert sorted(moved_source + moved_destination) == [1, 2, 3, 4, 5]
    assert moved_destination.count(2) == 1
    assert [order for _, order in result.removed_from_source] == [0, 1]
    assert [order for _, order in result.inserted_into_destination] == [0, 1, 2]


def test_remove_and_compact() -> None:
    assert remove_and_compact(_column(1, 2, 3), 2) == [(1, 0), (3, 1)]
    with pytest.raises(NotFoundError):
        remove_and_compact(_column(1), 5)


def test_column_compaction_after_delete() -> None:
    columns = _column(100, 101, 102, 103)
    assert compact_columns_after_delete(columns, 101) == [(100, 0), (102, 1), (103, 2)]


def test_column_compaction_reports_column_entity() -> None:
    with pytest.raises(NotFoundError) as excinfo:
        compact_columns_after_delete(_column(1), 2)
    assert excinfo.value.entity == "column"


def test_find_order_violations_and_repair() -> None:
    broken = [Ranked(1, 0), Ranked(2, 0), Ranked(3, 4)]
    problems = find_order_violations(broken)
    assert any("duplicate order 0" in p for p in problems)
    assert any("missing order 1" in p for p in problems)
    with pytest.raises(OrderInvariantViolation):
        ensure_dense(broken, "column 7 tasks")
    assert dense_ranks(broken) == [(1, 0), (2, 1), (3, 2)]
    ensure_dense(_apply(broken, dense_ranks(broken)))


def test_sort_by_rank_breaks_ties_by_id() -> None:
    assert [r.id for r in sort_by_rank([Ranked(5, 1), Ranked(2, 1), Ranked(9, 0)])] == [9, 2, 5]


def test_invalid_index_clamp() -> None:
    assert InvalidIndexError(7, 3).clamp() == 3
    assert InvalidIndexError(-2, 3).clamp() == 0
    assert InvalidIndexError(1, -1).clamp() == 0


def test_random_operations_keep_columns_dense() -> None:
    rng = random.Random(1234)
    columns: dict[str, list[Ranked]] = {"a": [], "b": [], "c": []}
    next_id = 1
    for _ in range(400):
        name = rng.choice(list(columns))
        tasks = columns[name]
        op = rng.choice(["create", "delete", "move", "reorder"])
        if op == "create" or not tasks:
            tasks.append(Ranked(next_id, append_at_end([t.order for t in tasks])))
            next_id += 1
        elif op == "delete":
            victim = rng.choice(tasks).id
            columns[name] = _apply([t for t in tasks if t.id != victim], remove_and_compact(tasks, victim))
        elif op == "reorder":
            mover = rng.choice(tasks).id
            columns[name] = _apply(tasks, reorder_within_column(tasks, mover, rng.randrange(len(tasks))))
        else:
            target = rng.choice(list(columns))
            mover = rng.choice(tasks).id
            destination = columns[target]
            if target == name:
                index = rng.randrange(len(tasks))
                columns[name] = _apply(tasks, move_across_columns(tasks, destination, mover, index).all_assignments())
            else:
                index = rng.randrange(len(destination) + 1)
                result = move_across_columns(tasks, destination, mover, index)
                moved = next(t for t in tasks if t.id == mover)
                columns[name] = _apply([t for t in tasks if t.id != mover], result.removed_from_source)
                columns[target] = _apply(destination + [moved], result.inserted_into_destination)
        for bucket in columns.values():
            assert sorted(t.order for t in bucket) == list(range(len(bucket)))
    total = sum(len(bucket) for bucket in columns.values())
    assert len({t.id for bucket in columns.values() for t in bucket}) == total
