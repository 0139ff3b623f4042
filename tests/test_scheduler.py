from core import TaskRecord, select_next, sort_for_listing
from core.scheduler import make_filter, rank


def _task(task_id, **kwargs):
    project = task_id.split("-")[0]
    return TaskRecord(id=task_id, title=f"Task {task_id}", project=project, **kwargs)


def test_rank_orders_in_progress_priority_due_then_id():
    tasks = [
        _task("A-004", priority="P1"),
        _task("A-003", priority="P1", due="2026-03-01"),
        _task("A-002", priority="P0"),
        _task("A-005", priority="P3", status="in_progress"),
        _task("A-001", priority="P1", due="2026-02-01"),
        _task("A-006", priority="P1", due="2026-02-01"),
    ]
    assert [t.id for t in rank(tasks)] == ["A-005", "A-002", "A-001", "A-006", "A-003", "A-004"]


def test_unknown_priority_ranks_like_p2():
    tasks = [_task("A-001", priority="P3"), _task("A-002", priority="HIGH"), _task("A-003", priority="P2")]
    assert [t.id for t in rank(tasks)] == ["A-002", "A-003", "A-001"]


def test_select_next_skips_done_blocked_and_unready():
    tasks = [
        _task("A-001", status="done"),
        _task("A-002", depends_on=["A-001"]),
        _task("A-003", depends_on=["A-009"]),
        _task("A-004", status="blocked"),
        _task("A-005", depends_on=["A-006"]),
        _task("A-006", status="review"),
    ]
    statuses = {t.id: t.status for t in tasks}
    assert [t.id for t in select_next(tasks, statuses)] == ["A-002", "A-006"]
    assert [t.id for t in select_next(tasks, statuses, include_blocked=True)] == ["A-002", "A-004", "A-006"]


def test_select_next_filters_and_limit():
    tasks = [
        _task("A-001", owner="ana"),
        _task("A-002", owner="bo"),
        _task("B-001", owner="ana"),
    ]
    statuses = {t.id: t.status for t in tasks}
    assert [t.id for t in select_next(tasks, statuses, owner="ana")] == ["A-001", "B-001"]
    assert [t.id for t in select_next(tasks, statuses, project="b")] == ["B-001"]
    assert [t.id for t in select_next(tasks, statuses, limit=1)] == ["A-001"]
    assert select_next(tasks, statuses, limit=0) == []


def test_dependency_satisfied_by_record_outside_candidates():
    # An archived dependency only appears in the status snapshot.
    tasks = [_task("A-002", depends_on=["A-001"])]
    assert select_next(tasks, {"A-001": "done", "A-002": "todo"})[0].id == "A-002"


def test_sort_for_listing_and_filter():
    tasks = [
        _task("A-003", status="done", priority="P0"),
        _task("A-002", status="todo", priority="P1", tags=["backend"]),
        _task("A-001", status="in_progress", priority="P3"),
        _task("A-004", status="todo", priority="P0"),
    ]
    assert [t.id for t in sort_for_listing(tasks)] == ["A-001", "A-004", "A-002", "A-003"]
    only_backend = make_filter(tag="Backend")
    assert [t.id for t in tasks if only_backend(t)] == ["A-002"]
    todo_p0 = make_filter(status="todo", priority="p0")
    assert [t.id for t in tasks if todo_p0(t)] == ["A-004"]
