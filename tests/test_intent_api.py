"""Tests for the JSON intent API."""

import json

from interface.intent_api import INTENT_HANDLERS, AIResponse, process_intent, validate_arguments


def _call(manager, intent, **payload):
    payload["intent"] = intent
    return process_intent(manager, payload).to_dict()


def test_success_envelope(manager):
    resp = _call(manager, "create_task", title="Login endpoint", project="auth", tags="api, backend")
    assert resp["success"] is True
    assert resp["intent"] == "create_task"
    assert resp["error"] is None
    assert resp["result"]["id"] == "AUTH-001"
    assert resp["result"]["task"]["tags"] == ["api", "backend"]
    assert resp["result"]["task"]["status_emoji"]
    assert "AUTH-001" in resp["summary"]
    json.dumps(resp)


def test_error_envelope_for_domain_errors(manager):
    resp = _call(manager, "get_task", id="AUTH-404")
    assert resp["success"] is False
    assert resp["error"]["code"] == "NOT_FOUND"
    assert resp["error"]["recovery"]
    assert resp["result"] == {"id": "AUTH-404"}

    _call(manager, "create_task", title="Open", project="AUTH")
    resp = _call(manager, "archive_task", id="AUTH-001")
    assert resp["error"]["code"] == "STATE_ERROR"

    resp = _call(manager, "update_task", id="AUTH-001", colour="red")
    assert resp["error"]["code"] == "VALIDATION_ERROR"


def test_schema_validation(manager):
    resp = _call(manager, "create_task", title="No project")
    assert resp["success"] is False
    assert resp["error"]["code"] == "INVALID_REQUEST"
    assert "project" in resp["error"]["message"]

    resp = _call(manager, "get_next_task", limit="three")
    assert resp["error"]["code"] == "VALIDATION_ERROR"
    assert resp["error"]["message"].startswith("limit:")
    assert resp["result"] == {"field": "limit"}

    resp = _call(manager, "create_task", title="Typed due", project="AUTH", due=5)
    assert resp["error"]["code"] == "VALIDATION_ERROR"
    assert resp["error"]["message"].startswith("due:")
    assert _call(manager, "list_tasks")["result"]["total"] == 0

    assert validate_arguments("get_next_task", {"limit": 2}) is None


def test_unknown_and_missing_intent(manager):
    resp = process_intent(manager, {"intent": "fly"}).to_dict()
    assert resp["error"]["code"] == "UNKNOWN_INTENT"
    assert "create_task" in resp["error"]["recovery"]
    assert process_intent(manager, {}).error_code == "INVALID_REQUEST"
    assert process_intent(manager, ["not", "a", "dict"]).error_code == "INVALID_REQUEST"


def test_get_task_reports_readiness(manager):
    _call(manager, "create_task", title="Login endpoint", project="AUTH")
    _call(manager, "create_task", title="Session tokens", project="AUTH", depends_on=["AUTH-001"])
    resp = _call(manager, "get_task", id="auth-002")
    assert resp["result"]["location"] == "active"
    assert resp["result"]["task"]["ready"] is False
    assert resp["result"]["waiting_on"] == ["AUTH-001"]


def test_import_promote_flow(manager):
    text = "## Sprint 3\n- Write API docs\n- Add rate limiting [security]\n- Refactor config loader\n"
    preview = _call(manager, "import_tasks", source=text, project="API", dry_run=True)
    assert preview["result"]["count"] == 3
    assert "id" not in preview["result"]["candidates"][0]

    imported = _call(manager, "import_tasks", source=text, project="API")
    assert imported["result"]["ids"] == ["API-001", "API-002", "API-003"]
    assert imported["result"]["by_priority"] == {"P2": 3}

    promoted = _call(manager, "promote_task", id="API-002", owner="ana")
    assert promoted["result"]["noop"] is False
    again = _call(manager, "promote_task", id="API-002")
    assert again["success"] is True
    assert again["result"]["noop"] is True
    assert again["warnings"]

    backlog = _call(manager, "list_backlog", include_promoted=False)
    assert [e["id"] for e in backlog["result"]["entries"]] == ["API-001", "API-003"]


def test_import_with_no_candidates_warns(manager):
    resp = _call(manager, "import_tasks", source="just prose", project="API")
    assert resp["success"] is True
    assert resp["result"]["inserted"] == 0
    assert resp["warnings"]


def test_backlog_edit_and_remove(manager):
    _call(manager, "import_tasks", source="- Write API docs\n", project="API")
    updated = _call(manager, "update_backlog_item", id="API-001", priority="P0", title="Write public API docs")
    assert updated["result"]["entry"]["priority"] == "P0"
    removed = _call(manager, "remove_backlog_item", id="API-001")
    assert removed["result"]["entry"]["title"] == "Write public API docs"
    assert _call(manager, "remove_backlog_item", id="API-001")["error"]["code"] == "NOT_FOUND"


def test_listing_next_lint_sync_and_init(manager):
    _call(manager, "create_task", title="One", project="AUTH", status="in_progress")
    _call(manager, "create_task", title="Two", project="AUTH", status="done")
    _call(manager, "archive_task", id="AUTH-002")

    listing = _call(manager, "list_tasks", include_archived=True)
    assert listing["result"]["total"] == 1
    assert [t["id"] for t in listing["result"]["archived"]] == ["AUTH-002"]

    nxt = _call(manager, "get_next_task")
    assert nxt["result"]["count"] == 1
    assert nxt["result"]["tasks"][0]["id"] == "AUTH-001"

    lint = _call(manager, "lint_tasks")
    assert lint["result"]["summary"]["errors"] == 0

    sync = _call(manager, "sync_todo_index", format="kanban")
    assert sync["result"]["format"] == "kanban"

    init = _call(manager, "init_project")
    assert init["result"]["created"] == []


def test_update_with_append_and_unarchive(manager):
    _call(manager, "create_task", title="One", project="AUTH", notes="First note.")
    resp = _call(manager, "update_task", id="AUTH-001", notes="append:Second note.", status="done")
    assert resp["result"]["changed_fields"] == ["notes", "status", "completed"]
    assert resp["result"]["task"]["notes"] == "First note.\n\nSecond note."
    _call(manager, "archive_task", id="AUTH-001")
    restored = _call(manager, "unarchive_task", id="AUTH-001")
    assert restored["result"]["task"]["status"] == "done"


def test_every_intent_has_a_handler():
    assert len(INTENT_HANDLERS) == 15


def test_failed_response_drops_no_error_fields():
    resp = AIResponse(success=False, intent="x", error_code="NOT_FOUND", error_message="gone")
    body = resp.to_dict()
    assert body["error"] == {"code": "NOT_FOUND", "message": "gone"}
    assert "summary" not in body


def test_damaged_backlog_returns_structured_error(manager):
    (manager.storage_dir / "BACKLOG.md").write_text("---\nentries: [unclosed\n---\n", encoding="utf-8")
    manager.refresh()
    resp = _call(manager, "create_task", title="Login endpoint", project="AUTH")
    assert resp["success"] is False
    assert resp["error"]["code"] == "VALIDATION_ERROR"
    assert "BACKLOG.md" in resp["error"]["message"]
    assert resp["result"]["path"].endswith("BACKLOG.md")
