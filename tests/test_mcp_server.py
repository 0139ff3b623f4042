"""Unit tests for the MCP stdio server."""

import io
import json

import pytest

from interface.intent_api import INTENT_HANDLERS
from interface.mcp_server import (
    MCP_VERSION,
    SERVER_NAME,
    JsonRpcRequest,
    MCPServer,
    get_tool_definitions,
    json_rpc_error,
    json_rpc_response,
    run_stdio,
)


def _req(method, id=1, **params):
    return JsonRpcRequest(jsonrpc="2.0", method=method, id=id, params=params)


@pytest.fixture
def server(manager):
    srv = MCPServer(manager=manager)
    srv.handle_request(_req("initialize"))
    srv.handle_request(_req("notifications/initialized", id=None))
    return srv


def _tool_payload(response):
    return json.loads(response["result"]["content"][0]["text"])


class TestJsonRpc:
    def test_response_and_error_shapes(self):
        assert json_rpc_response(1, {"ok": True}) == {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}
        err = json_rpc_error(2, -32600, "Invalid Request", {"detail": "x"})
        assert err["error"] == {"code": -32600, "message": "Invalid Request", "data": {"detail": "x"}}

    def test_request_from_dict_minimal(self):
        req = JsonRpcRequest.from_dict({"method": "ping"})
        assert req.method == "ping"
        assert req.id is None
        assert req.params == {}


class TestToolDefinitions:
    def test_one_tool_per_intent(self):
        tools = get_tool_definitions()
        assert sorted(t["name"] for t in tools) == sorted(INTENT_HANDLERS)
        for tool in tools:
            assert tool["description"]
            assert tool["inputSchema"]["type"] == "object"

    def test_required_arguments(self):
        required = {t["name"]: t["inputSchema"]["required"] for t in get_tool_definitions()}
        assert required["create_task"] == ["title", "project"]
        assert required["import_tasks"] == ["source", "project"]
        for name in ("update_task", "get_task", "promote_task", "archive_task", "unarchive_task"):
            assert required[name] == ["id"]
        assert required["get_next_task"] == []


class TestLifecycle:
    def test_initialize(self, manager):
        srv = MCPServer(manager=manager)
        resp = srv.handle_request(_req("initialize"))
        assert resp["result"]["protocolVersion"] == MCP_VERSION
        assert resp["result"]["serverInfo"]["name"] == SERVER_NAME
        assert "tools" in resp["result"]["capabilities"]

    def test_requests_before_initialized_are_rejected(self, manager):
        srv = MCPServer(manager=manager)
        resp = srv.handle_request(_req("tools/list"))
        assert resp["error"]["code"] == -32002

    def test_notification_has_no_response(self, manager):
        srv = MCPServer(manager=manager)
        assert srv.handle_request(_req("notifications/initialized", id=None)) is None

    def test_ping_and_unknown_method(self, server):
        assert server.handle_request(_req("ping"))["result"] == {}
        assert server.handle_request(_req("resources/list"))["error"]["code"] == -32601


class TestToolsCall:
    def test_create_then_next(self, server):
        resp = server.handle_request(
            _req("tools/call", name="create_task", arguments={"title": "Login endpoint", "project": "AUTH", "priority": "P1"})
        )
        assert resp["result"]["isError"] is False
        assert _tool_payload(resp)["result"]["id"] == "AUTH-001"

        resp = server.handle_request(_req("tools/call", name="get_next_task", arguments={}))
        assert _tool_payload(resp)["result"]["tasks"][0]["id"] == "AUTH-001"

    def test_domain_error_is_tool_error(self, server):
        resp = server.handle_request(_req("tools/call", name="get_task", arguments={"id": "AUTH-404"}))
        assert resp["result"]["isError"] is True
        assert _tool_payload(resp)["error"]["code"] == "NOT_FOUND"

    def test_unknown_tool_and_bad_arguments(self, server):
        assert server.handle_request(_req("tools/call", name="fly", arguments={}))["error"]["code"] == -32602
        assert server.handle_request(_req("tools/call", name="get_task", arguments=["x"]))["error"]["code"] == -32602

    def test_sees_files_edited_between_calls(self, server, manager):
        server.handle_request(_req("tools/call", name="create_task", arguments={"title": "One", "project": "AUTH"}))
        (manager.storage_dir / "todos" / "AUTH-001.md").unlink()
        resp = server.handle_request(_req("tools/call", name="get_task", arguments={"id": "AUTH-001"}))
        assert _tool_payload(resp)["error"]["code"] == "NOT_FOUND"


def test_run_stdio_round_trip(storage_dir):
    lines = [
        "not json",
        "[1, 2]",
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}),
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        "",
        json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "init_project", "arguments": {}}}),
    ]
    stdout = io.StringIO()
    assert run_stdio(storage_dir=storage_dir, stdin=io.StringIO("\n".join(lines) + "\n"), stdout=stdout) == 0

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r.get("id") for r in responses] == [None, None, 1, 2]
    assert responses[0]["error"]["code"] == -32700
    assert responses[1]["error"]["code"] == -32600
    assert responses[3]["result"]["isError"] is False
    assert (storage_dir / "BACKLOG.md").exists()
