#!/usr/bin/env python3
"""
Scripted MCP server for integration tests.

Speaks newline-delimited JSON-RPC on stdin/stdout. The first argument
selects a mode:

    normal        well-behaved server
    silent        never answers initialize
    bad_schema    one tool has a non-object inputSchema
    list_changed  announces a tool list change right after initialization
    broken        writes an error to stderr and exits with status 1

Tools:
    echo            returns its "text" argument
    slow            answers after "seconds" (other messages keep flowing)
    fail            answers with a JSON-RPC error
    crash           exits immediately with status 3
    notify_update   sends resources/updated for "uri", then answers
    bogus_response  sends a response with an unknown id, then answers
    progress        sends two progress notifications, then answers
    ask             sends a server request ("method"), then answers
    get_log         returns the cancellations and replies received so far
"""

import json
import sys
import threading
import time

MODE = sys.argv[1] if len(sys.argv) > 1 else "normal"

write_lock = threading.Lock()
log = {"cancelled": [], "replies": [], "initialized": False}

TOOLS_PAGE_1 = [
    {"name": "echo", "description": "Echo text back",
     "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}}},
    {"name": "slow", "description": "Answer after a delay",
     "inputSchema": {"type": "object", "properties": {"seconds": {"type": "number"}}}},
    {"name": "fail", "description": "Always fails", "inputSchema": {"type": "object"}},
]
TOOLS_PAGE_2 = [
    {"name": "crash", "description": "Exit the process", "inputSchema": {"type": "object"}},
    {"name": "notify_update", "description": "Send a resource update", "inputSchema": {"type": "object"}},
    {"name": "bogus_response", "description": "Send a stray response", "inputSchema": {"type": "object"}},
    {"name": "progress", "description": "Report progress", "inputSchema": {"type": "object"}},
    {"name": "ask", "description": "Send a server request", "inputSchema": {"type": "object"}},
    {"name": "get_log", "description": "Return the received log", "inputSchema": {"type": "object"}},
]

RESOURCES = [
    {"uri": "file:///notes.txt", "name": "notes", "mimeType": "text/plain"},
]

PROMPTS = [
    {"name": "greet", "description": "Say hello",
     "arguments": [{"name": "who", "required": True}]},
]


def send(message):
    message["jsonrpc"] = "2.0"
    with write_lock:
        sys.stdout.write(json.dumps(message) + "\n")
        sys.stdout.flush()


def result(request_id, value):
    send({"id": request_id, "result": value})


def error(request_id, code, message):
    send({"id": request_id, "error": {"code": code, "message": message}})


def text(value):
    return {"content": [{"type": "text", "text": value}]}


def call_tool(request_id, params):
    name = params.get("name")
    args = params.get("arguments") or {}

    if name == "echo":
        result(request_id, text(str(args.get("text", ""))))
    elif name == "slow":
        def later():
            time.sleep(float(args.get("seconds", 1)))
            result(request_id, text("done"))
        threading.Thread(target=later, daemon=True).start()
    elif name == "fail":
        error(request_id, -32000, "boom")
    elif name == "crash":
        sys.stdout.flush()
        sys.exit(3)
    elif name == "notify_update":
        send({"method": "notifications/resources/updated", "params": {"uri": args.get("uri")}})
        result(request_id, text("sent"))
    elif name == "bogus_response":
        result(9999, text("nobody asked"))
        result(request_id, text("real"))
    elif name == "progress":
        token = args.get("token", "tok")
        send({"method": "notifications/progress",
              "params": {"progressToken": token, "progress": 1, "total": 2}})
        send({"method": "notifications/progress",
              "params": {"progressToken": token, "progress": 2, "total": 2}})
        result(request_id, text("progressed"))
    elif name == "ask":
        request = {"id": args.get("id", "srv-1"), "method": args.get("method", "roots/list")}
        if "params" in args:
            request["params"] = args["params"]
        send(request)
        result(request_id, text("asked"))
    elif name == "get_log":
        result(request_id, text(json.dumps(log)))
    else:
        error(request_id, -32602, f"Unknown tool: {name}")


def handle(message):
    method = message.get("method")
    request_id = message.get("id")
    params = message.get("params") or {}

    if method is None:
        # A reply to one of our own requests
        log["replies"].append(message)
        return

    if request_id is None:
        if method == "notifications/initialized":
            log["initialized"] = True
            if MODE == "list_changed":
                send({"method": "notifications/tools/list_changed"})
        elif method == "notifications/cancelled":
            log["cancelled"].append(params.get("requestId"))
        return

    if method == "initialize":
        if MODE == "silent":
            return
        result(request_id, {
            "protocolVersion": "2024-11-05",
            "capabilities": {
                "tools": {"listChanged": True},
                "resources": {"subscribe": True, "listChanged": True},
                "prompts": {},
            },
            "serverInfo": {"name": "fake", "version": "0.1"},
        })
    elif method == "ping":
        result(request_id, {})
    elif method == "tools/list":
        if params.get("cursor") == "page2":
            tools = list(TOOLS_PAGE_2)
            if MODE == "bad_schema":
                tools.append({"name": "broken", "inputSchema": "not a schema"})
            result(request_id, {"tools": tools})
        else:
            result(request_id, {"tools": TOOLS_PAGE_1, "nextCursor": "page2"})
    elif method == "resources/list":
        result(request_id, {"resources": RESOURCES})
    elif method == "resources/read":
        result(request_id, {"contents": [
            {"uri": params.get("uri"), "mimeType": "text/plain", "text": "hello notes"},
        ]})
    elif method in ("resources/subscribe", "resources/unsubscribe"):
        result(request_id, {})
    elif method == "prompts/list":
        result(request_id, {"prompts": PROMPTS})
    elif method == "prompts/get":
        who = (params.get("arguments") or {}).get("who", "world")
        result(request_id, {
            "description": "Greeting",
            "messages": [{"role": "user", "content": {"type": "text", "text": f"Hello {who}"}}],
        })
    elif method == "tools/call":
        call_tool(request_id, params)
    else:
        error(request_id, -32601, f"Method not found: {method}")


def main():
    if MODE == "broken":
        sys.stderr.write("fatal: API_TOKEN is not set\n")
        sys.stderr.flush()
        sys.exit(1)
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError:
            continue
        handle(message)


if __name__ == "__main__":
    main()
