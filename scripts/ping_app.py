#!/usr/bin/env python3
"""
Smoke test client for a running toolhost app served over TCP.

Checks:
1. Health check
2. Tool listing
3. Calculator invocation (success)
4. Calculator invocation (divide by zero -> execution error)
5. Unknown tool (404) and invalid input (422)

Usage:
    TOOLHOST_APP_NAME=calculator TOOLHOST_APP_PORT=5997 python calculator_app.py &
    python scripts/ping_app.py [http://host:port]

Default: http://127.0.0.1:5997
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

CheckFunction = Callable[[str], bool]


def request(
    method: str, url: str, data: dict[str, Any] | None = None
) -> tuple[int, Any]:
    """Make an HTTP request and return (status, decoded JSON body)."""
    req = Request(
        url,
        data=json.dumps(data).encode() if data is not None else None,
        headers={"Content-Type": "application/json"} if data is not None else {},
        method=method,
    )
    try:
        with urlopen(req, timeout=30) as resp:
            return resp.status, json.loads(resp.read().decode())
    except HTTPError as e:
        # error statuses still carry a JSON envelope
        return e.code, json.loads(e.read().decode() or "null")


def invoke(base_url: str, tool_name: str, arguments: Any) -> tuple[int, dict[str, Any]]:
    return request(
        "POST",
        f"{base_url}/v1/invoke-tool",
        {"tool_name": tool_name, "arguments": arguments},
    )


def check_health(base_url: str) -> bool:
    print("\n1. Checking /health...")
    status, body = request("GET", f"{base_url}/health")
    if status != 200 or not body.get("healthy"):
        print(f"   ❌ Unhealthy ({status}): {body}")
        return False
    print(f"   ✅ {body['name']} {body['version'] or '(no version)'} is {body['state']}")
    print(f"   ✅ Tools: {', '.join(body['tools'])}")
    return True


def check_tools(base_url: str) -> bool:
    print("\n2. Checking /v1/tools...")
    status, tools = request("GET", f"{base_url}/v1/tools")
    if status != 200:
        print(f"   ❌ Failed ({status}): {tools}")
        return False
    for tool in tools:
        actions = tool["parameters"]["properties"].get("action", {}).get("enum", [])
        print(f"   ✅ {tool['name']}: {tool['description']} actions={actions}")
    return True


def check_invoke(base_url: str) -> bool:
    print("\n3. Invoking calculator add 2 3...")
    status, body = invoke(base_url, "calculator", {"action": "add", "a": 2, "b": 3})
    if status != 200 or not body["ok"]:
        print(f"   ❌ Failed ({status}): {body}")
        return False
    print(f"   ✅ {body['content']} ({body['latency_ms']:.1f}ms)")
    return True


def check_execution_error(base_url: str) -> bool:
    print("\n4. Invoking calculator divide 1 0...")
    status, body = invoke(base_url, "calculator", {"action": "divide", "a": 1, "b": 0})
    if status != 200 or body["ok"] or body["error_kind"] != "execution":
        print(f"   ❌ Unexpected ({status}): {body}")
        return False
    print(f"   ✅ Execution error: {body['content']}")
    return True


def check_rejections(base_url: str) -> bool:
    print("\n5. Checking rejections...")
    unknown_status, unknown = invoke(base_url, "nonexistent", {})
    invalid_status, invalid = invoke(base_url, "calculator", {"action": "add", "a": 2})

    ok = True
    if unknown_status == 404 and unknown["error_kind"] == "unknown_tool":
        print(f"   ✅ 404: {unknown['content']}")
    else:
        print(f"   ❌ Unknown tool gave {unknown_status}: {unknown}")
        ok = False
    if invalid_status == 422 and invalid["error_kind"] == "invalid_input":
        print(f"   ✅ 422: {invalid['content']}")
    else:
        print(f"   ❌ Invalid input gave {invalid_status}: {invalid}")
        ok = False
    return ok


def main() -> int:
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:5997"

    print("=" * 60)
    print("🧪 toolhost smoke test")
    print("=" * 60)
    print(f"Target: {base_url}")

    checks: list[CheckFunction] = [
        check_health,
        check_tools,
        check_invoke,
        check_execution_error,
        check_rejections,
    ]

    passed = 0
    failed = 0
    for check in checks:
        try:
            if check(base_url):
                passed += 1
            else:
                failed += 1
        except (URLError, OSError, KeyError, ValueError) as e:
            print(f"   ❌ Exception: {e}")
            failed += 1

    print("\n" + "=" * 60)
    print(f"Results: {passed} passed, {failed} failed")
    print("=" * 60)

    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
