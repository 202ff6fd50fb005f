"""Tests for agent snippet execution."""

from __future__ import annotations

import httpx
import pytest

from datadog_api_mcp.errors import (
    DatadogAPIError,
    PolicyDeniedError,
    SnippetRuntimeError,
    SnippetSyntaxError,
    SnippetTimeoutError,
)
from datadog_api_mcp.executor import execute_code, execute_search, run_snippet
from datadog_api_mcp.gateway import DatadogGateway

SPEC = {
    "paths": {
        "/api/v1/monitor": {
            "get": {"summary": "Get all monitor details", "tags": ["Monitors"]},
        },
        "/api/v2/logs/events/search": {
            "post": {"summary": "Search logs", "tags": ["Logs"]},
        },
    },
}


# ── search ───────────────────────────────────────────────────────────────


class TestExecuteSearch:
    @pytest.mark.anyio
    async def test_finds_paths_by_tag(self):
        code = """
async def run():
    results = []
    for path, methods in spec["paths"].items():
        for method, op in methods.items():
            if "Monitors" in op.get("tags", []):
                results.append({"method": method, "path": path})
    return results
"""
        result = await execute_search(code, SPEC)
        assert result == [{"method": "get", "path": "/api/v1/monitor"}]

    @pytest.mark.anyio
    async def test_returns_all_paths(self):
        code = "async def run():\n    return list(spec['paths'])"
        assert await execute_search(code, SPEC) == [
            "/api/v1/monitor",
            "/api/v2/logs/events/search",
        ]

    @pytest.mark.anyio
    async def test_empty_for_no_matches(self):
        code = "async def run():\n    return [p for p in spec['paths'] if 'nonexistent' in p]"
        assert await execute_search(code, SPEC) == []

    @pytest.mark.anyio
    async def test_sync_run_supported(self):
        code = "def run():\n    return len(spec['paths'])"
        assert await execute_search(code, SPEC) == 2

    @pytest.mark.anyio
    async def test_allowed_import(self):
        code = "import json\n\nasync def run():\n    return json.dumps(sorted(spec['paths']))[:2]"
        assert await execute_search(code, SPEC) == '["'

    @pytest.mark.anyio
    async def test_syntax_error(self):
        with pytest.raises(SnippetSyntaxError):
            await execute_search("async def run(:\n    pass", SPEC)

    @pytest.mark.anyio
    async def test_missing_entrypoint(self):
        with pytest.raises(SnippetSyntaxError, match="run"):
            await execute_search("x = 1", SPEC)

    @pytest.mark.anyio
    async def test_runtime_error(self):
        code = "async def run():\n    raise ValueError('boom')"
        with pytest.raises(SnippetRuntimeError, match="boom"):
            await execute_search(code, SPEC)

    @pytest.mark.anyio
    async def test_module_level_error(self):
        with pytest.raises(SnippetRuntimeError, match="division"):
            await execute_search("1 / 0\nasync def run():\n    return 1", SPEC)


# ── namespace restrictions ───────────────────────────────────────────────


class TestNamespace:
    @pytest.mark.anyio
    async def test_disallowed_import(self):
        code = "import os\n\nasync def run():\n    return os.getcwd()"
        with pytest.raises(SnippetRuntimeError, match="not allowed"):
            await run_snippet(code, {})

    @pytest.mark.anyio
    async def test_open_unavailable(self):
        code = "async def run():\n    return open('/etc/passwd').read()"
        with pytest.raises(SnippetRuntimeError, match="open"):
            await run_snippet(code, {})

    @pytest.mark.anyio
    async def test_only_bound_name_visible(self):
        code = "async def run():\n    return datadog"
        with pytest.raises(SnippetRuntimeError):
            await execute_search(code, SPEC)

    @pytest.mark.anyio
    async def test_class_definitions_work(self):
        code = (
            "class Hit:\n"
            "    def __init__(self, p):\n"
            "        self.p = p\n"
            "async def run():\n"
            "    return [Hit(p).p for p in spec['paths']][0]"
        )
        assert await execute_search(code, SPEC) == "/api/v1/monitor"

    @pytest.mark.anyio
    async def test_timeout(self):
        import asyncio

        # asyncio is not importable from snippets, so bind a sleeper.
        code = "async def run():\n    await sleep(10)"
        with pytest.raises(SnippetTimeoutError):
            await run_snippet(code, {"sleep": asyncio.sleep}, timeout=0.05)


# ── execute ──────────────────────────────────────────────────────────────


def _gateway(handler) -> DatadogGateway:
    return DatadogGateway("test-api-key", "test-app-key", transport=httpx.MockTransport(handler))


class TestExecuteCode:
    @pytest.mark.anyio
    async def test_blocks_non_allowlisted_write(self):
        calls = []
        gw = _gateway(lambda req: calls.append(req) or httpx.Response(200, json={}))
        code = (
            "async def run():\n"
            "    return await datadog.request('DELETE', '/api/v2/security_monitoring/rules/abc')"
        )
        with pytest.raises(PolicyDeniedError, match="not in the write allowlist"):
            await execute_code(code, gw)
        assert calls == []

    @pytest.mark.anyio
    async def test_blocks_post_to_non_allowlisted_path(self):
        gw = _gateway(lambda req: httpx.Response(200, json={}))
        code = "async def run():\n    return await datadog.request('POST', '/api/v1/monitor')"
        with pytest.raises(PolicyDeniedError, match="not in the write allowlist"):
            await execute_code(code, gw)

    @pytest.mark.anyio
    async def test_get_passes_guard(self):
        gw = _gateway(lambda req: httpx.Response(200, json=[{"id": 1}]))
        code = "async def run():\n    return await datadog.request('GET', '/api/v1/monitor')"
        assert await execute_code(code, gw) == [{"id": 1}]
        await gw.close()

    @pytest.mark.anyio
    async def test_allowlisted_post_passes_guard(self):
        gw = _gateway(lambda req: httpx.Response(200, json={"data": {"id": 7}}))
        code = (
            "async def run():\n"
            "    return await datadog.request(method='POST', path='/api/v1/notebooks',\n"
            "                                 body={'data': {'type': 'notebooks'}})"
        )
        assert await execute_code(code, gw) == {"data": {"id": 7}}
        await gw.close()

    @pytest.mark.anyio
    async def test_api_error_propagates(self):
        gw = _gateway(lambda req: httpx.Response(404, text="not found"))
        code = "async def run():\n    return await datadog.request('GET', '/api/v1/monitor/1')"
        with pytest.raises(DatadogAPIError, match="404"):
            await execute_code(code, gw)
        await gw.close()

    @pytest.mark.anyio
    async def test_syntax_error(self):
        gw = _gateway(lambda req: httpx.Response(200, json={}))
        with pytest.raises(SnippetSyntaxError):
            await execute_code("async def run(:", gw)


# ── gateway isolation ────────────────────────────────────────────────────


class TestGatewayIsolation:
    """Snippets can call ``datadog.request`` and reach nothing behind it."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "expr",
        [
            "datadog._ensure_client()",
            "datadog._client",
            "datadog._api_key",
            "datadog._gateway",
            "datadog.request.__self__",
            "datadog.request.__func__.__globals__",
            "'{0._gateway}'.format(datadog)",
            "'{x}'.format_map({'x': datadog})",
        ],
    )
    async def test_private_attributes_rejected(self, expr):
        calls = []
        gw = _gateway(lambda req: calls.append(req) or httpx.Response(200, json={}))
        code = f"async def run():\n    return {expr}"
        with pytest.raises(SnippetSyntaxError, match="not allowed"):
            await execute_code(code, gw)
        assert calls == []

    @pytest.mark.anyio
    async def test_raw_client_unreachable(self):
        calls = []
        gw = _gateway(lambda req: calls.append(req) or httpx.Response(200, json={}))
        code = (
            "async def run():\n"
            "    c = datadog._ensure_client()\n"
            "    return await c.delete('/api/v1/monitor/1')"
        )
        with pytest.raises(SnippetSyntaxError):
            await execute_code(code, gw)
        assert calls == []

    @pytest.mark.anyio
    async def test_getattr_refuses_private_names(self):
        gw = _gateway(lambda req: httpx.Response(200, json={}))
        code = "async def run():\n    return getattr(datadog, '_' + 'gateway')"
        with pytest.raises(SnippetRuntimeError, match="not allowed"):
            await execute_code(code, gw)

    @pytest.mark.anyio
    async def test_hasattr_hides_private_names(self):
        gw = _gateway(lambda req: httpx.Response(200, json={}))
        code = (
            "async def run():\n"
            "    return [hasattr(datadog, n) for n in ('_gateway', '_api_key', '_client', 'request')]"
        )
        assert await execute_code(code, gw) == [False, False, False, True]

    @pytest.mark.anyio
    async def test_repr_has_no_credentials(self):
        gw = _gateway(lambda req: httpx.Response(200, json={}))
        result = await execute_code("async def run():\n    return repr(datadog)", gw)
        assert "test-api-key" not in result
        assert "test-app-key" not in result

    @pytest.mark.anyio
    async def test_frame_walk_rejected(self):
        code = (
            "def gen():\n"
            "    yield 1\n"
            "async def run():\n"
            "    return gen().gi_frame.f_back"
        )
        with pytest.raises(SnippetSyntaxError, match="gi_frame"):
            await execute_search(code, SPEC)

    @pytest.mark.anyio
    async def test_module_internals_hidden(self):
        code = "import re\n\nasync def run():\n    return re.enum"
        with pytest.raises(SnippetRuntimeError):
            await execute_search(code, SPEC)

    @pytest.mark.anyio
    async def test_submodule_import_refused(self):
        with pytest.raises(SnippetRuntimeError):
            await execute_search("from collections import abc\ndef run():\n    return 1", SPEC)

    @pytest.mark.anyio
    async def test_public_module_members_available(self):
        code = (
            "from collections import Counter\n"
            "from datetime import timedelta\n"
            "import re\n\n"
            "def run():\n"
            "    c = Counter(re.findall(r'v[12]', ' '.join(spec['paths'])))\n"
            "    return c['v1'], timedelta(seconds=60).total_seconds()"
        )
        assert await execute_search(code, SPEC) == (1, 60.0)
