"""
HTTP Backend Tests
==================
Uses httpx.MockTransport so no server is needed.
"""
import asyncio
import json

import httpx
import pytest

from changeflow.backend.contract import BackendError
from changeflow.backend.http_client import HttpBackend
from changeflow.models.action import Action


def _backend(handler):
    backend = HttpBackend("http://backend.test")
    backend._http = httpx.AsyncClient(
        base_url="http://backend.test", transport=httpx.MockTransport(handler)
    )
    return backend


def test_commands_post_json_to_named_route():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "tx_id": "t1", "applied": True})

    async def run_test():
        backend = _backend(handler)
        result = await backend.apply_actions_tx(
            "/proj",
            [Action(kind="CREATE_FILE", path="a.md", content="a")],
            auto_check=True,
            user_confirmed=True,
        )
        await backend.close()
        return result

    result = asyncio.run(run_test())
    assert result.tx_id == "t1"
    assert seen["path"] == "/commands/apply_actions_tx"
    assert seen["body"]["user_confirmed"] is True
    assert seen["body"]["actions"][0]["kind"] == "CREATE_FILE"


def test_analyze_fans_out_progress_lines():
    def handler(request):
        return httpx.Response(200, json={
            "path": "/proj",
            "narrative": "fine",
            "progress": ["Scanning", "Done"],
        })

    lines = []

    async def run_test():
        backend = _backend(handler)
        backend.subscribe_progress(lines.append)
        return await backend.analyze_project("/proj")

    report = asyncio.run(run_test())
    assert report.narrative == "fine"
    assert lines == ["Scanning", "Done"]


def test_http_error_becomes_backend_error():
    def handler(request):
        return httpx.Response(500, json={"detail": "boom"})

    async def run_test():
        backend = _backend(handler)
        with pytest.raises(BackendError, match="HTTP 500"):
            await backend.verify_project("/proj")

    asyncio.run(run_test())


def test_transport_error_becomes_backend_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def run_test():
        backend = _backend(handler)
        with pytest.raises(BackendError):
            await backend.undo_last()

    asyncio.run(run_test())


def test_import_settings_sends_json_and_mode():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"projects_imported": 2})

    async def run_test():
        backend = _backend(handler)
        return await backend.import_settings('{"version": "2.4.4"}', mode="replace")

    result = asyncio.run(run_test())
    assert result.projects_imported == 2
    assert seen == {"json": '{"version": "2.4.4"}', "mode": "replace"}


def test_undo_last_tx_returns_bool():
    def handler(request):
        return httpx.Response(200, json=False)

    async def run_test():
        return await _backend(handler).undo_last_tx("/proj")

    assert asyncio.run(run_test()) is False


def test_export_settings_serializes_object_body_as_json():
    bundle = {"version": "2.4.4", "projects": [], "sessions": []}

    def handler(request):
        return httpx.Response(200, json=bundle)

    async def run_test():
        return await _backend(handler).export_settings()

    exported = asyncio.run(run_test())
    assert json.loads(exported) == bundle


def test_export_settings_passes_text_body_through():
    def handler(request):
        return httpx.Response(200, json='{"version": "2.4.4"}')

    async def run_test():
        return await _backend(handler).export_settings()

    assert asyncio.run(run_test()) == '{"version": "2.4.4"}'


def test_close_releases_client():
    def handler(request):
        return httpx.Response(200, json=[])

    async def run_test():
        backend = _backend(handler)
        client = backend._http
        await backend.close()
        return backend, client

    backend, client = asyncio.run(run_test())
    assert client.is_closed
    assert backend._http is None
