"""Tests for the HTTP test runner."""

import json

import httpx
import pytest
from conftest import json_handler, make_case

from spectra.fixtures import FixtureResolver
from spectra.http_runner import FALLBACK_ASSERTION, HTTPTestRunner
from spectra.models import FileUpload
from spectra.validators import (
    NO_SCHEMA_INFO,
    RESPONSE_TIME_ASSERTION,
    SCHEMA_ASSERTION,
    STATUS_CODE_ASSERTION,
)


@pytest.mark.asyncio
async def test_happy_path_without_schema(make_runner):
    runner = make_runner(json_handler({"ok": True}))

    result = await runner.execute(make_case())

    assert result.success is True
    assert result.error is None
    assert result.status == 200
    assert result.response.body == {"ok": True}
    assert [a.name for a in result.assertions] == [
        STATUS_CODE_ASSERTION,
        SCHEMA_ASSERTION,
        RESPONSE_TIME_ASSERTION,
    ]
    assert result.assertions[1].info == NO_SCHEMA_INFO


@pytest.mark.asyncio
async def test_status_mismatch_fails(make_runner):
    runner = make_runner(json_handler({"error": "nope"}, status=404))

    result = await runner.execute(make_case())

    assert result.success is False
    assert result.assertions[0].error == "Expected status code 200, got 404"


@pytest.mark.asyncio
async def test_schema_checked_against_body(make_runner):
    schema = {"type": "object", "required": ["id"]}
    runner = make_runner(json_handler({"name": "x"}))

    result = await runner.execute(make_case(schema=schema))

    assert result.success is False
    schema_assertion = result.assertions[1]
    assert schema_assertion.name == SCHEMA_ASSERTION
    assert "'id' is a required property" in schema_assertion.error


@pytest.mark.asyncio
async def test_schema_with_empty_body_is_informational(make_runner):
    runner = make_runner(lambda request: httpx.Response(204))

    result = await runner.execute(make_case(status=204, schema={"type": "object"}))

    assert result.success is True
    assert result.response.body is None
    assert "empty response body" in result.assertions[1].info


@pytest.mark.asyncio
async def test_text_body_kept_as_text(make_runner):
    runner = make_runner(lambda request: httpx.Response(200, text="plain hello"))

    result = await runner.execute(make_case())

    assert result.response.body == "plain hello"


@pytest.mark.asyncio
async def test_get_payload_goes_to_query(make_runner):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json=[])

    runner = make_runner(handler)
    await runner.execute(make_case(endpoint="/users/{id}", request={"id": 5, "page": 2, "filter": {"a": 1}}))

    assert seen["path"] == "/users/5"
    assert seen["params"] == {"page": "2", "filter": '{"a": 1}'}


@pytest.mark.asyncio
async def test_post_payload_goes_to_json_body(make_runner):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["method"] = request.method
        return httpx.Response(201, json={"id": 1})

    runner = make_runner(handler)
    result = await runner.execute(make_case(method="POST", status=201, request={"name": "Ada"}))

    assert result.success is True
    assert seen == {"body": {"name": "Ada"}, "method": "POST"}


@pytest.mark.asyncio
async def test_fallback_is_reported_first_and_on_result(make_runner):
    runner = make_runner(json_handler({"id": 2}))

    result = await runner.execute(make_case(endpoint="/users/{id}"))

    assert result.success is True
    assert result.fixture_fallbacks == ["id"]
    assert result.assertions[0].name == FALLBACK_ASSERTION
    assert result.assertions[0].success is True
    assert "{id}=2" in result.assertions[0].info


@pytest.mark.asyncio
async def test_unresolved_placeholder_sent_as_is(make_runner):
    seen = {}

    def handler(request):
        seen["raw_path"] = request.url.raw_path
        return httpx.Response(404, json={})

    runner = make_runner(handler, resolver=FixtureResolver(allow_defaults=False))
    result = await runner.execute(make_case(endpoint="/users/{id}"))

    assert result.success is False
    assert result.fixture_fallbacks == []
    assert b"/users/" in seen["raw_path"]


@pytest.mark.asyncio
async def test_transport_error_is_captured(make_runner):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    runner = make_runner(handler)
    result = await runner.execute(make_case())

    assert result.success is False
    assert result.error == "connection refused"
    assert result.response is None
    assert result.status is None


@pytest.mark.asyncio
async def test_multipart_upload(make_runner, tmp_path):
    upload = tmp_path / "avatar.png"
    upload.write_bytes(b"PNGDATA")
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, json={"uploaded": True})

    case = make_case(
        endpoint="/users/{id}/avatar",
        method="POST",
        request={"id": 3, "caption": "me", "avatar": "ignored"},
        files=(FileUpload(field_name="avatar", file_path=str(upload), content_type="image/png"),),
    )
    result = await make_runner(handler).execute(case)

    assert result.success is True
    assert seen["content_type"].startswith("multipart/form-data")
    assert b"PNGDATA" in seen["body"]
    assert b'name="caption"' in seen["body"]
    assert b"ignored" not in seen["body"]


@pytest.mark.asyncio
async def test_missing_upload_file_fails_the_case(make_runner, tmp_path):
    missing = tmp_path / "nope.bin"
    case = make_case(
        method="POST",
        files=(FileUpload(field_name="file", file_path=str(missing)),),
    )

    result = await make_runner(json_handler({})).execute(case)

    assert result.success is False
    assert result.error == f"File not found: {missing}"


@pytest.mark.asyncio
async def test_run_all_emits_progress_and_keys_by_id(make_runner):
    events = []
    runner = make_runner(json_handler({}), progress_cb=events.append)

    async with runner:
        results = await runner.run_all([make_case("a"), make_case("b", status=500)])

    assert list(results) == ["a", "b"]
    assert results["a"].success is True
    assert results["b"].success is False
    names = [e["event"] for e in events]
    assert names[0] == "run.started"
    assert names[-1] == "run.completed"
    assert events[-1]["passed"] == 1
    assert events[-1]["failed"] == 1


@pytest.mark.asyncio
async def test_progress_callback_failure_does_not_break_run(make_runner):
    def explode(event):
        raise RuntimeError("ui gone")

    runner = make_runner(json_handler({}), progress_cb=explode)

    results = await runner.run_all([make_case()])

    assert results["t1"].success is True


@pytest.mark.asyncio
async def test_step_log_redacts_credentials(make_runner, tmp_path):
    runner = make_runner(
        json_handler({"token": "secret-token", "name": "x"}),
        headers={"Authorization": "Bearer abc"},
        step_log_dir=str(tmp_path),
    )

    await runner.execute(make_case("case/1"))

    log = json.loads((tmp_path / "case_1.json").read_text())
    assert log["status"] == "PASS"
    assert log["request_headers"]["Authorization"] == "[REDACTED]"
    assert log["response"]["body"]["token"] == "[REDACTED]"
    assert log["response"]["body"]["name"] == "x"


@pytest.mark.asyncio
async def test_default_headers_sent(make_runner):
    seen = {}

    def handler(request):
        seen["x-api-key"] = request.headers.get("x-api-key")
        seen["accept"] = request.headers.get("accept")
        return httpx.Response(200, json={})

    await make_runner(handler, headers={"X-Api-Key": "k"}).execute(make_case())

    assert seen == {"x-api-key": "k", "accept": "application/json"}


def test_from_settings_wires_resolver():
    from spectra.config import Settings

    settings = Settings(base_url="http://x.test/", fixtures={"id": "77"}, allow_default_fixtures=False)
    runner = HTTPTestRunner.from_settings(settings)

    assert runner.base_url == "http://x.test"
    assert runner.resolver.fixtures == {"id": "77"}
    assert runner.resolver.allow_defaults is False
