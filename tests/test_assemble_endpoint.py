from __future__ import annotations

import pytest

from krakatau_service.engine.codec import OperationResponse
from krakatau_service.engine.errors import EngineInvocationFailed, EngineReportedFailure, MissingExport

from .conftest import source_upload

SOURCE = ".version 52 0\n.class public Hello\n.super java/lang/Object\n.end class\n"


@pytest.mark.asyncio
async def test_assemble_returns_engine_json(aclient, mock_bridge):
    resp = await aclient.post("/assemble", files=source_upload(SOURCE))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.json() == mock_bridge.assemble_result
    assert mock_bridge.calls == [{"op": "assemble", "file_path": "Hello.j", "source_code": SOURCE}]


@pytest.mark.asyncio
async def test_wrong_extension(aclient, mock_bridge):
    resp = await aclient.post("/assemble", files=source_upload(SOURCE, filename="Hello.java"))

    assert resp.status_code == 400
    assert resp.json()["error"] == "Assembly endpoint expects .j files"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
async def test_raw_body_is_not_accepted(aclient, mock_bridge):
    resp = await aclient.post("/assemble", content=SOURCE.encode())

    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
async def test_non_utf8_source(aclient, mock_bridge):
    resp = await aclient.post("/assemble", files={"file": ("Hello.j", b"\xff\xfe\x00bad", "text/plain")})

    assert resp.status_code == 400
    assert mock_bridge.calls == []


@pytest.mark.asyncio
async def test_engine_rejection_is_a_200(aclient, mock_bridge):
    body = {"success": False, "file_path": "Hello.j", "error": "Hello.j:2: expected directive"}
    mock_bridge.assemble_result = EngineReportedFailure(
        body["error"], response=OperationResponse(success=False, error=body["error"], file_path="Hello.j", payload=body)
    )

    resp = await aclient.post("/assemble", files=source_upload("garbage"))

    assert resp.status_code == 200
    assert resp.json() == body


@pytest.mark.asyncio
async def test_engine_rejection_without_payload(aclient, mock_bridge):
    mock_bridge.assemble_result = EngineReportedFailure("Unknown assemble error")

    resp = await aclient.post("/assemble", files=source_upload("garbage", filename="Broken.j"))

    assert resp.status_code == 200
    assert resp.json() == {"success": False, "file_path": "Broken.j", "error": "Unknown assemble error"}


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [EngineInvocationFailed("assemble_json", -1), MissingExport("assemble_json")])
async def test_transport_failures_are_500(aclient, mock_bridge, error):
    mock_bridge.assemble_result = error

    resp = await aclient.post("/assemble", files=source_upload(SOURCE))

    assert resp.status_code == 500
    assert resp.json()["message"] == f"Assembly failed: {error.message}"
