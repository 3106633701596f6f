from __future__ import annotations

import pytest

from krakatau_service.engine.errors import EngineBusy, EngineTrap, ModuleNotFound, ResponseDecodeError

from .conftest import class_upload

# POST /decompile against a mock bridge: payload extraction, validation,
# option parsing and error translation. The engine itself is covered by the
# bridge tests.


@pytest.mark.asyncio
async def test_multipart_decompile(aclient, mock_bridge, class_bytes):
    resp = await aclient.post("/decompile", files=class_upload(class_bytes))

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "text/plain; charset=utf-8"
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.text == ".class public Hello\n"
    assert mock_bridge.calls == [
        {
            "op": "decompile",
            "file_path": "Hello.class",
            "content": class_bytes,
            "roundtrip": False,
            "no_short_code_attr": False,
        }
    ]


@pytest.mark.asyncio
async def test_raw_body_decompile_uses_filename_param(aclient, mock_bridge, class_bytes):
    resp = await aclient.post(
        "/decompile",
        content=class_bytes,
        params={"filename": "com/example/Widget.class"},
        headers={"content-type": "application/octet-stream"},
    )

    assert resp.status_code == 200
    assert mock_bridge.calls[0]["file_path"] == "com/example/Widget.class"
    assert mock_bridge.calls[0]["content"] == class_bytes


@pytest.mark.asyncio
async def test_raw_body_default_filename(aclient, mock_bridge, class_bytes):
    resp = await aclient.post("/decompile", content=class_bytes)
    assert resp.status_code == 200
    assert mock_bridge.calls[0]["file_path"] == "Unknown.class"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, roundtrip, no_short",
    [
        ({"roundtrip": "true"}, True, False),
        ({"roundtrip": "1"}, False, False),
        ({"roundtrip": "TRUE"}, False, False),
        ({"no_shortcodeattr": "true"}, False, True),
        ({"no_short_code_attr": "true"}, False, True),
        ({"noShortCodeAttr": "true"}, False, True),
        ({"roundtrip": "true", "no_shortcodeattr": "true"}, True, True),
        ({}, False, False),
    ],
)
async def test_option_flags(aclient, mock_bridge, class_bytes, query, roundtrip, no_short):
    resp = await aclient.post("/decompile", files=class_upload(class_bytes), params=query)

    assert resp.status_code == 200
    call = mock_bridge.calls[0]
    assert call["roundtrip"] is roundtrip
    assert call["no_short_code_attr"] is no_short


@pytest.mark.asyncio
async def test_empty_body_is_rejected(aclient, mock_bridge):
    resp = await aclient.post("/decompile", content=b"")

    assert resp.status_code == 400
    assert resp.json()["error"] == "No class file data provided"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [b"\xca\xfe\xba", b"PK\x03\x04rest", b"\xbe\xba\xfe\xca\x00\x00"])
async def test_bad_magic_never_reaches_engine(aclient, mock_bridge, payload):
    resp = await aclient.post("/decompile", content=payload)

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid class file format"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
async def test_multipart_needs_class_extension(aclient, mock_bridge, class_bytes):
    resp = await aclient.post("/decompile", files=class_upload(class_bytes, filename="Hello.bin"))

    assert resp.status_code == 400
    assert resp.json()["error"] == "Decompilation endpoint expects .class files"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
async def test_multipart_without_file_field(aclient, mock_bridge):
    resp = await aclient.post("/decompile", data={"other": "value"}, files={"upload": ("a.class", b"x")})

    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        EngineTrap("decompile_json", "unreachable executed"),
        ResponseDecodeError("response is not valid JSON"),
        ModuleNotFound("krak2.wasm"),
        EngineBusy(1.0),
    ],
)
async def test_engine_errors_become_500(aclient, mock_bridge, class_bytes, error):
    mock_bridge.decompile_result = error

    resp = await aclient.post("/decompile", files=class_upload(class_bytes))

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert body["message"] == f"Decompilation failed: {error.message}"
    assert body["request_id"] == resp.headers["x-request-id"]


@pytest.mark.asyncio
async def test_service_survives_engine_failure(aclient, mock_bridge, class_bytes):
    mock_bridge.decompile_result = EngineTrap("decompile_json", "boom")
    first = await aclient.post("/decompile", files=class_upload(class_bytes))

    mock_bridge.decompile_result = "ok\n"
    second = await aclient.post("/decompile", files=class_upload(class_bytes))

    assert first.status_code == 500
    assert second.status_code == 200
    assert second.text == "ok\n"


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [{"allow_raw_body": False}])
async def test_raw_body_can_be_disabled(aclient, mock_bridge, class_bytes, config_overrides):
    resp = await aclient.post("/decompile", content=class_bytes)

    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"
    assert mock_bridge.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [{"max_upload_bytes": 64}])
async def test_upload_cap(aclient, mock_bridge, class_bytes, config_overrides):
    big = b"\xca\xfe\xba\xbe" + b"\x00" * 200

    raw = await aclient.post("/decompile", content=big)
    multipart = await aclient.post("/decompile", files=class_upload(big))

    assert raw.status_code == 413
    assert multipart.status_code == 413
    assert mock_bridge.calls == []
