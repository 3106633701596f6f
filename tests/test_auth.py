from __future__ import annotations

import base64

import pytest

from krakatau_service.security.auth import RequireCredentials, parse_basic_auth

from .conftest import class_upload


def _basic(user: str, password: str) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


BASIC = {"auth_user": "admin", "auth_password": "s3cret"}
TOKEN = {"auth_token_header": "X-Api-Token", "auth_token_value": "tok-123"}


def test_parse_basic_auth():
    assert parse_basic_auth(_basic("a", "b:c")["Authorization"]) == ("a", "b:c")
    assert parse_basic_auth("Bearer abc") is None
    assert parse_basic_auth("Basic !!!") is None
    assert parse_basic_auth(None) is None


def test_incomplete_pair_disables_check():
    dep = RequireCredentials(username="admin", password=None, token_header="X-Api-Token", token_value=None)
    assert not dep.basic_enabled
    assert not dep.token_enabled
    assert dep.check({})


@pytest.mark.asyncio
async def test_open_when_unconfigured(aclient, class_bytes):
    resp = await aclient.post("/decompile", files=class_upload(class_bytes))
    assert resp.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [BASIC])
async def test_basic_auth_required(aclient, mock_bridge, class_bytes, config_overrides):
    missing = await aclient.post("/decompile", files=class_upload(class_bytes))
    wrong = await aclient.post("/decompile", files=class_upload(class_bytes), headers=_basic("admin", "nope"))
    ok = await aclient.post("/decompile", files=class_upload(class_bytes), headers=_basic("admin", "s3cret"))

    for resp in (missing, wrong):
        assert resp.status_code == 401
        assert resp.json()["error"] == "Authentication required"
        assert resp.headers["www-authenticate"] == 'Basic realm="Krakatau Server"'
    assert ok.status_code == 200
    assert len(mock_bridge.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [TOKEN])
async def test_token_header_auth(aclient, class_bytes, config_overrides):
    missing = await aclient.post("/assemble", files={"file": ("a.j", b"x")})
    wrong = await aclient.post("/assemble", files={"file": ("a.j", b"x")}, headers={"X-Api-Token": "tok-124"})
    ok = await aclient.post("/assemble", files={"file": ("a.j", b"x")}, headers={"x-api-token": "tok-123"})

    assert missing.status_code == 401
    assert "www-authenticate" not in missing.headers
    assert wrong.status_code == 401
    assert ok.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [{**BASIC, **TOKEN}])
async def test_both_checks_must_pass(aclient, class_bytes, config_overrides):
    only_basic = await aclient.post("/decompile", files=class_upload(class_bytes), headers=_basic("admin", "s3cret"))
    both = await aclient.post(
        "/decompile",
        files=class_upload(class_bytes),
        headers={**_basic("admin", "s3cret"), "X-Api-Token": "tok-123"},
    )

    assert only_basic.status_code == 401
    assert both.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [BASIC])
async def test_auth_runs_before_validation(aclient, mock_bridge, config_overrides):
    # an invalid payload still gets 401, not 400
    resp = await aclient.post("/decompile", content=b"not a class file")
    assert resp.status_code == 401
    assert mock_bridge.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("config_overrides", [BASIC])
async def test_health_routes_are_public(aclient, config_overrides):
    resp = await aclient.get("/healthz")
    assert resp.status_code == 200
