from __future__ import annotations

import threading

import pytest

from krakatau_service.engine.bridge import CONTRACT_EXPORTS, EngineBridge, load_engine
from krakatau_service.engine.errors import (
    EngineLoadError,
    InstantiationFailed,
    MissingExport,
    ModuleNotFound,
    NoMemoryExport,
)


def test_load_resolves_contract(wasm_path):
    handle = load_engine(wasm_path)

    assert handle.memory_size() == 4 * 65536
    for name in CONTRACT_EXPORTS:
        assert handle.has_export(name)


def test_missing_module_file(tmp_path):
    with pytest.raises(ModuleNotFound) as ei:
        load_engine(tmp_path / "krak2.wasm")
    assert "WASM file not found" in ei.value.message


def test_directory_is_not_a_module(tmp_path):
    with pytest.raises(ModuleNotFound):
        load_engine(tmp_path)


def test_garbage_bytes_fail_instantiation(tmp_path):
    path = tmp_path / "krak2.wasm"
    path.write_bytes(b"\x00asm-not-really")
    with pytest.raises(InstantiationFailed):
        load_engine(path)


def test_module_without_memory_export(make_engine):
    with pytest.raises(NoMemoryExport):
        load_engine(make_engine(with_memory=False))


@pytest.mark.parametrize(
    "name",
    ["allocate_input_buffer", "decompile_json", "get_response_length", "get_response_ptr", "free_response"],
)
def test_missing_required_export(make_engine, name):
    with pytest.raises(MissingExport) as ei:
        load_engine(make_engine(omit=[name]))
    assert ei.value.name == name
    assert name in ei.value.message


def test_first_missing_export_is_reported(make_engine):
    with pytest.raises(MissingExport) as ei:
        load_engine(make_engine(omit=["free_response", "get_response_ptr"]))
    assert ei.value.name == "get_response_ptr"


def test_assemble_export_is_optional(make_engine):
    handle = load_engine(make_engine(with_assemble=False))
    assert not handle.has_export("assemble_json")
    assert handle.has_export("decompile_json")


def test_abort_import_is_satisfied(make_engine):
    handle = load_engine(make_engine(abort=True))
    assert handle.has_export("decompile_json")


def test_load_errors_share_a_base_class(tmp_path):
    with pytest.raises(EngineLoadError):
        EngineBridge(tmp_path / "nope.wasm").load()


def test_bridge_loads_once(bridge):
    first = bridge.load()
    assert bridge.loaded
    assert bridge.load() is first


def test_concurrent_first_load_instantiates_once(bridge, monkeypatch):
    import krakatau_service.engine.bridge as bridge_mod

    real_load = bridge_mod.load_engine
    calls = []
    gate = threading.Event()

    def counting_load(path):
        calls.append(path)
        gate.wait(0.2)
        return real_load(path)

    monkeypatch.setattr(bridge_mod, "load_engine", counting_load)

    handles = []
    threads = [threading.Thread(target=lambda: handles.append(bridge.load())) for _ in range(8)]
    for t in threads:
        t.start()
    gate.set()
    for t in threads:
        t.join(5)

    assert len(calls) == 1
    assert len(handles) == 8
    assert all(h is handles[0] for h in handles)


def test_lazy_bridge_is_not_loaded_until_used(wasm_path):
    bridge = EngineBridge(wasm_path)
    assert not bridge.loaded
    info = bridge.describe()
    assert info["loaded"] is False
    assert "exports" not in info


def test_process_bridge_is_shared(wasm_path, monkeypatch):
    from krakatau_service.engine import bridge as bridge_mod

    monkeypatch.setattr(bridge_mod, "_singleton", None)
    first = bridge_mod.get_engine_bridge(wasm_path)
    second = bridge_mod.get_engine_bridge("/elsewhere/krak2.wasm")

    assert first is second
    assert not first.loaded
