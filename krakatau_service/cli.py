"""
Command-line front-end for the Krakatau engine.

Commands:
  - run       : decompile one class file and print the assembler text
  - assemble  : assemble a ``.j`` file and write the resulting class files
  - inspect   : load the engine module and report its exports

Every command prints ``Error: ...`` on stderr and exits with status 1 on
failure.

Usage:
  krakatau run Hello.class [--roundtrip] [--no-short-code-attr] [--wasm krak2.wasm]
  krakatau assemble Hello.j [--out build/] [--json]
  krakatau inspect [--wasm krak2.wasm]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError

from .config import load_config
from .engine.bridge import CONTRACT_EXPORTS, OPTIONAL_EXPORTS, EngineBridge, get_engine_bridge
from .engine.errors import EngineError, EngineReportedFailure
from .logging import get_logger, setup_logging
from .models.engine import AssembleResult

app = typer.Typer(add_completion=False, help="Krakatau decompiler / assembler (WebAssembly engine)")
log = get_logger(__name__)

WASM_OPTION_HELP = "Engine module (default: WASM_PATH or krak2.wasm)"


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _bridge(wasm: Optional[Path]) -> EngineBridge:
    cfg = load_config()
    if wasm is None:
        return get_engine_bridge(cfg.wasm_path, lock_timeout=cfg.engine_lock_timeout)
    return EngineBridge(wasm, lock_timeout=cfg.engine_lock_timeout)


def _read_input(path: Path, kind: str) -> bytes:
    if not path.is_file():
        _fail(f"{kind} '{path}' not found")
    return path.read_bytes()


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="LOG_LEVEL", help="Log level for diagnostics on stderr"),
):
    """
    Drive the Krakatau engine locally, without the HTTP server.
    """
    setup_logging(level=log_level, log_format="console")


@app.command("run")
def run(
    class_file: Optional[Path] = typer.Argument(None, help="Path of the .class file to decompile"),
    roundtrip: bool = typer.Option(False, "--roundtrip", help="Emit output that reassembles to identical bytes"),
    no_short_code_attr: bool = typer.Option(False, "--no-short-code-attr", help="Disable the short Code attribute form"),
    wasm: Optional[Path] = typer.Option(None, "--wasm", help=WASM_OPTION_HELP),
):
    """
    Decompile CLASS_FILE and print the assembler text to stdout.
    """
    if class_file is None:
        typer.echo("Usage: krakatau run <classfile>", err=True)
        raise typer.Exit(code=1)
    data = _read_input(class_file, "Class file")
    bridge = _bridge(wasm)
    try:
        output = bridge.decompile(
            class_file.name,
            data,
            roundtrip=roundtrip,
            no_short_code_attr=no_short_code_attr,
        )
    except EngineError as e:
        _fail(e.message)
    typer.echo(output)


@app.command("assemble")
def assemble(
    source_file: Path = typer.Argument(..., help="Path of the .j file to assemble"),
    out: Path = typer.Option(Path("."), "--out", "-o", help="Directory for the generated class files"),
    as_json: bool = typer.Option(False, "--json", help="Print the engine result as JSON instead of writing files"),
    wasm: Optional[Path] = typer.Option(None, "--wasm", help=WASM_OPTION_HELP),
):
    """
    Assemble SOURCE_FILE; class files are written below --out by class name.
    """
    raw = _read_input(source_file, "Source file")
    try:
        source = raw.decode("utf-8")
    except UnicodeDecodeError:
        _fail(f"Source file '{source_file}' is not UTF-8 text")

    bridge = _bridge(wasm)
    try:
        data = bridge.assemble(source_file.name, source)
    except EngineReportedFailure as e:
        if as_json and e.response is not None:
            typer.echo(json.dumps(e.response.to_dict(), indent=2))
        _fail(e.message)
    except EngineError as e:
        _fail(e.message)

    if as_json:
        typer.echo(json.dumps(data, indent=2))
        return

    try:
        result = AssembleResult.from_engine(data)
    except ValidationError as e:
        _fail(f"Unexpected assemble result: {e.errors()[0]['msg']}")

    out.mkdir(parents=True, exist_ok=True)
    for class_file in result.class_files:
        try:
            target = out.joinpath(*class_file.relative_path().parts)
        except ValueError as e:
            _fail(str(e))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(class_file.content())
        typer.echo(str(target))
    log.info("assembled", source=str(source_file), classes=len(result.class_files))


@app.command("inspect")
def inspect(
    wasm: Optional[Path] = typer.Option(None, "--wasm", help=WASM_OPTION_HELP),
):
    """
    Load the engine module and report its memory size and contract exports.
    """
    bridge = _bridge(wasm)
    try:
        bridge.load()
    except EngineError as e:
        _fail(e.message)

    info = bridge.describe()
    handle = bridge.handle
    typer.echo(f"module:  {info['module_path']}")
    typer.echo(f"memory:  {info['memory_bytes']} bytes")
    for name in CONTRACT_EXPORTS:
        present = handle is not None and handle.has_export(name)
        suffix = " (optional)" if name in OPTIONAL_EXPORTS else ""
        typer.echo(f"  {'ok ' if present else '-- '} {name}{suffix}")


def _entry():
    # Allow: python -m krakatau_service.cli
    app()


if __name__ == "__main__":
    _entry()
