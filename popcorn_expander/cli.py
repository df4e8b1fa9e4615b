from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from loguru import logger

from popcorn_expander.core.config.load_mappings import load_mapping_file
from popcorn_expander.core.config.validate_mappings import (
    resolve_import,
    summarize_registry,
    validate_mapping_config,
)
from popcorn_expander.core.errors import (
    ExpanderError,
    IncludeParseError,
    MappingLoadError,
    MappingValidationError,
)
from popcorn_expander.core.expand.expander import Expander
from popcorn_expander.core.includes.parse_includes import format_includes, parse_includes
from popcorn_expander.core.model import PropertyReference
from popcorn_expander.core.registry.mapping_registry import MappingRegistry

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
) -> None:
    """Popcorn expander CLI."""
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("popcorn_expander")


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a mapping config (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a mapping config file and resolve every type and translator it names."""
    if format not in ("text", "json"):
        _print_errors([_unknown_format("E_VALIDATE_UNKNOWN_FORMAT", format)])
        raise typer.Exit(code=2)

    def _emit_json(
        ok: bool, *, exit_code: int, errors: list[ExpanderError], summary: dict | None
    ) -> None:
        payload = {
            "tool": "popcorn",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        config = load_mapping_file(path)
    except MappingLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)

    registry, errors = validate_mapping_config(config)
    if errors or registry is None:
        if format == "json":
            _emit_json(False, exit_code=2, errors=list(errors), summary=None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_registry(registry))
        return

    summary = {
        "mapping_count": len(registry.mapped_types()),
        "collection_count": len(registry.collection_bindings()),
        "types": sorted(t.__qualname__ for t in registry.mapped_types()),
    }
    _emit_json(True, exit_code=0, errors=[], summary=summary)


@app.command("mappings")
def mappings(
    path: str = typer.Argument(..., help="Path to a mapping config (.yaml/.yml/.json)"),
) -> None:
    """List mapped types, their exposed properties and collection bindings."""
    registry = _load_registry(path)

    typer.echo("Mappings:")
    for tp in sorted(registry.mapped_types(), key=lambda t: t.__qualname__):
        definition = registry.definition_for(tp)
        assert definition is not None
        names: list[str] = []
        for prop in definition.properties:
            label = prop.name
            if prop.output_name:
                label += f" as {prop.output_name}"
            if prop.always_expand:
                label += " (always)"
            if prop.translator is not None:
                label += " (translated)"
            names.append(label)
        typer.echo(f"- {tp.__qualname__}: {', '.join(names)}")

    bindings = registry.collection_bindings()
    if bindings:
        typer.echo("Collections:")
        for coll, elem in sorted(bindings.items(), key=lambda kv: kv[0].__qualname__):
            typer.echo(f"- {coll.__qualname__} of {elem.__qualname__}")


@app.command("includes")
def includes(
    expression: str = typer.Argument(..., help="Include expression, e.g. [id,author[name]]"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Parse an include expression and print the resulting property tree."""
    if format not in ("text", "json"):
        _print_errors([_unknown_format("E_INCLUDES_UNKNOWN_FORMAT", format)])
        raise typer.Exit(code=2)

    try:
        refs = parse_includes(expression)
    except IncludeParseError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    if format == "json":
        typer.echo(json.dumps([_ref_to_dict(r) for r in refs], indent=2))
        return

    typer.echo(format_includes(refs))
    for line in _tree_lines(refs, depth=0):
        typer.echo(line)


@app.command("expand")
def expand(
    mappings_path: str = typer.Option(
        ...,
        "--mappings",
        envvar="POPCORN_MAPPINGS",
        help="Path to a mapping config (.yaml/.yml/.json)",
    ),
    source: str = typer.Option(
        ...,
        "--source",
        help="module:attr naming the source object, or a zero-argument callable returning it",
    ),
    include: str = typer.Option("", "--include", help="Include expression, e.g. [id,books[title]]"),
    context_items: list[str] = typer.Option(
        [], "--context", help="Context entry as key=value (repeatable)"
    ),
    format: str = typer.Option("json", "--format", help="Output format: json|yaml"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the result to this path"),
) -> None:
    """Expand a source object through the mappings and print the projection."""
    if format not in ("json", "yaml"):
        _print_errors([_unknown_format("E_EXPAND_UNKNOWN_FORMAT", format)])
        raise typer.Exit(code=2)

    registry = _load_registry(mappings_path)

    try:
        refs = parse_includes(include)
        context = _parse_context(context_items)
        target = resolve_import(source, path="source")
    except ExpanderError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    if callable(target) and not isinstance(target, type):
        target = target()

    try:
        result = Expander(registry).expand(target, context, refs)
    except ExpanderError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    # Round-trip through JSON so values without a native encoding render as strings.
    plain = json.loads(json.dumps(result, default=str))
    if format == "json":
        text = json.dumps(plain, indent=2)
    else:
        text = yaml.safe_dump(plain, sort_keys=False, allow_unicode=True)

    if out is None:
        typer.echo(text)
        return

    p = Path(out)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")
    typer.echo(f"OK: wrote expansion to {out}")


def _load_registry(path: str) -> MappingRegistry:
    try:
        config = load_mapping_file(path)
    except MappingLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    registry, errors = validate_mapping_config(config)
    if errors or registry is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return registry


def _parse_context(items: list[str]) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for i, item in enumerate(items):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise MappingValidationError(
                code="E_INVALID_CONTEXT",
                message=f"context entries must look like key=value, got {item!r}",
                path=f"context[{i}]",
            )
        context[key.strip()] = value
    return context


def _unknown_format(code: str, format: str) -> MappingValidationError:
    return MappingValidationError(
        code=code,
        message=f"unknown format: {format}",
        path="format",
    )


def _to_item(e: ExpanderError) -> dict:
    source = "load" if isinstance(e, MappingLoadError) else "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _ref_to_dict(ref: PropertyReference) -> dict[str, Any]:
    return {"name": ref.name, "children": [_ref_to_dict(c) for c in ref.children]}


def _tree_lines(refs: tuple[PropertyReference, ...], depth: int) -> list[str]:
    lines: list[str] = []
    for ref in refs:
        lines.append("  " * depth + f"- {ref.name}")
        lines.extend(_tree_lines(ref.children, depth + 1))
    return lines


def _print_errors(errors: list[ExpanderError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="popcorn")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
