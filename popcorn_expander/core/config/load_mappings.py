from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import yaml

from popcorn_expander.core.errors import MappingLoadError


TOP_LEVEL_KEYS: tuple[str, ...] = ("mappings", "collections")

# suffix -> (parser, parse error code)
_PARSERS: dict[str, tuple[Callable[[str], Any], str]] = {
    ".yaml": (yaml.safe_load, "E_YAML_PARSE"),
    ".yml": (yaml.safe_load, "E_YAML_PARSE"),
    ".json": (json.loads, "E_JSON_PARSE"),
}


def load_mapping_file(path: str) -> dict[str, Any]:
    """Read a mapping config and return its sections.

    Returns {"mappings": ..., "collections": ..., "__file__": path}. Sections the
    file omits are None. Unknown top-level keys are rejected here; entry shapes
    and import references are left to validate_mapping_config.
    """

    p = Path(path)
    if not p.is_file():
        raise MappingLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))

    parser = _PARSERS.get(p.suffix.lower())
    if parser is None:
        raise MappingLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"supported formats are {', '.join(sorted(_PARSERS))}",
            file=str(p),
        )
    parse, error_code = parser

    try:
        document = parse(p.read_text(encoding="utf-8"))
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise MappingLoadError(code=error_code, message=str(e), file=str(p)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise MappingLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    return _sections(document, str(p))


def _sections(document: Any, file: str) -> dict[str, Any]:
    # An empty file is an empty config.
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise MappingLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=file,
        )

    unknown = sorted((k for k in document if k not in TOP_LEVEL_KEYS), key=str)
    if unknown:
        raise MappingLoadError(
            code="E_UNKNOWN_TOP_LEVEL_KEY",
            message=(
                f"unknown keys: {', '.join(map(str, unknown))} "
                f"(expected: {', '.join(TOP_LEVEL_KEYS)})"
            ),
            file=file,
        )

    out: dict[str, Any] = {key: document.get(key) for key in TOP_LEVEL_KEYS}
    out["__file__"] = file
    return out
