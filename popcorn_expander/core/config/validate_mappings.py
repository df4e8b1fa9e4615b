from __future__ import annotations

import importlib
from typing import Any, Iterable, Optional, cast

from popcorn_expander.core.errors import (
    ExpanderError,
    MappingValidationError,
)
from popcorn_expander.core.model import MappingDefinition, PropertyMapping
from popcorn_expander.core.registry.mapping_registry import MappingRegistry


ALLOWED_PROPERTY_KEYS: set[str] = {"name", "output_name", "translator", "always_expand"}


def resolve_import(ref: str, *, path: Optional[str] = None, file: Optional[str] = None) -> Any:
    """Resolve "package.module:Attr" (Attr may be dotted) to the object it names."""
    if not isinstance(ref, str) or ":" not in ref:
        raise MappingValidationError(
            code="E_INVALID_TYPE",
            message=f"import reference must look like 'module:attr', got {ref!r}",
            file=file,
            path=path,
        )
    module_name, _, attr_path = ref.partition(":")
    try:
        obj: Any = importlib.import_module(module_name.strip())
    except ImportError as e:
        raise MappingValidationError(
            code="E_IMPORT", message=f"cannot import {module_name}: {e}", file=file, path=path
        ) from e
    for attr in attr_path.strip().split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise MappingValidationError(
                code="E_IMPORT",
                message=f"{module_name} has no attribute {attr_path}",
                file=file,
                path=path,
            ) from e
    return obj


def validate_mapping_config(
    config: dict[str, Any],
) -> tuple[Optional[MappingRegistry], list[MappingValidationError]]:
    """Validate a loaded mapping config and build a registry from it.

    Returns (registry, errors). Registry is None when errors exist; otherwise it
    is populated but not yet frozen, so callers may still register more types.
    """

    file = cast(Optional[str], config.get("__file__"))
    errors: list[MappingValidationError] = []
    definitions: list[tuple[str, MappingDefinition]] = []
    seen_types: dict[type, str] = {}

    mappings = config.get("mappings")
    if mappings is None:
        mappings = []
    if not isinstance(mappings, list):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message="mappings must be an array",
                file=file,
                path="mappings",
            )
        )
        mappings = []

    for i, raw in enumerate(mappings):
        entry_path = f"mappings[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                MappingValidationError(
                    code="E_INVALID_TYPE",
                    message="mapping must be an object",
                    file=file,
                    path=entry_path,
                )
            )
            continue

        source_type = _resolve_class(raw.get("type"), f"{entry_path}.type", file, errors)
        if source_type is None:
            continue

        if source_type in seen_types:
            errors.append(
                MappingValidationError(
                    code="E_DUPLICATE_MAPPING",
                    message=f"type already mapped at {seen_types[source_type]}",
                    file=file,
                    path=f"{entry_path}.type",
                )
            )
            continue
        seen_types[source_type] = entry_path

        props = raw.get("properties")
        if not isinstance(props, list) or not props:
            errors.append(
                MappingValidationError(
                    code="E_REQUIRED_FIELD",
                    message="properties is required and must be a non-empty array",
                    file=file,
                    path=f"{entry_path}.properties",
                )
            )
            continue

        parsed: list[PropertyMapping] = []
        ok = True
        for j, raw_prop in enumerate(props):
            prop = _parse_property(raw_prop, f"{entry_path}.properties[{j}]", file, errors)
            if prop is None:
                ok = False
            else:
                parsed.append(prop)
        if not ok:
            continue

        try:
            definition = MappingDefinition(source_type=source_type, properties=tuple(parsed))
        except ExpanderError as e:
            errors.append(
                MappingValidationError(
                    code=e.code,
                    message=e.message,
                    file=file,
                    path=f"{entry_path}.{e.path}" if e.path else entry_path,
                )
            )
            continue
        definitions.append((entry_path, definition))

    collections = config.get("collections")
    if collections is None:
        collections = []
    if not isinstance(collections, list):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message="collections must be an array",
                file=file,
                path="collections",
            )
        )
        collections = []

    registry = MappingRegistry()
    for _, definition in definitions:
        registry.register(definition.source_type, definition)

    for i, raw in enumerate(collections):
        entry_path = f"collections[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                MappingValidationError(
                    code="E_INVALID_TYPE",
                    message="collection must be an object",
                    file=file,
                    path=entry_path,
                )
            )
            continue

        collection_type = _resolve_class(raw.get("type"), f"{entry_path}.type", file, errors)
        element_type = _resolve_class(raw.get("element"), f"{entry_path}.element", file, errors)
        if collection_type is None or element_type is None:
            continue

        if not registry.is_directly_mapped(element_type):
            errors.append(
                MappingValidationError(
                    code="E_UNKNOWN_ELEMENT_TYPE",
                    message=f"element type {element_type.__qualname__} has no mapping",
                    file=file,
                    path=f"{entry_path}.element",
                )
            )
            continue

        try:
            registry.register_collection(collection_type, element_type)
        except ExpanderError as e:
            errors.append(
                MappingValidationError(code=e.code, message=e.message, file=file, path=entry_path)
            )

    if errors:
        return None, _sorted(errors)
    return registry, []


def summarize_registry(registry: MappingRegistry) -> str:
    mapped = registry.mapped_types()
    bindings = registry.collection_bindings()
    return (
        f"OK: {len(mapped)} mappings, {len(bindings)} collections\nTypes: "
        + ", ".join(sorted(t.__qualname__ for t in mapped))
    )


def _resolve_class(
    ref: Any, path: str, file: Optional[str], errors: list[MappingValidationError]
) -> Optional[type]:
    if not isinstance(ref, str) or not ref.strip():
        errors.append(
            MappingValidationError(
                code="E_REQUIRED_FIELD",
                message="a 'module:ClassName' reference is required",
                file=file,
                path=path,
            )
        )
        return None
    try:
        obj = resolve_import(ref, path=path, file=file)
    except MappingValidationError as e:
        errors.append(e)
        return None
    if not isinstance(obj, type):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message=f"{ref} is not a class",
                file=file,
                path=path,
            )
        )
        return None
    return obj


def _parse_property(
    raw: Any, path: str, file: Optional[str], errors: list[MappingValidationError]
) -> Optional[PropertyMapping]:
    if isinstance(raw, str):
        if not raw.strip():
            errors.append(
                MappingValidationError(
                    code="E_REQUIRED_FIELD",
                    message="property name must be a non-empty string",
                    file=file,
                    path=path,
                )
            )
            return None
        return PropertyMapping(name=raw.strip())

    if not isinstance(raw, dict):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message="property must be a name or an object",
                file=file,
                path=path,
            )
        )
        return None

    unknown = sorted((k for k in raw if k not in ALLOWED_PROPERTY_KEYS), key=str)
    if unknown:
        errors.append(
            MappingValidationError(
                code="E_UNKNOWN_KEY",
                message=f"unknown property keys: {', '.join(map(str, unknown))}",
                file=file,
                path=path,
            )
        )
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append(
            MappingValidationError(
                code="E_REQUIRED_FIELD",
                message="name is required and must be a non-empty string",
                file=file,
                path=f"{path}.name",
            )
        )
        return None

    output_name = raw.get("output_name")
    if output_name is not None and (not isinstance(output_name, str) or not output_name.strip()):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message="output_name must be a non-empty string",
                file=file,
                path=f"{path}.output_name",
            )
        )
        return None

    always_expand = raw.get("always_expand", False)
    if not isinstance(always_expand, bool):
        errors.append(
            MappingValidationError(
                code="E_INVALID_TYPE",
                message="always_expand must be a boolean",
                file=file,
                path=f"{path}.always_expand",
            )
        )
        return None

    translator = None
    translator_ref = raw.get("translator")
    if translator_ref is not None:
        try:
            translator = resolve_import(translator_ref, path=f"{path}.translator", file=file)
        except MappingValidationError as e:
            errors.append(e)
            return None
        if not callable(translator):
            errors.append(
                MappingValidationError(
                    code="E_NOT_CALLABLE",
                    message=f"translator {translator_ref} is not callable",
                    file=file,
                    path=f"{path}.translator",
                )
            )
            return None

    return PropertyMapping(
        name=name.strip(),
        output_name=output_name.strip() if output_name else None,
        translator=translator,
        always_expand=always_expand,
    )


def _sorted(errors: Iterable[MappingValidationError]) -> list[MappingValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
