from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Union

from loguru import logger

from popcorn_expander.core.errors import (
    ExpansionError,
    PropertyAccessError,
    UnsupportedTypeError,
    type_name,
)
from popcorn_expander.core.includes.parse_includes import format_includes, parse_includes
from popcorn_expander.core.model import (
    Classification,
    Context,
    MappingDefinition,
    PropertyReference,
    find_reference,
)
from popcorn_expander.core.registry.mapping_registry import MappingRegistry


Includes = Union[str, Sequence[PropertyReference], None]


class Expander:
    """Projects registered objects (or collections of them) into plain dicts.

    A property appears in the output when it is marked always_expand or named in
    the include list. Values that are themselves mapped are expanded recursively
    using the nested includes of the matching PropertyReference.
    """

    def __init__(self, registry: MappingRegistry) -> None:
        self.registry = registry

    def will_expand(self, source: Any) -> bool:
        return self.registry.will_expand(source)

    def will_expand_type(self, source_type: Any) -> bool:
        return self.registry.will_expand_type(source_type)

    def expand(
        self,
        source: Any,
        context: Optional[Context] = None,
        includes: Includes = None,
    ) -> Any:
        """Entry point. Returns a dict for a mapped object, a list for a mapped collection."""
        if source is None:
            raise ExpansionError(code="E_NULL_SOURCE", message="cannot expand None")

        if context is None:
            context = {}

        if includes is None:
            refs: tuple[PropertyReference, ...] = ()
        elif isinstance(includes, str):
            refs = parse_includes(includes)
        else:
            refs = tuple(includes)

        logger.opt(lazy=True).debug(
            "Expanding {} with includes {}",
            lambda: type_name(type(source)),
            lambda: format_includes(refs),
        )
        return self._expand(source, context, refs, path="")

    def _expand(
        self, source: Any, context: Context, includes: Sequence[PropertyReference], path: str
    ) -> Any:
        kind = self.registry.classify(source)
        if kind is Classification.DIRECT:
            return self.expand_direct_object(source, context, includes, path=path)
        if kind is Classification.COLLECTION:
            return self.expand_collection(source, context, includes, path=path)
        raise UnsupportedTypeError(
            code="E_UNSUPPORTED_TYPE",
            message="type has no mapping and is not a collection of a mapped type",
            type_name=type_name(type(source)),
            path=path or None,
        )

    def expand_direct_object(
        self,
        source: Any,
        context: Context,
        includes: Sequence[PropertyReference],
        *,
        path: str = "",
    ) -> dict[str, Any]:
        definition = self._definition(source, path)
        out: dict[str, Any] = {}
        for prop in definition.properties:
            ref = find_reference(includes, prop.name)
            if ref is None and not prop.always_expand:
                continue

            prop_path = f"{path}.{prop.name}" if path else prop.name
            if prop.translator is not None:
                value = prop.translator(source, context)
            else:
                value = _read_attribute(source, prop.name, prop_path)

            if value is not None and self.registry.will_expand(value):
                nested = ref.children if ref is not None else ()
                value = self._expand(value, context, nested, path=prop_path)

            out[prop.key] = value
        return out

    def expand_collection(
        self,
        source: Iterable[Any],
        context: Context,
        includes: Sequence[PropertyReference],
        *,
        path: str = "",
    ) -> list[dict[str, Any]]:
        # Same includes for every element: selection is per type, not per element.
        return [
            self.expand_direct_object(item, context, includes, path=f"{path}[{i}]")
            for i, item in enumerate(source)
        ]

    def _definition(self, source: Any, path: str) -> MappingDefinition:
        definition = self.registry.definition_for(type(source))
        if definition is None:
            raise UnsupportedTypeError(
                code="E_UNSUPPORTED_TYPE",
                message="type has no mapping",
                type_name=type_name(type(source)),
                path=path or None,
            )
        return definition


def _read_attribute(source: Any, name: str, path: str) -> Any:
    try:
        return getattr(source, name)
    except AttributeError as e:
        raise PropertyAccessError(
            code="E_PROPERTY_NOT_FOUND",
            message=f"{type_name(type(source))} has no attribute {name!r}",
            type_name=type_name(type(source)),
            path=path,
        ) from e
