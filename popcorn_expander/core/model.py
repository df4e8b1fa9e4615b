from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from popcorn_expander.core.errors import MappingDefinitionError, type_name


Context = dict[str, Any]
Translator = Callable[[Any, Context], Any]


class Classification(str, Enum):
    DIRECT = "direct"
    COLLECTION = "collection"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class PropertyReference:
    """One requested include path: a property name plus the includes to apply below it."""

    name: str
    children: tuple["PropertyReference", ...] = ()

    def __str__(self) -> str:
        if not self.children:
            return self.name
        return self.name + "[" + ",".join(str(c) for c in self.children) + "]"


def find_reference(
    includes: Iterable[PropertyReference], name: str
) -> Optional[PropertyReference]:
    for ref in includes:
        if ref.name == name:
            return ref
    return None


@dataclass(frozen=True)
class PropertyMapping:
    name: str
    output_name: Optional[str] = None
    translator: Optional[Translator] = None
    always_expand: bool = False

    @property
    def key(self) -> str:
        return self.output_name or self.name


@dataclass(frozen=True)
class MappingDefinition:
    """Exposed properties of one source type, in output order."""

    source_type: type
    properties: tuple[PropertyMapping, ...]

    def __post_init__(self) -> None:
        where = type_name(self.source_type)
        names: set[str] = set()
        keys: set[str] = set()
        for i, prop in enumerate(self.properties):
            if not isinstance(prop.name, str) or not prop.name.strip():
                raise MappingDefinitionError(
                    code="E_INVALID_PROPERTY",
                    message="property names must be non-empty strings",
                    type_name=where,
                    path=f"properties[{i}]",
                )
            if prop.name in names:
                raise MappingDefinitionError(
                    code="E_DUPLICATE_PROPERTY",
                    message=f"duplicate property: {prop.name}",
                    type_name=where,
                    path=f"properties[{i}]",
                )
            if prop.key in keys:
                raise MappingDefinitionError(
                    code="E_DUPLICATE_PROPERTY",
                    message=f"duplicate output name: {prop.key}",
                    type_name=where,
                    path=f"properties[{i}]",
                )
            names.add(prop.name)
            keys.add(prop.key)

    @classmethod
    def build(
        cls,
        source_type: type,
        *names: str,
        always_expand: Sequence[str] = (),
        translators: Mapping[str, Translator] | None = None,
        output_names: Mapping[str, str] | None = None,
    ) -> "MappingDefinition":
        """Code-first shorthand: ``MappingDefinition.build(User, "id", "name", always_expand=["id"])``.

        Translated properties not listed in ``names`` are appended after them.
        """
        if isinstance(always_expand, str):
            always_expand = (always_expand,)
        translators = dict(translators or {})
        output_names = dict(output_names or {})
        ordered = list(names) + [n for n in translators if n not in names]

        unknown = sorted(set(always_expand) - set(ordered))
        if unknown:
            raise MappingDefinitionError(
                code="E_INVALID_PROPERTY",
                message=f"always_expand names unknown properties: {', '.join(unknown)}",
                type_name=type_name(source_type),
                path="always_expand",
            )

        props = tuple(
            PropertyMapping(
                name=n,
                output_name=output_names.get(n),
                translator=translators.get(n),
                always_expand=n in always_expand,
            )
            for n in ordered
        )
        return cls(source_type=source_type, properties=props)

    def property_names(self) -> list[str]:
        return [p.name for p in self.properties]
