from __future__ import annotations

import collections.abc
import typing
from typing import Any, Optional

from loguru import logger

from popcorn_expander.core.errors import (
    AmbiguousCollectionError,
    DuplicateMappingError,
    MappingDefinitionError,
    RegistryFrozenError,
    type_name,
)
from popcorn_expander.core.model import Classification, MappingDefinition


# Generic origins accepted as single-element collection contracts, e.g. list[Book].
SINGLE_ELEMENT_ORIGINS: tuple[Any, ...] = (
    list,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.Collection,
    collections.abc.Iterable,
)


class MappingRegistry:
    """Source type -> MappingDefinition, plus explicit collection bindings.

    Populate during startup, then freeze. The first classification query freezes
    implicitly; after that the registry is read-only and safe to share between threads.
    """

    def __init__(self) -> None:
        self._definitions: dict[type, MappingDefinition] = {}
        self._collections: dict[type, type] = {}
        self._classifications: dict[Any, Classification] = {}
        self._frozen = False

    # Registration phase

    def register(
        self, source_type: type, definition: MappingDefinition, *, replace: bool = False
    ) -> None:
        self._check_writable(source_type)
        if definition.source_type is not source_type:
            raise MappingDefinitionError(
                code="E_TYPE_MISMATCH",
                message=f"definition is for {type_name(definition.source_type)}",
                type_name=type_name(source_type),
            )
        if source_type in self._definitions and not replace:
            raise DuplicateMappingError(
                code="E_DUPLICATE_MAPPING",
                message="type already has a mapping (pass replace=True to overwrite)",
                type_name=type_name(source_type),
            )
        self._definitions[source_type] = definition
        logger.debug(
            f"Registered mapping for {type_name(source_type)}: {definition.property_names()}"
        )

    def register_collection(
        self, collection_type: type, element_type: type, *, replace: bool = False
    ) -> None:
        """Declare that instances of collection_type iterate elements of element_type."""
        self._check_writable(collection_type)
        if not isinstance(collection_type, type) or not issubclass(
            collection_type, collections.abc.Iterable
        ):
            raise MappingDefinitionError(
                code="E_NOT_ITERABLE",
                message="collection types must be iterable classes",
                type_name=type_name(collection_type),
            )
        bound = self._collections.get(collection_type)
        if bound is not None and bound is not element_type and not replace:
            raise AmbiguousCollectionError(
                code="E_AMBIGUOUS_COLLECTION",
                message=(
                    f"already bound to {type_name(bound)}, "
                    f"cannot also bind to {type_name(element_type)}"
                ),
                type_name=type_name(collection_type),
            )
        self._collections[collection_type] = element_type
        logger.debug(
            f"Registered collection {type_name(collection_type)} of {type_name(element_type)}"
        )

    def freeze(self) -> None:
        if self._frozen:
            return
        self._frozen = True
        for tp in list(self._definitions) + list(self._collections):
            self.classify_type(tp)
        logger.debug(
            f"Mapping registry frozen: {len(self._definitions)} mappings, "
            f"{len(self._collections)} collections"
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self, tp: object) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                code="E_REGISTRY_FROZEN",
                message="mappings cannot be registered after the registry is in use",
                type_name=type_name(tp),
            )

    # Queries

    def mapped_types(self) -> list[type]:
        return list(self._definitions)

    def collection_bindings(self) -> dict[type, type]:
        return dict(self._collections)

    def definition_for(self, tp: Any) -> Optional[MappingDefinition]:
        """Definition for tp, falling back to the nearest registered base class."""
        if not isinstance(tp, type) or typing.get_origin(tp) is not None:
            return None
        found = self._definitions.get(tp)
        if found is not None:
            return found
        for base in tp.__mro__[1:]:
            found = self._definitions.get(base)
            if found is not None:
                return found
        return None

    def is_directly_mapped(self, tp: Any) -> bool:
        return self.definition_for(tp) is not None

    def element_type_of(self, tp: Any) -> Optional[type]:
        """Element type of the first collection contract tp satisfies, if any.

        Explicit bindings win over generic aliases; among bindings the nearest
        class in the MRO wins.
        """
        origin = typing.get_origin(tp)
        if origin is None:
            if not isinstance(tp, type):
                return None
            for klass in tp.__mro__:
                bound = self._collections.get(klass)
                if bound is not None:
                    return bound
            return None

        args = typing.get_args(tp)
        if origin in SINGLE_ELEMENT_ORIGINS and len(args) == 1:
            return args[0] if isinstance(args[0], type) else None
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return args[0] if isinstance(args[0], type) else None
        return None

    def is_mapped_collection(self, tp: Any) -> bool:
        element = self.element_type_of(tp)
        return element is not None and self.is_directly_mapped(element)

    def classify_type(self, tp: Any) -> Classification:
        self.freeze()
        try:
            cached = self._classifications.get(tp)
        except TypeError:
            # Unhashable alias arguments; classify without caching.
            return self._classify_uncached(tp)
        if cached is not None:
            return cached
        result = self._classify_uncached(tp)
        self._classifications[tp] = result
        return result

    def _classify_uncached(self, tp: Any) -> Classification:
        # Direct before collection.
        if self.is_directly_mapped(tp):
            return Classification.DIRECT
        if self.is_mapped_collection(tp):
            return Classification.COLLECTION
        return Classification.UNSUPPORTED

    def classify(self, source: Any) -> Classification:
        """Classify a runtime value.

        Runtime sequences and sets carry no element type, so they count as a mapped
        collection when every element is directly mapped (an empty one does too).
        Strings, bytes and mappings never do.
        """
        result = self.classify_type(type(source))
        if result is not Classification.UNSUPPORTED:
            return result
        if _is_plain_collection(source) and all(
            self.is_directly_mapped(type(item)) for item in source
        ):
            return Classification.COLLECTION
        return Classification.UNSUPPORTED

    def will_expand(self, source: Any) -> bool:
        return self.classify(source) is not Classification.UNSUPPORTED

    def will_expand_type(self, tp: Any) -> bool:
        return self.classify_type(tp) is not Classification.UNSUPPORTED


def _is_plain_collection(source: Any) -> bool:
    if isinstance(source, (str, bytes, bytearray, collections.abc.Mapping)):
        return False
    return isinstance(source, (collections.abc.Sequence, collections.abc.Set))
