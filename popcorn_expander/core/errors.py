from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExpanderError(Exception):
    """Base error envelope. Carries a stable code so callers can branch without parsing text."""

    code: str
    message: str
    type_name: Optional[str] = None
    path: Optional[str] = None
    file: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.type_name:
            parts.append(self.type_name)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<expander>"
        return f"{loc}: {self.code}: {self.message}"


class UnsupportedTypeError(ExpanderError):
    pass


class AmbiguousCollectionError(ExpanderError):
    pass


class DuplicateMappingError(ExpanderError):
    pass


class RegistryFrozenError(ExpanderError):
    pass


class MappingDefinitionError(ExpanderError):
    pass


class PropertyAccessError(ExpanderError):
    pass


class ExpansionError(ExpanderError):
    pass


class IncludeParseError(ExpanderError):
    pass


class MappingLoadError(ExpanderError):
    pass


class MappingValidationError(ExpanderError):
    pass


def type_name(tp: object) -> str:
    """Qualified, human readable name for a type or generic alias."""
    if isinstance(tp, type):
        if tp.__module__ == "builtins":
            return tp.__qualname__
        return f"{tp.__module__}.{tp.__qualname__}"
    return repr(tp)
