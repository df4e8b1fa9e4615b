from __future__ import annotations

from typing import Iterable

from popcorn_expander.core.errors import IncludeParseError
from popcorn_expander.core.model import PropertyReference


_DELIMS = "[],"


def parse_includes(text: str | None) -> tuple[PropertyReference, ...]:
    """Parse an include expression into a tree of PropertyReference.

    Format:
      [id,title,author[name,books[title]]]

    The outer brackets are optional. Whitespace around names is ignored.
    An empty expression (or "[]") selects nothing.
    """
    if text is None:
        return ()
    return _Parser(text).parse()


def format_includes(refs: Iterable[PropertyReference]) -> str:
    return "[" + ",".join(str(r) for r in refs) + "]"


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def parse(self) -> tuple[PropertyReference, ...]:
        self._skip_ws()
        if self._at_end():
            return ()

        if self._peek() == "[":
            refs = self._bracketed()
        else:
            refs = self._items(closing=None)

        self._skip_ws()
        if not self._at_end():
            if self._peek() == "]":
                raise self._error("E_INCLUDE_UNBALANCED", "unmatched ']'")
            raise self._error("E_INCLUDE_UNEXPECTED", f"unexpected {self._peek()!r}")
        return refs

    def _bracketed(self) -> tuple[PropertyReference, ...]:
        # Caller guarantees the current character is '['.
        self.pos += 1
        self._skip_ws()
        if self._peek() == "]":
            self.pos += 1
            return ()
        refs = self._items(closing="]")
        if self._at_end():
            raise self._error("E_INCLUDE_UNBALANCED", "missing ']'")
        self.pos += 1
        return refs

    def _items(self, closing: str | None) -> tuple[PropertyReference, ...]:
        refs: list[PropertyReference] = [self._item()]
        while True:
            self._skip_ws()
            if self._at_end():
                break
            ch = self._peek()
            if ch == ",":
                self.pos += 1
                refs.append(self._item())
                continue
            if closing is not None and ch == closing:
                break
            if ch == "]":
                raise self._error("E_INCLUDE_UNBALANCED", "unmatched ']'")
            raise self._error("E_INCLUDE_UNEXPECTED", f"unexpected {ch!r}")
        return tuple(refs)

    def _item(self) -> PropertyReference:
        self._skip_ws()
        start = self.pos
        while not self._at_end():
            ch = self._peek()
            if ch in _DELIMS or ch.isspace():
                break
            self.pos += 1
        name = self.text[start : self.pos]
        if not name:
            raise self._error("E_INCLUDE_EMPTY_NAME", "expected a property name")

        self._skip_ws()
        if not self._at_end() and self._peek() == "[":
            return PropertyReference(name=name, children=self._bracketed())
        return PropertyReference(name=name)

    def _peek(self) -> str:
        return self.text[self.pos]

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _skip_ws(self) -> None:
        while not self._at_end() and self._peek().isspace():
            self.pos += 1

    def _error(self, code: str, message: str) -> IncludeParseError:
        return IncludeParseError(code=code, message=message, path=f"offset {self.pos}")
