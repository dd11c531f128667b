"""Positional index over raw TOML manifest text.

The index never rebuilds a document. It records where every key, value,
array element, table header and comment sits in the original text so that
edits can later be expressed as (offset range -> replacement) pairs against
that same text. Values themselves are read with ``tomllib``; the lexer here
only has to be precise about boundaries, and it assumes the text has already
been accepted by ``tomllib``.
"""

from __future__ import annotations

import re
import tomllib
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Literal

from manifest.errors import SpanIndexError
from manifest.models import SourceSpan, TextEdit

KeyPath = tuple[str, ...]
ValueKind = Literal["scalar", "string", "array", "table"]

_BARE_KEY_RE = re.compile(r"[A-Za-z0-9_-]+")
_SCALAR_STOP = frozenset(",]}#\r\n")
_BLANK = " \t"


@dataclass(eq=False)
class ValueNode:
    """A value's extent, with children for arrays and inline tables."""

    kind: ValueKind
    start: int
    end: int
    items: list[ValueNode] = field(default_factory=list)
    entries: list[KeyEntry] = field(default_factory=list)


@dataclass(eq=False)
class KeyEntry:
    """A ``key = value`` pair located by its absolute key path."""

    path: KeyPath
    start: int
    value: ValueNode
    parent: ValueNode | None = None

    @property
    def end(self) -> int:
        return self.value.end

    @property
    def inline(self) -> bool:
        return self.parent is not None


@dataclass(frozen=True)
class TableHeader:
    path: KeyPath
    start: int
    end: int
    array: bool = False


@dataclass(frozen=True)
class Comment:
    start: int
    end: int
    line: int
    text: str


class SpanIndex:
    """Key paths, headers and comments of one manifest, by character offset."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.entries: dict[KeyPath, KeyEntry] = {}
        self.headers: dict[KeyPath, TableHeader] = {}
        self.comments: dict[int, Comment] = {}
        self._line_starts = [0]
        self._line_starts.extend(
            offset + 1 for offset, char in enumerate(text) if char == "\n"
        )

    @classmethod
    def build(cls, text: str) -> SpanIndex:
        index = cls(text)
        _Lexer(index).run()
        return index

    def line_of(self, offset: int) -> int:
        """Return the 1-based line number containing ``offset``."""
        return bisect_right(self._line_starts, offset)

    def line_start(self, offset: int) -> int:
        return self._line_starts[self.line_of(offset) - 1]

    def line_end(self, offset: int) -> int:
        """Return the offset of the newline ending the line, or ``len(text)``."""
        newline = self.text.find("\n", offset)
        return len(self.text) if newline == -1 else newline

    def line_text(self, line: int) -> str:
        start = self._line_starts[line - 1]
        return self.text[start : self.line_end(start)].rstrip("\r")

    def span(self, start: int, end: int) -> SourceSpan:
        end_line = self.line_of(end - 1) if end > start else self.line_of(start)
        return SourceSpan(
            start=start, end=end, line=self.line_of(start), end_line=end_line
        )

    def edit(self, start: int, end: int, replacement: str) -> TextEdit:
        return TextEdit(
            span=self.span(start, end),
            replacement=replacement,
            original=self.text[start:end],
        )

    def entries_under(self, prefix: KeyPath) -> list[KeyEntry]:
        size = len(prefix)
        return [
            entry for path, entry in self.entries.items() if path[:size] == prefix
        ]

    def comment_after(self, offset: int) -> Comment | None:
        """Return the comment trailing the line that contains ``offset``."""
        comment = self.comments.get(self.line_of(offset))
        if comment is None or comment.start < offset:
            return None
        return comment

    def string_value(self, node: ValueNode) -> str | None:
        if node.kind != "string":
            return None
        return _decode_string(self.text[node.start : node.end])


def _decode_string(raw: str) -> str:
    value = tomllib.loads(f"v = {raw}")["v"]
    return str(value)


class _Lexer:
    def __init__(self, index: SpanIndex) -> None:
        self.index = index
        self.text = index.text
        self.pos = 0
        self._array_tables: dict[KeyPath, int] = {}

    def run(self) -> None:
        table: KeyPath = ()
        text = self.text
        while self.pos < len(text):
            self._skip_blank()
            if self.pos >= len(text):
                break
            char = text[self.pos]
            if char in "\r\n":
                self.pos += 1
                continue
            if char == "#":
                self._comment()
                continue
            if char == "[":
                table = self._header()
            else:
                self._key_value(table, None)
            self._skip_blank()
            if self.pos < len(text) and text[self.pos] == "#":
                self._comment()

    def _fail(self, message: str) -> SpanIndexError:
        return SpanIndexError(
            f"{message} (line {self.index.line_of(self.pos)})", offset=self.pos
        )

    def _skip_blank(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _BLANK:
            self.pos += 1

    def _skip_space(self) -> None:
        """Skip whitespace, newlines and comments inside arrays and tables."""
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char in " \t\r\n":
                self.pos += 1
            elif char == "#":
                self._comment()
            else:
                return

    def _comment(self) -> None:
        start = self.pos
        end = self.index.line_end(start)
        self.index.comments[self.index.line_of(start)] = Comment(
            start=start,
            end=end,
            line=self.index.line_of(start),
            text=self.text[start:end].rstrip("\r"),
        )
        self.pos = end

    def _header(self) -> KeyPath:
        start = self.pos
        array = self.text.startswith("[[", self.pos)
        self.pos += 2 if array else 1
        keys = tuple(self._key())
        self._skip_blank()
        closing = "]]" if array else "]"
        if not self.text.startswith(closing, self.pos):
            raise self._fail("unterminated table header")
        self.pos += len(closing)
        path = keys
        if array:
            count = self._array_tables.get(keys, 0)
            self._array_tables[keys] = count + 1
            path = (*keys, f"[{count}]")
        self.index.headers[path] = TableHeader(
            path=path, start=start, end=self.pos, array=array
        )
        return path

    def _key(self) -> list[str]:
        keys: list[str] = []
        while True:
            self._skip_blank()
            keys.append(self._simple_key())
            self._skip_blank()
            if self.pos < len(self.text) and self.text[self.pos] == ".":
                self.pos += 1
                continue
            return keys

    def _simple_key(self) -> str:
        char = self.text[self.pos] if self.pos < len(self.text) else ""
        if char == '"':
            start = self.pos
            self.pos = self._basic_string_end(start)
            return _decode_string(self.text[start : self.pos])
        if char == "'":
            end = self.text.find("'", self.pos + 1)
            if end == -1:
                raise self._fail("unterminated literal key")
            key = self.text[self.pos + 1 : end]
            self.pos = end + 1
            return key
        match = _BARE_KEY_RE.match(self.text, self.pos)
        if match is None:
            raise self._fail("expected a key")
        self.pos = match.end()
        return match.group(0)

    def _key_value(self, table: KeyPath, parent: ValueNode | None) -> KeyEntry:
        start = self.pos
        path = (*table, *self._key())
        self._skip_blank()
        if self.pos >= len(self.text) or self.text[self.pos] != "=":
            raise self._fail("expected '=' after key")
        self.pos += 1
        self._skip_blank()
        value = self._value(path)
        entry = KeyEntry(path=path, start=start, value=value, parent=parent)
        self.index.entries[path] = entry
        if parent is not None:
            parent.entries.append(entry)
        return entry

    def _value(self, path: KeyPath) -> ValueNode:
        text = self.text
        start = self.pos
        if text.startswith('"""', start):
            self.pos = self._multiline_end(start, '"""', escapes=True)
            return ValueNode("string", start, self.pos)
        if text.startswith("'''", start):
            self.pos = self._multiline_end(start, "'''", escapes=False)
            return ValueNode("string", start, self.pos)
        char = text[start] if start < len(text) else ""
        if char == '"':
            self.pos = self._basic_string_end(start)
            return ValueNode("string", start, self.pos)
        if char == "'":
            end = text.find("'", start + 1)
            if end == -1:
                raise self._fail("unterminated literal string")
            self.pos = end + 1
            return ValueNode("string", start, self.pos)
        if char == "[":
            return self._array(path)
        if char == "{":
            return self._inline_table(path)
        return self._scalar()

    def _basic_string_end(self, start: int) -> int:
        text = self.text
        pos = start + 1
        while pos < len(text):
            char = text[pos]
            if char == "\\":
                pos += 2
                continue
            if char == '"':
                return pos + 1
            if char == "\n":
                break
            pos += 1
        self.pos = start
        raise self._fail("unterminated string")

    def _multiline_end(self, start: int, delimiter: str, *, escapes: bool) -> int:
        text = self.text
        pos = start + 3
        while pos < len(text):
            if escapes and text[pos] == "\\":
                pos += 2
                continue
            if text.startswith(delimiter, pos):
                end = pos + 3
                # Up to two quote characters may precede the closing delimiter.
                while end < len(text) and text[end] == delimiter[0] and end - pos < 5:
                    end += 1
                return end
            pos += 1
        self.pos = start
        raise self._fail("unterminated multi-line string")

    def _array(self, path: KeyPath) -> ValueNode:
        node = ValueNode("array", self.pos, self.pos)
        self.pos += 1
        while True:
            self._skip_space()
            if self.pos >= len(self.text):
                raise self._fail("unterminated array")
            if self.text[self.pos] == "]":
                self.pos += 1
                break
            node.items.append(self._value(path))
            self._skip_space()
            if self.pos < len(self.text) and self.text[self.pos] == ",":
                self.pos += 1
        node.end = self.pos
        return node

    def _inline_table(self, path: KeyPath) -> ValueNode:
        node = ValueNode("table", self.pos, self.pos)
        self.pos += 1
        while True:
            self._skip_space()
            if self.pos >= len(self.text):
                raise self._fail("unterminated inline table")
            if self.text[self.pos] == "}":
                self.pos += 1
                break
            self._key_value(path, node)
            self._skip_space()
            if self.pos < len(self.text) and self.text[self.pos] == ",":
                self.pos += 1
        node.end = self.pos
        return node

    def _scalar(self) -> ValueNode:
        text = self.text
        start = self.pos
        pos = start
        while pos < len(text) and text[pos] not in _SCALAR_STOP:
            pos += 1
        end = pos
        while end > start and text[end - 1] in _BLANK:
            end -= 1
        if end == start:
            raise self._fail("expected a value")
        self.pos = end
        return ValueNode("scalar", start, end)


__all__ = [
    "Comment",
    "KeyEntry",
    "KeyPath",
    "SpanIndex",
    "TableHeader",
    "ValueNode",
]
