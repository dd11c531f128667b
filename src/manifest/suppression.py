"""In-manifest suppression markers.

A declaration is exempted from a lint by a TOML comment such as::

    # ab-lint: allow(unused-dependency)
    openssl-sys = "0.9"

or on the declaration's own lines::

    log = { workspace = true }  # ab-lint: allow(unused-dependency, redundant-feature)

``allow(all)`` exempts every lint kind. The marker applies when it sits on
any line the declaration spans, or in the block of comment-only lines directly
above the declaration's first line.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from manifest.models import SourceSpan
    from manifest.spans import SpanIndex

MARKER_PREFIX = "ab-lint"
_MARKER_RE = re.compile(r"ab-lint\s*:\s*allow\s*\(([^)]*)\)")


def parse_marker(comment: str) -> frozenset[str]:
    """Return the lint kinds a comment allows (empty when it has no marker).

    Examples:
        >>> sorted(parse_marker("# ab-lint: allow(unused-dependency)"))
        ['unused-dependency']
        >>> sorted(parse_marker("# ab-lint: allow( all , redundant-feature )"))
        ['all', 'redundant-feature']
        >>> parse_marker("# just a comment")
        frozenset()
    """
    kinds: set[str] = set()
    for match in _MARKER_RE.finditer(comment):
        kinds.update(
            part.strip().lower() for part in match.group(1).split(",") if part.strip()
        )
    return frozenset(kinds)


def has_marker(comment: str) -> bool:
    return _MARKER_RE.search(comment) is not None


def suppressions_for(index: SpanIndex, span: SourceSpan) -> frozenset[str]:
    """Collect marker kinds applying to the declaration covering ``span``."""
    kinds: set[str] = set()
    for line in range(span.line, span.end_line + 1):
        comment = index.comments.get(line)
        if comment is not None:
            kinds |= parse_marker(comment.text)

    line = span.line - 1
    while line >= 1 and index.line_text(line).lstrip().startswith("#"):
        comment = index.comments.get(line)
        if comment is not None:
            kinds |= parse_marker(comment.text)
        line -= 1
    return frozenset(kinds)


__all__ = ["MARKER_PREFIX", "has_marker", "parse_marker", "suppressions_for"]
