"""Minimal, formatting-preserving text edits over a manifest's span index.

Every function here returns a single ``TextEdit`` whose span covers only the
characters that change, or ``None`` when no safe edit exists. Nothing is
re-serialized: the replacement is a slice of the original text with the
removed ranges cut out, plus any suppression marker moved to a kept line.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from manifest.suppression import has_marker

if TYPE_CHECKING:
    from collections.abc import Collection

    from manifest.models import TextEdit
    from manifest.spans import Comment, KeyEntry, SpanIndex, ValueNode

Range = tuple[int, int]


def _skip_blanks(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _separator_end(text: str, pos: int) -> int:
    """Return the offset just past an optional ``,`` (and blanks) at ``pos``."""
    pos = _skip_blanks(text, pos)
    if pos < len(text) and text[pos] == ",":
        pos = _skip_blanks(text, pos + 1)
    return pos


def _line_range(index: SpanIndex, start: int, end: int) -> Range:
    """Range covering whole lines from ``start`` through ``end``, newline included."""
    text = index.text
    line_start = index.line_start(start)
    line_end = index.line_end(end)
    if line_end < len(text):
        return line_start, line_end + 1
    if line_start > 0:
        # Last line without a trailing newline: drop the preceding one instead.
        return line_start - 1, line_end
    return line_start, line_end


def _contains_comment(index: SpanIndex, start: int, end: int) -> bool:
    return any(start <= comment.start < end for comment in index.comments.values())


def _cut(index: SpanIndex, ranges: list[Range], insert: str = "") -> TextEdit:
    """Build one edit removing every range, merging overlaps and neighbours.

    ``insert`` is placed at the start of the edited span.
    """
    merged: list[list[int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    span_start = merged[0][0]
    span_end = merged[-1][1]
    text = index.text
    kept: list[str] = [insert]
    cursor = span_start
    for start, end in merged:
        kept.append(text[cursor:start])
        cursor = end
    kept.append(text[cursor:span_end])
    return index.edit(span_start, span_end, "".join(kept))


def _inline_range(
    entry: KeyEntry, siblings: list[KeyEntry], removable: Collection[str]
) -> Range:
    position = next(i for i, sibling in enumerate(siblings) if sibling is entry)
    if len(siblings) == 1:
        return entry.start, entry.end

    # Take the separator facing the first sibling that is never removed, so
    # that removals of several siblings of one table never overlap.
    anchor = next(
        (i for i, sibling in enumerate(siblings) if sibling.path[-1] not in removable),
        None,
    )
    take_preceding = position > anchor if anchor is not None else position > 0
    if take_preceding:
        return siblings[position - 1].end, entry.end
    return entry.start, siblings[position + 1].start


def _neighbours(
    index: SpanIndex, entry: KeyEntry, removable: Collection[str]
) -> tuple[int | None, bool, bool]:
    """Locate the lines of ``entry``'s declaration around it.

    Returns the end offset of the nearest preceding line of the declaration
    (a sibling entry or the table header), and whether a sibling that no
    other edit removes sits before and after the entry.
    """
    owner = entry.path[:-1]
    size = len(owner)
    header = index.headers.get(owner)
    previous = header.end if header is not None else None
    kept_before = header is not None
    kept_after = False
    for other in index.entries_under(owner):
        if other is entry or other.parent is not None:
            continue
        kept = other.path[size] not in removable
        if other.start > entry.start:
            kept_after = kept_after or kept
            continue
        kept_before = kept_before or kept
        if previous is None or other.end > previous:
            previous = other.end
    return previous, kept_before, kept_after


def _content_end(index: SpanIndex, offset: int) -> int:
    text = index.text
    end = index.line_end(offset)
    while end > offset and text[end - 1] in " \t\r":
        end -= 1
    return end


def _marker_range(index: SpanIndex, comment: Comment) -> Range:
    text = index.text
    line_start = index.line_start(comment.start)
    if not text[line_start : comment.start].strip():
        return _line_range(index, comment.start, comment.end)
    start = comment.start
    while start > line_start and text[start - 1] in " \t":
        start -= 1
    return start, comment.end


def remove_entry(
    index: SpanIndex, entry: KeyEntry, *, removable: Collection[str] = ()
) -> TextEdit | None:
    """Remove ``key = value`` with its separator or its whole line.

    Inside an inline table the entry goes together with one adjacent comma.
    ``removable`` names sibling keys that other edits may remove from the same
    inline table; the separator is chosen so that such edits do not overlap.

    In table form (or as a dotted key) the whole line is removed. Suppression
    markers on the removed line stay with the declaration: in place when a
    kept line of it follows, otherwise moved onto the preceding line as a
    trailing comment. Returns ``None`` when no line of the declaration would
    be left to carry them.
    """
    if entry.parent is not None:
        start, end = _inline_range(entry, entry.parent.entries, removable)
        return _cut(index, [(start, end)])

    text = index.text
    line_start = index.line_start(entry.start)
    if text[line_start : entry.start].strip():
        return _cut(index, [(entry.start, entry.end)])

    start, end = _line_range(index, entry.start, entry.end)
    previous, kept_before, kept_after = _neighbours(index, entry, removable)
    if kept_after:
        comment = index.comment_after(entry.end)
        if comment is not None and has_marker(comment.text):
            indent = text[line_start : entry.start]
            return index.edit(line_start, comment.start, indent)
        return _cut(index, [(start, end)])

    # The entry closes its declaration, so markers below the preceding line
    # would otherwise head the next declaration.
    first_line = (
        index.line_of(previous) + 1
        if previous is not None
        else index.line_of(entry.start)
    )
    markers = [
        comment
        for line, comment in sorted(index.comments.items())
        if first_line <= line <= index.line_of(entry.end) and has_marker(comment.text)
    ]
    if not markers:
        return _cut(index, [(start, end)])
    if previous is None or not kept_before:
        return None

    anchor = _content_end(index, previous)
    ranges = [(anchor, anchor), (start, end)]
    ranges.extend(
        _marker_range(index, comment)
        for comment in markers
        if not start <= comment.start < end
    )
    moved = "".join(f"  {comment.text.strip()}" for comment in markers)
    return _cut(index, ranges, insert=moved)


def _alone_on_line(index: SpanIndex, item: ValueNode) -> tuple[bool, str]:
    """Whether ``item`` is the only element on its line, and its trailing text."""
    text = index.text
    before = text[index.line_start(item.start) : item.start]
    after = text[item.end : index.line_end(item.end)].strip()
    if after.startswith(","):
        after = after[1:].strip()
    alone = not before.strip() and (not after or after.startswith("#"))
    return alone, after


def _item_range(
    index: SpanIndex, items: list[ValueNode], position: int, drop: set[int]
) -> Range:
    text = index.text
    item = items[position]

    alone, trailing = _alone_on_line(index, item)
    if alone:
        if trailing.startswith("#") and has_marker(trailing):
            return item.start, _separator_end(text, item.end)
        return _line_range(index, item.start, item.end)

    following = items[position + 1] if position + 1 < len(items) else None
    if following is not None and "\n" not in text[item.end : following.start]:
        return item.start, following.start

    kept_before = [i for i in range(position) if i not in drop]
    if kept_before:
        start = items[kept_before[-1]].end
        if not _contains_comment(index, start, item.end):
            return start, item.end

    return item.start, _separator_end(text, item.end)


def remove_array_items(
    index: SpanIndex,
    entry: KeyEntry,
    drop: Collection[int],
    *,
    removable: Collection[str] = (),
) -> TextEdit | None:
    """Remove the array elements at positions ``drop`` from ``entry``'s value.

    Each element goes with its adjacent separator, or with its whole line when
    it sits alone on one. When every element is dropped, the whole entry is
    removed instead of leaving an empty array behind.
    """
    items = entry.value.items
    dropped = {position for position in drop if 0 <= position < len(items)}
    if not dropped:
        msg = "no array elements to remove"
        raise ValueError(msg)
    if len(dropped) == len(items):
        return remove_entry(index, entry, removable=removable)

    ranges = [_item_range(index, items, position, dropped) for position in dropped]
    return _cut(index, ranges)


__all__ = ["remove_array_items", "remove_entry"]
