from __future__ import annotations

import pytest

from manifest.errors import SpanIndexError
from manifest.spans import SpanIndex

MANIFEST = """\
[package]
name = "demo" # trailing

[dependencies]
serde = { version = "1", features = ["derive", "rc"] }
tokio.workspace = true

[dependencies.rand]
version = "0.8"
features = [
    "std",  # ab-lint: allow(redundant-feature)
    "small_rng",
]
"""


@pytest.fixture
def index() -> SpanIndex:
    return SpanIndex.build(MANIFEST)


def test_inline_table_entries_have_parent(index: SpanIndex) -> None:
    entry = index.entries[("dependencies", "serde", "features")]

    assert entry.inline
    assert entry.parent is not None
    assert [sibling.path[-1] for sibling in entry.parent.entries] == [
        "version",
        "features",
    ]
    assert [index.string_value(item) for item in entry.value.items] == [
        "derive",
        "rc",
    ]
    assert MANIFEST[entry.value.start : entry.value.end] == '["derive", "rc"]'


def test_dotted_key_entry(index: SpanIndex) -> None:
    entry = index.entries[("dependencies", "tokio", "workspace")]

    assert not entry.inline
    assert MANIFEST[entry.start : entry.end] == "tokio.workspace = true"
    assert index.line_of(entry.start) == 6


def test_sub_table_header_and_entries(index: SpanIndex) -> None:
    header = index.headers[("dependencies", "rand")]
    entries = index.entries_under(("dependencies", "rand"))

    assert MANIFEST[header.start : header.end] == "[dependencies.rand]"
    assert [entry.path[-1] for entry in entries] == ["version", "features"]

    features = index.entries[("dependencies", "rand", "features")]
    assert index.line_of(features.start) == 10
    assert index.line_of(features.end - 1) == 13


def test_comments_are_indexed_by_line(index: SpanIndex) -> None:
    assert index.comments[2].text == "# trailing"
    assert "ab-lint: allow(redundant-feature)" in index.comments[11].text


def test_comment_after_requires_comment_past_offset(index: SpanIndex) -> None:
    name = index.entries[("package", "name")]

    comment = index.comment_after(name.end)

    assert comment is not None
    assert comment.line == 2
    assert index.comment_after(index.line_start(name.start) - 1) is None


def test_line_helpers(index: SpanIndex) -> None:
    offset = MANIFEST.index("serde")

    assert index.line_of(0) == 1
    assert index.line_of(offset) == 5
    assert index.line_start(offset) == offset
    assert index.line_text(5).startswith("serde = {")
    assert MANIFEST[index.line_end(offset)] == "\n"


def test_edit_records_original_text(index: SpanIndex) -> None:
    entry = index.entries[("dependencies", "rand", "version")]

    edit = index.edit(entry.value.start, entry.value.end, '"0.9"')

    assert edit.original == '"0.8"'
    assert edit.span.line == edit.span.end_line == 9


def test_array_tables_get_positional_paths() -> None:
    text = '[[bin]]\nname = "a"\n\n[[bin]]\nname = "b"\n'

    index = SpanIndex.build(text)

    assert ("bin", "[0]") in index.headers
    assert index.headers[("bin", "[1]")].array
    assert index.string_value(index.entries[("bin", "[1]", "name")].value) == "b"


def test_strings_with_brackets_and_quotes_do_not_confuse_lexer() -> None:
    text = (
        '[package]\n'
        'description = """a ] tricky\n# not a comment\n"quoted" text"""\n'
        "license = 'MIT # or not'\n"
        'path = "C:\\\\dir\\"x"\n'
    )

    index = SpanIndex.build(text)

    assert index.comments == {}
    assert index.string_value(index.entries[("package", "license")].value) == (
        "MIT # or not"
    )
    assert index.string_value(index.entries[("package", "path")].value) == 'C:\\dir"x'
    assert index.line_of(index.entries[("package", "license")].start) == 5


def test_quoted_keys_are_decoded() -> None:
    text = "[target.'cfg(unix)'.dependencies]\n\"libc\" = \"0.2\"\n"

    index = SpanIndex.build(text)

    assert ("target", "cfg(unix)", "dependencies") in index.headers
    assert ("target", "cfg(unix)", "dependencies", "libc") in index.entries


def test_unterminated_header_raises() -> None:
    with pytest.raises(SpanIndexError):
        SpanIndex.build("[dependencies\n")
