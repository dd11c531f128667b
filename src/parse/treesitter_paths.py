"""Tree-sitter based crate reference extraction for Rust sources."""

from __future__ import annotations

import threading

from tree_sitter import Language, Node, Parser
from tree_sitter_rust import language as get_rust_language

_LOCAL = threading.local()

_SCOPED_NODES = frozenset({"scoped_identifier", "scoped_type_identifier"})


def _get_parser() -> Parser:
    """Return this thread's Tree-sitter parser for Rust."""
    parser: Parser | None = getattr(_LOCAL, "parser", None)
    if parser is None:
        parser = Parser(Language(get_rust_language()))
        _LOCAL.parser = parser
    return parser


def _text(node: Node) -> str:
    return node.text.decode("utf8") if node.text else ""


def _is_separator(node: Node | None) -> bool:
    # Inside macro token trees punctuation runs lex as one token (`::<`).
    return node is not None and _text(node).startswith("::")


def _is_root_use_list(node: Node) -> bool:
    """Check whether a ``use_list`` groups crate roots (``use {a, b};``)."""
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "use_declaration":
        return True
    if parent.type == "scoped_use_list":
        # `use ::{a, b};`
        return parent.child_by_field_name("path") is None
    if parent.type == "use_list":
        return _is_root_use_list(parent)
    return False


def _is_root_use_target(node: Node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "use_declaration":
        return True
    return parent.type == "use_list" and _is_root_use_list(parent)


def _is_path_root(node: Node) -> bool:
    """Check whether an identifier node names the first segment of a path."""
    if _is_separator(node.next_sibling):
        # `rand::random()`, `rand::Rng`, `#[tokio::main]`, and the same
        # shapes inside macro token trees.
        return True

    parent = node.parent
    if parent is None:
        return False

    if _is_root_use_target(node):
        # `use rand;`, `use {rand, anyhow};`
        return True

    if parent.type == "use_as_clause":
        path = parent.child_by_field_name("path")
        return path is not None and path == node and _is_root_use_target(parent)

    if parent.type in _SCOPED_NODES and parent.child_by_field_name("path") is None:
        # `::rand` with a leading path separator.
        return _is_separator(node.prev_sibling)

    return False


def extract_crate_references(source: bytes) -> set[str]:
    """Extract identifiers a Rust file may use to reference external crates.

    Collects the first segment of every path (expressions, types, attributes,
    macro invocations and macro token trees), bare ``use`` targets, and
    ``extern crate`` names. Comments and string literals never contribute.
    The result over-approximates: a local module used as ``foo::bar`` also
    yields ``foo``.

    Args:
        source: Raw bytes of a ``.rs`` file

    Returns:
        Set of identifier strings.
    """
    tree = _get_parser().parse(source)
    found: set[str] = set()

    stack: list[Node] = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "identifier":
            if _is_path_root(node):
                found.add(_text(node))
        elif node.type == "extern_crate_declaration":
            name = node.child_by_field_name("name")
            if name is not None:
                found.add(_text(name))
        stack.extend(node.children)

    found.discard("")
    return found


__all__ = ["extract_crate_references"]
