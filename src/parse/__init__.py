"""Parsing utilities for Rust sources"""

from parse.treesitter_paths import extract_crate_references

__all__ = [
    "extract_crate_references",
]
