"""Safe manifest rewriting for ab-lint."""

from fix.edits import remove_array_items, remove_entry

__all__ = ["remove_array_items", "remove_entry"]
