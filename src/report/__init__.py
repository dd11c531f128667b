from report.render import (
    FIX_HINT,
    format_diagnostic,
    format_issue,
    render_json,
    render_text,
)

__all__ = [
    "FIX_HINT",
    "format_diagnostic",
    "format_issue",
    "render_json",
    "render_text",
]
