"""Report export: standalone HTML, print variant, file names and mail links."""

from __future__ import annotations

from .report_document import (
    build_html_document,
    build_mailto_link,
    build_print_document,
    safe_filename,
    write_report,
)

__all__ = [
    "build_html_document",
    "build_mailto_link",
    "build_print_document",
    "safe_filename",
    "write_report",
]
