"""Export helpers that turn a finished report into files and links.

The formatted report is an HTML fragment styled with Tailwind utility classes.
These helpers wrap it into a standalone page, build a light print variant,
derive a safe file name and compose a ``mailto:`` link for sending it.

Example
-------
>>> from gradecenter.pipeline.models import ReportResult
>>> result = ReportResult("<h1>Report</h1>", "Kim Minsu", "kim@example.com",
...                       "2024 Midterm", "2024-05-01 10:00:00")
>>> safe_filename(result.exam_info, result.student_name, "html")
'2024_Midterm_Kim_Minsu_evaluation_report.html'
"""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from urllib.parse import quote

from gradecenter.config import (
    REPORT_BACKGROUND_COLOR,
    REPORT_FILENAME_SUFFIX,
    TAILWIND_CDN_URL,
)
from gradecenter.pipeline.models import ReportResult

logger = logging.getLogger(__name__)

DOCUMENT_LANG = "ko"

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_FILENAME_RE = re.compile(r"[^\w.-]")
_DARK_THEME_CLASS_RE = re.compile(
    r"bg-stone-\d{2,3}|text-stone-\d{2,3}|border-stone-\d{2,3}"
)

_HTML_DOCUMENT = """<!DOCTYPE html>
<html lang="{lang}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Evaluation report - {title}</title>
  <script src="{tailwind}"></script>
  <style>body {{ background-color: {background}; }}</style>
</head>
<body class="p-8">
{content}
</body>
</html>
"""

_PRINT_DOCUMENT = """<!DOCTYPE html>
<html lang="{lang}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Evaluation report - {title}</title>
  <script src="{tailwind}"></script>
  <style>
    @media print {{
      body {{
        -webkit-print-color-adjust: exact;
        print-color-adjust: exact;
      }}
    }}
  </style>
</head>
<body class="bg-white p-8 font-sans">
{content}
</body>
</html>
"""

_MAIL_SUBJECT = "Evaluation report for {student}"
_MAIL_BODY = (
    "Hello {student},\n\n"
    "Please find your evaluation report for {exam} attached.\n\n"
    "Download the file to review it.\n\n"
    "Best regards."
)


def _sanitize(text: str) -> str:
    return _UNSAFE_FILENAME_RE.sub("", _WHITESPACE_RE.sub("_", text))


def safe_filename(
    exam_info: str, student_name: str, extension: str, *, tag: str = ""
) -> str:
    """Build ``{exam}_{student}_evaluation_report.{extension}``.

    Whitespace runs become ``_``; anything other than letters, digits (in any
    script), ``_``, ``.`` and ``-`` is dropped. A non-empty ``tag`` is added
    after the student part, as in ``{exam}_{student}_{tag}_evaluation_report``.
    """
    student = _sanitize(student_name)
    if tag:
        student = f"{student}_{_sanitize(tag)}"
    return (
        f"{_sanitize(exam_info)}_{student}"
        f"_{REPORT_FILENAME_SUFFIX}.{extension.lstrip('.')}"
    )


def build_html_document(result: ReportResult) -> str:
    """Wrap the report content in a standalone dark-themed HTML page."""
    return _HTML_DOCUMENT.format(
        lang=DOCUMENT_LANG,
        title=html.escape(result.student_name),
        tailwind=TAILWIND_CDN_URL,
        background=REPORT_BACKGROUND_COLOR,
        content=result.html_content,
    )


def strip_dark_theme(content: str) -> str:
    """Remove ``bg-stone-*``, ``text-stone-*`` and ``border-stone-*`` classes.

    >>> strip_dark_theme('<p class="text-stone-300 font-bold">x</p>')
    '<p class=" font-bold">x</p>'
    """
    return _DARK_THEME_CLASS_RE.sub("", content)


def build_print_document(result: ReportResult) -> str:
    """Light print variant of :func:`build_html_document`."""
    return _PRINT_DOCUMENT.format(
        lang=DOCUMENT_LANG,
        title=html.escape(result.student_name),
        tailwind=TAILWIND_CDN_URL,
        content=strip_dark_theme(result.html_content),
    )


def build_mailto_link(result: ReportResult) -> str:
    """Compose a ``mailto:`` URL addressed to the student.

    Subject and body are percent-encoded; the address is left as given.
    """
    subject = _MAIL_SUBJECT.format(student=result.student_name)
    body = _MAIL_BODY.format(student=result.student_name, exam=result.exam_info)
    return (
        f"mailto:{result.student_email}"
        f"?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
    )


def write_report(
    result: ReportResult,
    output_dir: Path,
    *,
    printable: bool = False,
    tag: str = "",
) -> Path:
    r"""Write the report page into ``output_dir`` and return its path.

    Parameters
    ----------
    result : ReportResult
        Finished report.
    output_dir : Path
        Target directory; created when missing.
    printable : bool, optional
        Write the light print variant instead of the dark page.
    tag : str, optional
        Extra file-name part that keeps reports of namesakes apart.

    Returns
    -------
    Path
        Location of the written file.

    Raises
    ------
    OSError
        If the directory or the file cannot be written.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    name = safe_filename(result.exam_info, result.student_name, "html", tag=tag)
    if printable:
        name = name[: -len(".html")] + "_print.html"
        document = build_print_document(result)
    else:
        document = build_html_document(result)
    output_file = output_dir / name
    output_file.write_text(document, encoding="utf-8")
    logger.info("Wrote report for %s to %s", result.student_name, output_file)
    return output_file
