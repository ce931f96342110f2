"""Command-line entrypoint for the grading report center.

Subcommands
-----------
grade
    Load a roster file, run every student through grading and formatting
    with a live dashboard, and write one HTML report per finished student.
search-criteria
    Ask the service for scoring criteria of an exam, optionally saving the
    result as a template.
templates
    List, show, save or delete named scoring-criteria or instruction templates.
model
    Show or set the preferred model.

Exit codes: ``0`` on success, ``1`` when a batch has failed or unfinished
students, a service call fails or the reports cannot be written, ``2`` on
configuration or input errors.

Examples
--------
>>> # In shell
>>> gradecenter grade --roster exams/midterm/roster.json --output out/  # doctest: +SKIP
>>> gradecenter templates list  # doctest: +SKIP
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import uuid
from collections import Counter
from collections.abc import Callable
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from gradecenter.config import (
    AVAILABLE_MODELS,
    DEFAULT_OUTPUT_DIR,
    LANG,
    LOG_DIR,
    LOG_FILENAME,
    LOG_FORMAT,
    MODEL_LABELS,
    SCORING_TEMPLATES_KEY,
    STORE_PATH,
    STUDENT_TEMPLATES_KEY,
)
from gradecenter.exceptions import (
    AppError,
    ConfigurationError,
    ServiceError,
    ValidationError,
)
from gradecenter.export import build_mailto_link, safe_filename, write_report
from gradecenter.pipeline.batch import BatchOrchestrator
from gradecenter.pipeline.grading import GeminiConfig, GradingServiceClient
from gradecenter.pipeline.models import (
    BatchOutcome,
    DocumentHandle,
    ExamContext,
    RecordStatus,
    StudentTask,
)
from gradecenter.storage import JsonFileStore, PreferenceStore, TemplateLibrary
from gradecenter.ui import BatchDashboard

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_USAGE = 2

TEMPLATE_NAMESPACES = {
    "scoring": SCORING_TEMPLATES_KEY,
    "student": STUDENT_TEMPLATES_KEY,
}


def configure_logging(level: str = "INFO", enable_file: bool = True) -> None:
    r"""Configure root logging for the CLI.

    All existing root handlers are replaced by a stream handler and, when
    enabled, a file handler at ``LOG_DIR / LOG_FILENAME``. File logging is
    skipped when ``DISABLE_FILE_LOGS`` is set or under pytest, and a failure
    to open the log file is ignored.

    Parameters
    ----------
    level : str, optional
        Logging level name, e.g. ``"DEBUG"`` or ``"INFO"``.
    enable_file : bool, optional
        Whether to add the file handler.

    Examples
    --------
    >>> configure_logging("DEBUG", enable_file=False)
    """
    for h in logging.root.handlers[:]:
        logging.root.removeHandler(h)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    disable_file = bool(
        os.environ.get("DISABLE_FILE_LOGS") or os.environ.get("PYTEST_CURRENT_TEST")
    )
    if enable_file and not disable_file:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            handlers.insert(0, logging.FileHandler(LOG_DIR / LOG_FILENAME, mode="a"))
        except Exception:
            # File handler failures suppressed; console logging still works.
            pass
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="gradecenter",
        description="Grade exam solutions and produce per-student HTML reports.",
    )
    parser.add_argument(
        "--log-level", type=str, default=os.environ.get("LOG_LEVEL", "INFO")
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=STORE_PATH,
        help="JSON file holding templates and preferences.",
    )
    parser.add_argument("--lang", type=str, default=os.environ.get("LANG_UI", LANG))
    sub = parser.add_subparsers(dest="command", required=True)

    grade = sub.add_parser("grade", help="Grade every student of a roster.")
    grade.add_argument("--roster", type=Path, required=True)
    grade.add_argument("--exam-info", type=str, default=None)
    grade.add_argument("--criteria-file", type=Path, default=None)
    grade.add_argument("--criteria-template", type=str, default=None)
    grade.add_argument("--materials", type=Path, nargs="*", default=[])
    grade.add_argument("--model", type=str, default=None, choices=AVAILABLE_MODELS)
    grade.add_argument("--output", type=Path, default=DEFAULT_OUTPUT_DIR)
    grade.add_argument(
        "--print-version",
        action="store_true",
        help="Also write the light print variant of each report.",
    )
    grade.add_argument(
        "--mailto",
        action="store_true",
        help="Print a mailto link for each finished report.",
    )
    grade.add_argument("--no-dashboard", action="store_true")

    search = sub.add_parser("search-criteria", help="Look up scoring criteria.")
    search.add_argument("--exam-info", type=str, required=True)
    search.add_argument("--model", type=str, default=None, choices=AVAILABLE_MODELS)
    search.add_argument("--save-as", type=str, default=None)

    templates = sub.add_parser("templates", help="Manage saved templates.")
    templates.add_argument(
        "--kind", choices=sorted(TEMPLATE_NAMESPACES), default="scoring"
    )
    tsub = templates.add_subparsers(dest="action", required=True)
    tsub.add_parser("list")
    show = tsub.add_parser("show")
    show.add_argument("name")
    save = tsub.add_parser("save")
    save.add_argument("name")
    source = save.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=Path)
    source.add_argument("--text", type=str)
    delete = tsub.add_parser("delete")
    delete.add_argument("name")

    model = sub.add_parser("model", help="Show or set the preferred model.")
    model.add_argument("name", nargs="?", default=None)
    return parser


def _document(entry: Any, base_dir: Path) -> DocumentHandle:
    if isinstance(entry, str):
        path, media_type = entry, None
    elif isinstance(entry, dict) and entry.get("path"):
        path, media_type = entry["path"], entry.get("media_type")
    else:
        raise ValidationError(
            "Document entries must be a path or an object with 'path'",
            context={"entry": entry},
        )
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = base_dir / resolved
    return DocumentHandle.from_path(resolved, media_type)


def load_roster(path: Path) -> tuple[dict[str, Any], list[StudentTask]]:
    """Read a roster file.

    Parameters
    ----------
    path : Path
        JSON file with ``exam_info``, ``scoring_criteria``,
        ``exam_materials`` and ``students``. Relative document paths resolve
        against the file's directory.

    Returns
    -------
    tuple[dict[str, Any], list[StudentTask]]
        The exam-level fields (with ``exam_materials`` as document handles)
        and the students in file order. Students without an id get a random
        one.

    Raises
    ------
    ValidationError
        If the file cannot be read or parsed, a student has no name, or two
        students share an id.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(
            f"Could not read roster {path}: {e}", context={"path": str(path)}
        ) from e
    if not isinstance(data, dict):
        raise ValidationError("Roster must be a JSON object", context={"path": str(path)})

    base_dir = Path(path).resolve().parent
    exam = {
        "exam_info": str(data.get("exam_info") or ""),
        "scoring_criteria": str(data.get("scoring_criteria") or ""),
        "exam_materials": tuple(
            _document(e, base_dir) for e in data.get("exam_materials") or []
        ),
    }
    students: list[StudentTask] = []
    for index, entry in enumerate(data.get("students") or [], start=1):
        name = str(entry.get("name") or "").strip() if isinstance(entry, dict) else ""
        if not name:
            raise ValidationError(
                f"Student #{index} has no name", context={"path": str(path)}
            )
        students.append(
            StudentTask(
                id=str(entry.get("id") or uuid.uuid4()),
                name=name,
                email=str(entry.get("email") or ""),
                solution_files=tuple(
                    _document(e, base_dir) for e in entry.get("solution_files") or []
                ),
                instructions=str(entry.get("instructions") or ""),
            )
        )
    duplicates = sorted(i for i, n in Counter(s.id for s in students).items() if n > 1)
    if duplicates:
        raise ValidationError(
            f"Duplicate student ids in roster: {', '.join(duplicates)}",
            context={"path": str(path), "ids": duplicates},
        )
    return exam, students


def build_context(
    args: argparse.Namespace, exam: dict[str, Any], store: JsonFileStore
) -> ExamContext:
    """Merge roster fields with command-line overrides into an ``ExamContext``."""
    exam_info = args.exam_info or exam["exam_info"]
    if args.criteria_file is not None:
        try:
            criteria = args.criteria_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(
                f"Could not read criteria file {args.criteria_file}: {e}"
            ) from e
    elif args.criteria_template:
        library = TemplateLibrary(store, SCORING_TEMPLATES_KEY)
        try:
            criteria = library.load(args.criteria_template)
        except KeyError:
            raise ValidationError(
                f"No scoring template named '{args.criteria_template}'"
            ) from None
    else:
        criteria = exam["scoring_criteria"]
    materials = exam["exam_materials"] + tuple(
        DocumentHandle.from_path(p) for p in args.materials
    )
    model = args.model or PreferenceStore(store).preferred_model()
    return ExamContext(
        exam_info=exam_info,
        scoring_criteria=criteria,
        model=model,
        exam_materials=materials,
    )


def write_outputs(
    outcome: BatchOutcome,
    output_dir: Path,
    console: Console,
    *,
    printable: bool = False,
    mailto: bool = False,
) -> list[Path]:
    """Write a report file for each finished record and return the paths.

    Records whose file names would clash (namesakes, or names with nothing
    left after sanitising) get their record id in the file name.
    """
    finished = [
        r for r in outcome.records if r.status is RecordStatus.DONE and r.result is not None
    ]
    names = Counter(
        safe_filename(r.result.exam_info, r.result.student_name, "html") for r in finished
    )
    written: list[Path] = []
    for record in finished:
        name = safe_filename(record.result.exam_info, record.result.student_name, "html")
        nameless = name == safe_filename(record.result.exam_info, "", "html")
        tag = record.id if names[name] > 1 or nameless else ""
        written.append(write_report(record.result, output_dir, tag=tag))
        if printable:
            written.append(write_report(record.result, output_dir, printable=True, tag=tag))
        if mailto and record.result.student_email:
            console.print(build_mailto_link(record.result), soft_wrap=True)
    return written


def _stop_on_interrupt(
    cancel: asyncio.Event, loop: asyncio.AbstractEventLoop | None = None
) -> Callable[[], None]:
    """Let the first Ctrl-C finish the current student and stop the batch.

    The handler removes itself when it fires, so a second Ctrl-C raises
    ``KeyboardInterrupt`` straight away. Returns a callable that removes the
    handler if it is still installed.
    """
    loop = loop or asyncio.get_running_loop()

    def uninstall() -> None:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)

    def on_interrupt() -> None:
        logger.warning("Interrupt received; stopping after the current student")
        cancel.set()
        uninstall()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform or outside the main thread.
        logger.debug("SIGINT handler not installed")
    return uninstall


async def run_grade(
    args: argparse.Namespace, store: JsonFileStore, console: Console
) -> int:
    exam, students = load_roster(args.roster)
    context = build_context(args, exam, store)
    config = GeminiConfig()
    cancel = asyncio.Event()
    uninstall = _stop_on_interrupt(cancel)

    try:
        async with GradingServiceClient(config) as service:
            orchestrator = BatchOrchestrator(service)
            if args.no_dashboard:
                outcome = await orchestrator.run_batch(
                    context, students, cancel_event=cancel
                )
            else:
                dashboard = BatchDashboard(
                    lambda: orchestrator.ledger.snapshot() if orchestrator.ledger else [],
                    lambda: orchestrator.progress,
                    console=console,
                    title=context.exam_info or "Grading batch",
                    lang=args.lang,
                )
                with dashboard:
                    outcome = await orchestrator.run_batch(
                        context,
                        students,
                        on_update=dashboard.on_update,
                        on_progress=dashboard.on_progress,
                        cancel_event=cancel,
                    )
    finally:
        uninstall()

    try:
        written = write_outputs(
            outcome,
            args.output,
            console,
            printable=args.print_version,
            mailto=args.mailto,
        )
    except OSError as e:
        logger.error("Could not write reports to %s: %s", args.output, e)
        console.print(
            f"[red]Could not write reports to {escape(str(args.output))}: "
            f"{escape(str(e))}[/red]"
        )
        return EXIT_FAILURES
    logger.info(
        "Batch summary: total=%d done=%d failed=%d files=%d",
        len(outcome.records),
        len(outcome.succeeded),
        len(outcome.failed),
        len(written),
    )
    for record in outcome.failed:
        console.print(
            f"[red]{escape(record.student_name)}[/red]: {escape(record.failure_reason or '')}"
        )
    return EXIT_OK if outcome.all_succeeded else EXIT_FAILURES


async def run_search(
    args: argparse.Namespace, store: JsonFileStore, console: Console
) -> int:
    model = args.model or PreferenceStore(store).preferred_model()
    config = GeminiConfig()
    async with GradingServiceClient(config) as service:
        try:
            criteria = await BatchOrchestrator(service).search_criteria(
                args.exam_info, model
            )
        except ServiceError as e:
            logger.error("Criteria search failed: %s", e)
            console.print(f"[red]{escape(e.message)}[/red]")
            return EXIT_FAILURES
    console.print(criteria, markup=False, highlight=False)
    if args.save_as:
        TemplateLibrary(store, SCORING_TEMPLATES_KEY).save(args.save_as, criteria)
        console.print(f"Saved as template '{args.save_as.strip()}'")
    return EXIT_OK


def run_templates(
    args: argparse.Namespace, store: JsonFileStore, console: Console
) -> int:
    library = TemplateLibrary(store, TEMPLATE_NAMESPACES[args.kind])
    if args.action == "list":
        for name in library.names():
            console.print(name, markup=False)
        return EXIT_OK
    if args.action == "save":
        if args.file is not None:
            try:
                text = args.file.read_text(encoding="utf-8")
            except OSError as e:
                raise ValidationError(f"Could not read {args.file}: {e}") from e
        else:
            text = args.text
        library.save(args.name, text)
        console.print(f"Saved template '{args.name.strip()}'")
        return EXIT_OK
    try:
        if args.action == "show":
            console.print(library.load(args.name), markup=False, highlight=False)
        else:
            library.delete(args.name)
            console.print(f"Deleted template '{args.name.strip()}'")
    except KeyError:
        console.print(f"[red]No template named '{escape(args.name)}'[/red]")
        return EXIT_USAGE
    return EXIT_OK


def run_model(args: argparse.Namespace, store: JsonFileStore, console: Console) -> int:
    preferences = PreferenceStore(store)
    if args.name is not None:
        preferences.set_preferred_model(args.name)
    current = preferences.preferred_model()
    for model in AVAILABLE_MODELS:
        marker = "*" if model == current else " "
        console.print(f"{marker} {model}  {MODEL_LABELS.get(model, '')}", markup=False)
    return EXIT_OK


def main(argv: list[str] | None = None, console: Console | None = None) -> int:
    """Run the CLI and return its exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    console = console or Console()
    store = JsonFileStore(args.store)
    logger.debug("Running command %s", args.command)

    try:
        if args.command == "grade":
            return asyncio.run(run_grade(args, store, console))
        if args.command == "search-criteria":
            return asyncio.run(run_search(args, store, console))
        if args.command == "templates":
            return run_templates(args, store, console)
        return run_model(args, store, console)
    except (ConfigurationError, ValidationError) as e:
        logger.error("%s", e)
        console.print(f"[red]{escape(e.message)}[/red]")
        return EXIT_USAGE
    except AppError as e:
        logger.error("%s", e)
        console.print(f"[red]{escape(e.message)}[/red]")
        return EXIT_FAILURES
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_FAILURES


__all__ = ["build_parser", "configure_logging", "load_roster", "main"]


if __name__ == "__main__":
    raise SystemExit(main())
