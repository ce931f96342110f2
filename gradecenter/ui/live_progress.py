"""Rich live dashboard for a running grading batch.

Renders the ledger snapshot as a table (one row per student with status,
progress note or failure reason) above an overall progress bar. The
dashboard is driven by the orchestrator's update stream and progress
callbacks; it only reads state and never writes into the ledger.
"""

from __future__ import annotations

from collections.abc import Callable

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from gradecenter.config import LANG
from gradecenter.pipeline.models import (
    BatchProgress,
    ProcessingRecord,
    RecordStatus,
    StatusUpdate,
)

_LABELS: dict[str, dict[RecordStatus, str]] = {
    "en": {
        RecordStatus.PENDING: "[dim]⏳ Waiting[/dim]",
        RecordStatus.ANALYZING: "[yellow]⚙ Analyzing[/yellow]",
        RecordStatus.FORMATTING: "[cyan]✎ Formatting[/cyan]",
        RecordStatus.DONE: "[green]✅ Done[/green]",
        RecordStatus.FAILED: "[red]❌ Failed[/red]",
    },
    "ko": {
        RecordStatus.PENDING: "[dim]⏳ 대기 중[/dim]",
        RecordStatus.ANALYZING: "[yellow]⚙ 분석 중[/yellow]",
        RecordStatus.FORMATTING: "[cyan]✎ 보고서 생성 중[/cyan]",
        RecordStatus.DONE: "[green]✅ 완료[/green]",
        RecordStatus.FAILED: "[red]❌ 실패[/red]",
    },
}


def status_label(status: RecordStatus, lang: str = LANG) -> str:
    """Return the Rich-markup label for ``status``.

    Unknown languages fall back to English.

    Examples
    --------
    >>> status_label(RecordStatus.DONE)
    '[green]✅ Done[/green]'
    """
    return _LABELS.get(lang, _LABELS["en"])[status]


def render_dashboard(
    records: list[ProcessingRecord],
    progress: BatchProgress,
    *,
    title: str = "Grading batch",
    lang: str = LANG,
) -> RenderableType:
    """Build the dashboard renderable from a ledger snapshot and progress.

    Parameters
    ----------
    records : list[ProcessingRecord]
        Ordered ledger snapshot.
    progress : BatchProgress
        Latest progress value.
    title : str, optional
        Table title.
    lang : str, optional
        Label language (``'en'`` or ``'ko'``).

    Returns
    -------
    RenderableType
        A Rich group holding the table and the progress line.
    """
    table = Table(
        title=Text(title, style="table.title"), show_header=True, header_style="bold blue"
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Student", style="bold")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")
    for index, record in enumerate(records, start=1):
        if record.status is RecordStatus.FAILED:
            details = Text(record.failure_reason or "", style="red")
        else:
            details = Text(record.progress_note or "", style="dim")
        table.add_row(
            str(index),
            Text(record.student_name),
            status_label(record.status, lang),
            details,
        )

    summary = Text(f"{progress.current}/{progress.total}", style="bold")
    if progress.active_name:
        summary.append(f"  {progress.active_name}", style="yellow")
    bar = ProgressBar(total=max(progress.total, 1), completed=progress.current)
    return Group(table, bar, summary)


class BatchDashboard:
    """Live view refreshed from orchestrator callbacks.

    Parameters
    ----------
    snapshot : Callable[[], list[ProcessingRecord]]
        Returns the current ledger snapshot.
    progress : Callable[[], BatchProgress]
        Returns the current progress.
    console : Console | None, optional
        Target console; a new one is created when omitted.

    Examples
    --------
    >>> dashboard = BatchDashboard(  # doctest: +SKIP
    ...     lambda: orchestrator.ledger.snapshot(), lambda: orchestrator.progress)
    >>> with dashboard:  # doctest: +SKIP
    ...     outcome = await orchestrator.run_batch(
    ...         context, roster, on_update=dashboard.on_update,
    ...         on_progress=dashboard.on_progress)
    """

    def __init__(
        self,
        snapshot: Callable[[], list[ProcessingRecord]],
        progress: Callable[[], BatchProgress],
        *,
        console: Console | None = None,
        title: str = "Grading batch",
        lang: str = LANG,
    ) -> None:
        self._snapshot = snapshot
        self._progress = progress
        self.console = console or Console()
        self.title = title
        self.lang = lang
        self._live: Live | None = None

    def render(self) -> RenderableType:
        return render_dashboard(
            self._snapshot(), self._progress(), title=self.title, lang=self.lang
        )

    def refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)

    def on_update(self, update: StatusUpdate) -> None:
        self.refresh()

    def on_progress(self, progress: BatchProgress) -> None:
        self.refresh()

    def __enter__(self) -> BatchDashboard:
        self._live = Live(
            self.render(), console=self.console, refresh_per_second=4, transient=False
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)
            self._live.__exit__(exc_type, exc, tb)
            self._live = None
