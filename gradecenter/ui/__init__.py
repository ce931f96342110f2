"""Console presentation for running batches."""

from __future__ import annotations

from .live_progress import BatchDashboard, render_dashboard, status_label

__all__ = ["BatchDashboard", "render_dashboard", "status_label"]
