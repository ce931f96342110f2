"""Exam Grading Report Center package.

This package drives a batch of per-student exam solutions through an external
AI text-generation service (grade, then format) and exposes a live,
per-student status view while the batch runs.

The package follows a layered architecture: the CLI (entrypoint and
logging), the batch layer (sequencing, status ledger and progress), and the
grading layer (asynchronous, resilient API communication). Storage and
export helpers sit beside the core and are never called from the batch loop.

Package Structure
-----------------
- `pipeline/grading/`:
    Service configuration, the aiohttp API client, the document encoding
    adapter, prompt builders and the grading service client.
- `pipeline/models.py`:
    Immutable data model shared by the grading and batch layers.
- `pipeline/batch/`:
    Status ledger, progress publisher and the batch orchestrator.
- `storage/`:
    Key-value persistence for named templates and the preferred model.
- `export/`:
    Standalone HTML/print documents, safe file names and mail links.
- `ui/`:
    Rich live dashboard for a running batch.
- `config.py`: All configuration constants, as UPPER_SNAKE_CASE.
- `exceptions.py`: The project-specific exception taxonomy.

Examples
--------
>>> import gradecenter
>>> # See gradecenter.cli or gradecenter.pipeline.batch for entrypoints.
"""

__version__ = "0.1.0"
