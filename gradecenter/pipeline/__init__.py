"""Headless grading pipeline: service access (``grading``) and sequencing (``batch``)."""
