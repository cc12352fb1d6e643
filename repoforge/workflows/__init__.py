"""Workflow orchestrators."""

from .advanced import run_advanced_edit
from .bulk_edit import BulkEditTarget, run_bulk_edit
from .expansion import run_project_expansion
from .generation import run_project_generation
from .single_edit import edit_single_file

__all__ = [
    "BulkEditTarget",
    "edit_single_file",
    "run_advanced_edit",
    "run_bulk_edit",
    "run_project_expansion",
    "run_project_generation",
]
