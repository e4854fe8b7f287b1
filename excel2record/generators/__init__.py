"""Sheet generators (single-file and multi-file modes)."""

from .multi_file import MultiFileGenerator, MultiFilePlan
from .single_file import SingleFileGenerator, SingleFilePlan

__all__ = [
    "MultiFileGenerator",
    "MultiFilePlan",
    "SingleFileGenerator",
    "SingleFilePlan",
]
