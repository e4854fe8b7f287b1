"""Command line interface (``python -m excel2record.cli``)."""
