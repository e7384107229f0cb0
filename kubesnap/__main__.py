"""Entry point for `python -m kubesnap`.

Usage:
    python -m kubesnap collect -o ./results
    uv run python -m kubesnap resources --cluster
"""

from __future__ import annotations

from kubesnap.cli import cli

cli()
