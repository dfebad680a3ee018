"""Entry point script for the dichoptic random-dot motion task.

This small wrapper simply dispatches to :mod:`dichoptic_rdk.cli`, so the
experiment can be launched via ``python -m dichoptic_rdk`` *or* by executing
this file directly.
"""
from __future__ import annotations

from dichoptic_rdk.cli import main


if __name__ == "__main__":
    main()
