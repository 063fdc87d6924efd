"""cnvmerge: consolidate segmented copy-number calls into final CNV intervals.

Public API is intentionally small; most users should use the CLI:

    cnvmerge consolidate --segments ... --excluded-bed ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
