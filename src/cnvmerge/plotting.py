from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt

from .coverage import CoveragePoint

logger = logging.getLogger(__name__)


def plot_qscore_hist(
    *,
    qscores: Sequence[float],
    out_png: str | Path,
    title: str = "Segment q-score distribution",
    max_qscore: int = 61,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs = list(range(0, max_qscore + 1))
    ys = [0] * len(xs)
    for q in qscores:
        k = int(min(max(q, 0), max_qscore))
        ys[k] += 1

    plt.figure()
    plt.bar(xs, ys, width=1.0, align="center")
    plt.xlabel("Q-score")
    plt.ylabel("Segment count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_cnv_type_counts(
    *,
    cnv_type_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Consolidated calls",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Reference (REF)", "Gain (GAIN)", "Loss (LOSS)", "LOH (LOH)"]
    values = [
        int(cnv_type_counts.get("REF", 0)),
        int(cnv_type_counts.get("GAIN", 0)),
        int(cnv_type_counts.get("LOSS", 0)),
        int(cnv_type_counts.get("LOH", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Segment count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_segment_length_hist(
    *,
    lengths: Sequence[int],
    out_png: str | Path,
    title: str = "Segment length",
    max_log10: int = 8,
) -> None:
    """Histogram of segment lengths in decades (10^k bp bins); longer segments collapse into the last bin."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    ys = [0] * (max_log10 + 1)
    for length in lengths:
        k = int(math.log10(length)) if length > 0 else 0
        ys[min(k, max_log10)] += 1

    xticklabels: List[str] = [f"1e{k}" for k in range(max_log10)] + [f"1e{max_log10}+"]

    plt.figure()
    plt.bar(range(len(ys)), ys)
    plt.xlabel("Segment length (bp)")
    plt.ylabel("Segment count")
    plt.title(title)
    plt.xticks(range(len(ys)), xticklabels, rotation=0)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_coverage_points(
    *,
    points: Sequence[CoveragePoint],
    out_png: str | Path,
    title: str = "Normalized coverage",
) -> None:
    """Normalized coverage (2 = diploid) per window, windows laid end to end along the genome."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs: List[int] = []
    ys: List[float] = []
    boundaries: List[int] = []
    prev_chrom = None
    for i, p in enumerate(points):
        if p.chromosome != prev_chrom:
            boundaries.append(i)
            prev_chrom = p.chromosome
        if p.normalized_coverage is None:
            continue
        xs.append(i)
        ys.append(p.normalized_coverage)

    plt.figure(figsize=(10, 3.5))
    plt.scatter(xs, ys, s=4)
    for b in boundaries[1:]:
        plt.axvline(b, color="#bbbbbb", linewidth=0.6)
    plt.axhline(2.0, color="#888888", linestyle="--", linewidth=0.8)
    plt.xlabel("Genome window")
    plt.ylabel("Normalized coverage")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
