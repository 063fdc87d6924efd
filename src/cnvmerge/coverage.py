from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .contigs import is_autosome, is_mito
from .models import Segment
from .regions import DEFAULT_REFERENCE_PLOIDY, ReferencePloidy

logger = logging.getLogger(__name__)

DEFAULT_POINT_LENGTH = 100_000
NUM_VARIANT_FREQUENCY_BINS = 100
_MIN_COUNTS_PER_POINT = 30
_MIN_VARIANTS_PER_POINT = 10


def segments_by_chromosome(segments: Sequence[Segment]) -> Dict[str, List[Segment]]:
    """Group segments by chromosome, keeping first-seen chromosome order."""
    out: Dict[str, List[Segment]] = {}
    for seg in segments:
        out.setdefault(seg.chromosome, []).append(seg)
    return out


def expected_count(segments: Sequence[Segment]) -> float:
    """Median bin count over all autosomal segments (0.0 when there are none)."""
    counts: List[float] = []
    for seg in segments:
        if is_autosome(seg.chromosome):
            counts.extend(seg.counts)
    if not counts:
        return 0.0
    return float(np.median(np.asarray(counts, dtype=float)))


@dataclass(frozen=True)
class CoveragePoint:
    """Coverage and allele-frequency summary of one fixed-size genome window.

    Only coordinates are set when the window has too few bins to summarise.
    """

    chromosome: str
    start: int
    end: int
    copy_number: Optional[int] = None
    major_chromosome_count: Optional[int] = None
    median_hits: Optional[float] = None
    normalized_coverage: Optional[float] = None
    median_minor_allele_frequency: Optional[float] = None
    reference_ploidy: Optional[int] = None
    variant_frequency_distribution: Optional[Tuple[float, ...]] = None


def _agrees_with_majority(majority_cn: int, cn: int) -> bool:
    if majority_cn == 2:
        return cn == 2
    if majority_cn < 2:
        return cn < 2
    return cn > 2


def _slice_bounds(n: int, seg: Segment, start: int, end: int) -> Tuple[int, int]:
    """Indices of a segment's observations falling in ``[start, end)``, assuming uniform spacing."""
    first = 0
    if start > seg.begin:
        first = int(n * (start - seg.begin) / seg.length)
    last = n
    if end < seg.end:
        last = int(n * (end - seg.begin) / seg.length)
    return first, last


def _variant_frequency_distribution(vfs: Sequence[float]) -> Tuple[float, ...]:
    arr = np.asarray(vfs, dtype=float)
    bins = np.minimum(np.floor(arr / 0.01).astype(int), NUM_VARIANT_FREQUENCY_BINS - 1)
    hist = np.bincount(bins, minlength=NUM_VARIANT_FREQUENCY_BINS)
    return tuple(float(x) for x in hist / len(arr) * 100.0)


def _coverage_point(
    chrom_segments: Sequence[Segment],
    chromosome: str,
    start: int,
    end: int,
    normal_diploid_coverage: float,
    reference_ploidy: Optional[ReferencePloidy],
) -> CoveragePoint:
    bases_by_cn: Dict[int, int] = {}
    bases_by_cn_mcc: Dict[Tuple[int, Optional[int]], int] = {}
    overlapping: List[Segment] = []
    for seg in chrom_segments:
        if seg.begin > end or seg.end < start:
            continue
        weight = min(seg.end, end) - max(seg.begin, start)
        key = (seg.copy_number, seg.major_chromosome_count)
        bases_by_cn_mcc[key] = bases_by_cn_mcc.get(key, 0) + weight
        bases_by_cn[seg.copy_number] = bases_by_cn.get(seg.copy_number, 0) + weight
        overlapping.append(seg)

    best = 0
    majority_cn = 0
    for cn, bases in bases_by_cn.items():
        if bases > best:
            best = bases
            majority_cn = cn

    # Most common major chromosome count among segments with the majority copy number.
    majority_mcc: Optional[int] = None
    best = 0
    for (cn, mcc), bases in bases_by_cn_mcc.items():
        if mcc is None or cn != majority_cn:
            continue
        if bases < best:
            continue
        best = bases
        majority_mcc = mcc

    counts: List[float] = []
    mafs: List[float] = []
    vfs: List[float] = []
    for seg in overlapping:
        if not _agrees_with_majority(majority_cn, seg.copy_number):
            continue
        first, last = _slice_bounds(len(seg.counts), seg, start, end)
        counts.extend(seg.counts[first:last])
        first, last = _slice_bounds(len(seg.variant_frequencies), seg, start, end)
        for vf in seg.variant_frequencies[first:last]:
            vfs.append(vf)
            mafs.append(1.0 - vf if vf > 0.5 else vf)

    if len(counts) < _MIN_COUNTS_PER_POINT:
        return CoveragePoint(chromosome=chromosome, start=start, end=end)

    counts.sort()
    median_hits = counts[len(counts) // 2]
    median_maf: Optional[float] = None
    if len(mafs) >= _MIN_VARIANTS_PER_POINT:
        mafs.sort()
        median_maf = mafs[len(mafs) // 2]
    distribution: Optional[Tuple[float, ...]] = None
    if len(vfs) >= _MIN_VARIANTS_PER_POINT:
        distribution = _variant_frequency_distribution(vfs)
    ploidy = DEFAULT_REFERENCE_PLOIDY
    if reference_ploidy is not None:
        ploidy = reference_ploidy.ploidy_for_window(chromosome, start, end)

    return CoveragePoint(
        chromosome=chromosome,
        start=start,
        end=end,
        copy_number=majority_cn,
        major_chromosome_count=majority_mcc,
        median_hits=median_hits,
        normalized_coverage=2.0 * median_hits / normal_diploid_coverage,
        median_minor_allele_frequency=median_maf,
        reference_ploidy=ploidy,
        variant_frequency_distribution=distribution,
    )


def coverage_points(
    segments: Sequence[Segment],
    chromosome_lengths: Sequence[Tuple[str, int]],
    normal_diploid_coverage: Optional[float],
    *,
    reference_ploidy: Optional[ReferencePloidy] = None,
    point_length: int = DEFAULT_POINT_LENGTH,
) -> List[CoveragePoint]:
    """Summarise coverage and allele frequencies in fixed windows along each chromosome.

    Parameters
    ----------
    segments:
        Called segments (any order within a chromosome).
    chromosome_lengths:
        ``(name, length)`` pairs; windows are emitted in this order. Mitochondrial
        contigs are skipped.
    normal_diploid_coverage:
        Expected bin count of a diploid region, used to normalise median hits.
        Required when ``segments`` is non-empty.
    point_length:
        Window size in bases.
    """
    if segments and normal_diploid_coverage is None:
        raise ValueError("normal diploid coverage must be specified")
    if segments and normal_diploid_coverage <= 0:
        raise ValueError("normal diploid coverage must be > 0")
    if point_length <= 0:
        raise ValueError("point_length must be > 0")

    by_chrom = segments_by_chromosome(segments)
    points: List[CoveragePoint] = []
    for chromosome, length in chromosome_lengths:
        if is_mito(chromosome):
            continue
        chrom_segments = by_chrom.get(chromosome, [])
        start = 0
        while start < length:
            end = min(length, start + point_length)
            points.append(
                _coverage_point(
                    chrom_segments,
                    chromosome,
                    start,
                    end,
                    float(normal_diploid_coverage or 0.0),
                    reference_ploidy,
                )
            )
            start += point_length
    logger.debug("Computed %d coverage points", len(points))
    return points
