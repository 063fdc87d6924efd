from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pysam

from .models import GenomicInterval, Segment
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PLOIDY = 2


@dataclass(frozen=True)
class ExcludedRegionIndex:
    """Per-contig excluded intervals that segment merging may not cross."""

    starts: Dict[str, List[int]]  # sorted region starts per contig
    regions: Dict[str, List[GenomicInterval]]  # aligned with starts

    def chromosomes(self) -> List[str]:
        return list(self.regions)

    def region_count(self) -> int:
        return sum(len(v) for v in self.regions.values())

    def is_forbidden(self, chromosome: str, start: int, end: int) -> bool:
        """Return True if two segments separated by ``(start, end)`` must not be merged.

        The gap is forbidden when any excluded region on the chromosome starts or
        stops inside ``[start, end]`` (both ends inclusive).
        """
        regions = self.regions.get(chromosome)
        if not regions:
            return False
        # A region starting after ``end`` also stops after it.
        hi = bisect.bisect_right(self.starts[chromosome], end)
        for region in regions[:hi]:
            if start <= region.begin <= end:
                return True
            if start <= region.end <= end:
                return True
        return False


def build_excluded_index(regions: Iterable[GenomicInterval]) -> ExcludedRegionIndex:
    """Build a per-contig index sorted by region start."""
    by_contig: Dict[str, List[GenomicInterval]] = {}
    for r in regions:
        by_contig.setdefault(r.chromosome, []).append(r)

    starts: Dict[str, List[int]] = {}
    index: Dict[str, List[GenomicInterval]] = {}
    for chrom, lst in by_contig.items():
        lst_sorted = sorted(lst, key=lambda x: (x.begin, x.end))
        starts[chrom] = [r.begin for r in lst_sorted]
        index[chrom] = lst_sorted
    return ExcludedRegionIndex(starts=starts, regions=index)


def load_excluded_regions(bed_path: str | Path) -> ExcludedRegionIndex:
    """Load excluded regions from a BED file (plain or bgzipped)."""
    regions: List[GenomicInterval] = []
    with open_textmaybe_gzip(bed_path, "rt") as fh:
        for row in pysam.tabix_iterator(fh, pysam.asBed()):
            start, end = int(row.start), int(row.end)
            if start == end:
                logger.debug("Skipping zero-length excluded region %s:%d", row.contig, start)
                continue
            regions.append(GenomicInterval(str(row.contig), start, end))
    index = build_excluded_index(regions)
    logger.info(
        "Loaded %d excluded regions on %d contigs from %s",
        index.region_count(),
        len(index.regions),
        bed_path,
    )
    return index


@dataclass(frozen=True)
class PloidyInterval:
    start: int
    end: int
    ploidy: int


@dataclass(frozen=True)
class ReferencePloidy:
    """Expected (reference) copy number for regions that are not diploid, e.g. sex chromosomes."""

    by_chromosome: Dict[str, List[PloidyInterval]]

    def get_reference_copy_number(self, segment: Segment) -> int:
        """Reference copy number covering most of the segment's bases.

        Bases not covered by any interval count towards ploidy 2. Ties resolve to
        the lower ploidy.
        """
        intervals = self.by_chromosome.get(segment.chromosome)
        if not intervals:
            return DEFAULT_REFERENCE_PLOIDY

        bases: Dict[int, int] = {DEFAULT_REFERENCE_PLOIDY: segment.length}
        for interval in intervals:
            if interval.ploidy == DEFAULT_REFERENCE_PLOIDY:
                continue
            overlap = min(interval.end, segment.end) - max(interval.start, segment.begin)
            if overlap <= 0:
                continue
            bases[DEFAULT_REFERENCE_PLOIDY] -= overlap
            bases[interval.ploidy] = bases.get(interval.ploidy, 0) + overlap

        best_count = -1
        best_ploidy = DEFAULT_REFERENCE_PLOIDY
        for ploidy in sorted(bases):
            if bases[ploidy] > best_count:
                best_count = bases[ploidy]
                best_ploidy = ploidy
        return best_ploidy

    def ploidy_for_window(self, chromosome: str, start: int, end: int) -> int:
        """Ploidy of the last interval touching ``[start, end]``; 2 when none does."""
        ploidy = DEFAULT_REFERENCE_PLOIDY
        for interval in self.by_chromosome.get(chromosome, []):
            if interval.start <= end and interval.end >= start:
                ploidy = interval.ploidy
        return ploidy


def reference_copy_number(ploidy: Optional[ReferencePloidy], segment: Segment) -> int:
    if ploidy is None:
        return DEFAULT_REFERENCE_PLOIDY
    return ploidy.get_reference_copy_number(segment)


def load_reference_ploidy(bed_path: str | Path) -> ReferencePloidy:
    """Load reference ploidy from a BED file whose name column holds the ploidy.

    Example line: ``chrX<TAB>0<TAB>156040895<TAB>1``
    """
    by_chrom: Dict[str, List[PloidyInterval]] = {}
    with open_textmaybe_gzip(bed_path, "rt") as fh:
        for row in pysam.tabix_iterator(fh, pysam.asBed()):
            try:
                ploidy = int(row.name)
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(
                    f"Ploidy BED {bed_path}: expected an integer ploidy in column 4 for "
                    f"{row.contig}:{row.start}-{row.end}"
                ) from e
            if ploidy < 0:
                raise ValueError(f"Ploidy BED {bed_path}: negative ploidy {ploidy}")
            by_chrom.setdefault(str(row.contig), []).append(
                PloidyInterval(start=int(row.start), end=int(row.end), ploidy=ploidy)
            )
    for lst in by_chrom.values():
        lst.sort(key=lambda x: x.start)
    logger.info("Loaded reference ploidy for %d contigs from %s", len(by_chrom), bed_path)
    return ReferencePloidy(by_chromosome=by_chrom)
