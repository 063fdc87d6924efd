from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .models import GenomicInterval, Segment
from .regions import ExcludedRegionIndex, build_excluded_index

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"
_MITO_NAMES = {"chrm", "m", "mt", "chrmt"}
_ALLOSOMES = {"x", "y"}


def _core_name(contig: str) -> str:
    name = contig.lower()
    if name.startswith(_UCSC_PREFIX):
        return name[len(_UCSC_PREFIX) :]
    return name


def is_mito(contig: str) -> bool:
    return contig.lower() in _MITO_NAMES


def is_autosome(contig: str) -> bool:
    """True for numbered nuclear chromosomes (``chr1``, ``12``, ...); False for X/Y/M and alt contigs."""
    core = _core_name(contig)
    if is_mito(contig) or core in _ALLOSOMES:
        return False
    return core.isdigit()


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == "ucsc":
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == "ensembl":
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig


def harmonize_excluded_index(
    index: ExcludedRegionIndex, segment_contigs: Sequence[str]
) -> ExcludedRegionIndex:
    """Rename excluded-region contigs to the naming style used by the segments.

    A BED in ``1``/``2`` style would otherwise silently exclude nothing from
    ``chr1``/``chr2`` segments.
    """
    seg_style = detect_contig_style(segment_contigs)
    bed_style = detect_contig_style(index.chromosomes())
    if seg_style == "unknown" or bed_style == "unknown" or seg_style == bed_style:
        return index

    logger.warning(
        "Contig style mismatch detected (segments=%s, excluded BED=%s). Remapping excluded regions to %s style.",
        seg_style,
        bed_style,
        seg_style,
    )
    remapped: List[GenomicInterval] = []
    for regions in index.regions.values():
        for r in regions:
            remapped.append(GenomicInterval(remap_contig(r.chromosome, seg_style), r.begin, r.end))
    return build_excluded_index(remapped)


def check_chromosome_names(known_contigs: Iterable[str], segments: Iterable[Segment]) -> None:
    """Ensure every segment lies on a known contig (case-insensitive); raise ValueError otherwise."""
    names = {c.lower() for c in known_contigs}
    for segment in segments:
        if segment.chromosome.lower() not in names:
            raise ValueError(
                f"Integrity check error: segment found at unknown chromosome '{segment.chromosome}'"
            )
